"""
Dealer: picks the cards for the spread
"""

from __future__ import annotations

from typing import Optional

from arcana.components.base import SelectionStage
from arcana.components.contracts import AnalysisResult, SelectionResult
from arcana.components.llm_stage import LLMBackedStage
from arcana.components.prompt_repository import ComponentPromptRepository
from arcana.core.llm_client import LLMClient
from arcana.services.card_catalog import CardCatalog


class DealerStage(LLMBackedStage, SelectionStage):
    prompt_name = "dealer"
    temperature = 0.7

    def __init__(
        self,
        llm: LLMClient,
        catalog: CardCatalog,
        prompts: Optional[ComponentPromptRepository] = None,
        deck_size: Optional[int] = None,
    ):
        super().__init__(llm, prompts)
        self.catalog = catalog
        self.deck_size = deck_size or len(catalog)

    async def select(self, question: str, analysis: AnalysisResult) -> SelectionResult:
        count = analysis.recommended_count
        prompt = "\n".join([
            f'Question from the user: "{question}"',
            "",
            "Analysis:",
            f"- mood: {analysis.mood}",
            f"- topic: {analysis.topic}",
            f"- period: {analysis.period}",
            f"- context: {analysis.context}",
            "",
            "Available cards (id=name):",
            ", ".join(self.catalog.summary_lines()),
            "",
            f"Choose exactly {count} different cards. Reply with JSON: "
            '{"selectedCards": [...], "reasoning": "...", "confidence": 0.0-1.0}',
        ])
        raw = await self._complete(self.name, prompt)
        return self._parse(
            self.name,
            raw,
            SelectionResult,
            context={"expected_count": count, "deck_size": self.deck_size},
        )
