"""
Mystic: writes the reading for the selected cards
"""

from __future__ import annotations

from typing import List, Optional

from arcana.components.base import NarrationStage
from arcana.components.contracts import AnalysisResult, NarrationResult
from arcana.components.llm_stage import LLMBackedStage
from arcana.components.prompt_repository import ComponentPromptRepository
from arcana.core.llm_client import LLMClient
from arcana.services.card_catalog import CardCatalog


class MysticStage(LLMBackedStage, NarrationStage):
    prompt_name = "mystic"
    temperature = 0.8

    def __init__(
        self,
        llm: LLMClient,
        catalog: CardCatalog,
        prompts: Optional[ComponentPromptRepository] = None,
    ):
        super().__init__(llm, prompts)
        self.catalog = catalog

    def _describe_cards(self, selected_items: List[int]) -> List[str]:
        lines = []
        for position, card_id in enumerate(selected_items, start=1):
            card = self.catalog.get(card_id)
            if card is None:
                lines.append(f"{position}. card #{card_id}")
                continue
            keywords = ", ".join(card.keywords)
            lines.append(f"{position}. {card.name} ({card.arcana}; {keywords})")
        return lines

    async def narrate(
        self,
        question: str,
        analysis: AnalysisResult,
        selected_items: List[int],
    ) -> NarrationResult:
        prompt = "\n".join([
            f'Question from the user: "{question}"',
            "",
            "Context:",
            f"- mood: {analysis.mood}",
            f"- topic: {analysis.topic}",
            f"- period: {analysis.period}",
            f"- context: {analysis.context}",
            "",
            "Cards in spread order:",
            *self._describe_cards(selected_items),
            "",
            f"Write the reading as JSON with exactly {len(selected_items)} cards_reading entries.",
        ])
        raw = await self._complete(self.name, prompt)
        return self._parse(
            self.name,
            raw,
            NarrationResult,
            context={"expected_count": len(selected_items)},
        )
