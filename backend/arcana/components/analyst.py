"""
Analyst: reads mood, topic, period and context out of the question
"""

from __future__ import annotations

from typing import Optional, Sequence

from arcana.components.base import AnalysisStage
from arcana.components.contracts import (DEFAULT_ALLOWED_COUNTS,
                                         DEFAULT_CARD_COUNT, AnalysisResult)
from arcana.components.llm_stage import LLMBackedStage
from arcana.components.prompt_repository import ComponentPromptRepository
from arcana.core.llm_client import LLMClient


class AnalystStage(LLMBackedStage, AnalysisStage):
    prompt_name = "analyst"
    temperature = 0.5

    def __init__(
        self,
        llm: LLMClient,
        prompts: Optional[ComponentPromptRepository] = None,
        allowed_counts: Sequence[int] = DEFAULT_ALLOWED_COUNTS,
        default_count: int = DEFAULT_CARD_COUNT,
    ):
        super().__init__(llm, prompts)
        self.allowed_counts = tuple(allowed_counts)
        self.default_count = default_count

    async def analyze(self, question: str, context: Optional[str] = None) -> AnalysisResult:
        lines = [f'Question from the user: "{question}"']
        if context:
            lines.append(f"Notes from the policy check: {context}")
        counts = " or ".join(str(count) for count in self.allowed_counts)
        lines.append(
            "Analyse the question and reply with JSON containing mood, topic, period, "
            f"context and card_count ({counts})."
        )
        raw = await self._complete(self.name, "\n\n".join(lines))
        return self._parse(
            self.name,
            raw,
            AnalysisResult,
            context={"allowed_counts": self.allowed_counts, "default_count": self.default_count},
        )
