"""
Stage interfaces and the bundle the workflow is built from
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional

from arcana.components.contracts import (AnalysisResult, NarrationResult,
                                         PolicyOutcome, SelectionResult)


class PolicyStage(ABC):
    name = "policy"

    @abstractmethod
    async def evaluate(self, question: str) -> PolicyOutcome:
        """Approve or reject the question"""


class AnalysisStage(ABC):
    name = "analysis"

    @abstractmethod
    async def analyze(self, question: str, context: Optional[str] = None) -> AnalysisResult:
        """Extract mood, topic, period, context and the spread size"""


class SelectionStage(ABC):
    name = "selection"

    @abstractmethod
    async def select(self, question: str, analysis: AnalysisResult) -> SelectionResult:
        """Pick analysis.recommended_count unique cards"""


class NarrationStage(ABC):
    name = "narration"

    @abstractmethod
    async def narrate(
        self,
        question: str,
        analysis: AnalysisResult,
        selected_items: List[int],
    ) -> NarrationResult:
        """Write the reading, one per_item entry per selected card"""


@dataclass
class StageSet:
    """The four stages a reading runs through, in order"""
    policy: PolicyStage
    analysis: AnalysisStage
    selection: SelectionStage
    narration: NarrationStage
