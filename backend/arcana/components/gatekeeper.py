"""
Gatekeeper: policy check on the submitted question
"""

from __future__ import annotations

from arcana.components.base import PolicyStage
from arcana.components.contracts import PolicyDecision, PolicyOutcome
from arcana.components.llm_stage import LLMBackedStage


class GatekeeperStage(LLMBackedStage, PolicyStage):
    prompt_name = "gatekeeper"
    temperature = 0.3

    async def evaluate(self, question: str) -> PolicyOutcome:
        prompt = (
            f'Question from the user: "{question}"\n\n'
            "Decide whether this question can be answered with a tarot reading. "
            'Reply with JSON: {"approved": true|false, "reason": "..."}'
        )
        raw = await self._complete(self.name, prompt)
        decision = self._parse(self.name, raw, PolicyDecision)
        return decision.to_outcome()
