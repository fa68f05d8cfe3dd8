"""
Shared plumbing for stages backed by the LLM client
"""

from __future__ import annotations

from typing import Any, Dict, Optional, Type, TypeVar

from pydantic import BaseModel

from arcana.components.contracts import Invalid, parse_stage_output
from arcana.components.prompt_repository import ComponentPromptRepository
from arcana.core.errors import (LLMError, StageOutputError, StageTimeoutError,
                                StageTransportError)
from arcana.core.llm_client import LLMClient, LLMTimeoutError
from arcana.core.logging_config import LoggingConfig

logger = LoggingConfig.get_logger(__name__)

M = TypeVar("M", bound=BaseModel)


class LLMBackedStage:
    """Sends one prompt per call and validates the answer against a contract"""

    prompt_name: str = ""
    temperature: float = 0.5

    def __init__(self, llm: LLMClient, prompts: Optional[ComponentPromptRepository] = None):
        self.llm = llm
        self.prompts = prompts or ComponentPromptRepository()

    async def _complete(self, stage: str, prompt: str) -> str:
        """
        Run one chat completion

        Raises:
            StageTimeoutError: backend timed out
            StageTransportError: backend unreachable or answered with an error
        """
        system_prompt = self.prompts.get_system_prompt(self.prompt_name)
        try:
            response = await self.llm.generate(
                prompt,
                system_prompt=system_prompt,
                temperature=self.temperature,
            )
        except LLMTimeoutError as e:
            raise StageTimeoutError(stage, str(e)) from e
        except LLMError as e:
            raise StageTransportError(stage, str(e)) from e
        return response.response

    def _parse(
        self,
        stage: str,
        raw: str,
        model: Type[M],
        context: Optional[Dict[str, Any]] = None,
    ) -> M:
        """Validate raw output; malformed output raises StageOutputError"""
        result = parse_stage_output(raw, model, context)
        if isinstance(result, Invalid):
            logger.warning(
                f"{stage} output rejected: {result.reason}",
                extra={"stage": stage, "reason": result.reason, "raw_preview": raw[:200]},
            )
            raise StageOutputError(stage, result.reason)
        return result.value
