"""
Tests for the LLM-backed reading stages
"""
import pytest

from arcana.components.analyst import AnalystStage
from arcana.components.contracts import Approved, Rejected
from arcana.components.dealer import DealerStage
from arcana.components.gatekeeper import GatekeeperStage
from arcana.components.mystic import MysticStage
from arcana.core.errors import (LLMError, StageOutputError, StageTimeoutError,
                                StageTransportError)
from arcana.core.llm_client import LLMResponse, LLMTimeoutError


class FakeLLM:
    """Returns queued replies (or raises queued errors) and records prompts"""

    model = "fake-model"

    def __init__(self, *replies):
        self.replies = list(replies)
        self.prompts = []

    async def generate(self, prompt, system_prompt=None, temperature=None, json_mode=True):
        self.prompts.append({"prompt": prompt, "system": system_prompt, "temperature": temperature})
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return LLMResponse(model=self.model, response=reply, done=True)


@pytest.mark.asyncio
async def test_gatekeeper_approves_fenced_reply():
    llm = FakeLLM('```json\n{"approved": true, "context": "relationship question"}\n```')
    outcome = await GatekeeperStage(llm).evaluate("Will we move in together?")

    assert outcome == Approved(context="relationship question")
    assert "Will we move in together?" in llm.prompts[0]["prompt"]
    assert llm.prompts[0]["system"]


@pytest.mark.asyncio
async def test_gatekeeper_rejection():
    llm = FakeLLM('{"approved": false, "reason": "Medical questions are out of scope"}')
    outcome = await GatekeeperStage(llm).evaluate("Should I stop my medication?")

    assert isinstance(outcome, Rejected)
    assert outcome.reason == "Medical questions are out of scope"


@pytest.mark.asyncio
async def test_analyst_coerces_count_to_allowed():
    llm = FakeLLM('{"mood": "tense", "topic": "money", "period": "this month", '
                  '"context": "rent is due", "card_count": 4}')
    result = await AnalystStage(llm, allowed_counts=(3, 5), default_count=3).analyze("Will I make rent?")

    assert result.topic == "money"
    assert result.recommended_count == 3
    assert "3 or 5" in llm.prompts[0]["prompt"]


@pytest.mark.asyncio
async def test_dealer_validates_against_deck(catalog, canned):
    llm = FakeLLM('{"selectedCards": [2, 40, 77], "reasoning": "r", "confidence": 0.7}')
    result = await DealerStage(llm, catalog).select("Will I make rent?", canned.analysis(3))

    assert result.selected_items == [2, 40, 77]
    assert "0=The Fool" in llm.prompts[0]["prompt"]


@pytest.mark.asyncio
async def test_dealer_out_of_range_card_is_output_error(catalog, canned):
    llm = FakeLLM('{"selectedCards": [2, 40, 78], "reasoning": "r", "confidence": 0.7}')
    with pytest.raises(StageOutputError) as exc_info:
        await DealerStage(llm, catalog).select("Will I make rent?", canned.analysis(3))
    assert exc_info.value.stage == "selection"


@pytest.mark.asyncio
async def test_mystic_parses_reading(catalog, canned):
    llm = FakeLLM(
        '{"header": "h", "cards_reading": ['
        '{"position": 1, "interpretation": "a"}, {"position": 2, "interpretation": "b"}, '
        '{"position": 3, "interpretation": "c"}], "reading": "body", "suggestions": ["s"], '
        '"next_questions": ["q"], "final_summary": "sum", "disclaimer": "d"}'
    )
    result = await MysticStage(llm, catalog).narrate("Will I make rent?", canned.analysis(3), [0, 1, 2])

    assert len(result.per_item) == 3
    assert result.header == "h"
    assert "The Magician" in llm.prompts[0]["prompt"]


@pytest.mark.asyncio
async def test_mystic_non_json_is_output_error(catalog, canned):
    llm = FakeLLM("The cards say yes!")
    with pytest.raises(StageOutputError):
        await MysticStage(llm, catalog).narrate("Will I make rent?", canned.analysis(3), [0, 1, 2])


@pytest.mark.asyncio
async def test_backend_errors_are_classified():
    timeout_llm = FakeLLM(LLMTimeoutError("timed out"))
    with pytest.raises(StageTimeoutError) as exc_info:
        await GatekeeperStage(timeout_llm).evaluate("Will I make rent?")
    assert exc_info.value.stage == "policy"

    broken_llm = FakeLLM(LLMError("HTTP error 500"))
    with pytest.raises(StageTransportError):
        await GatekeeperStage(broken_llm).evaluate("Will I make rent?")
