"""
Tests for stage output parsing and contract validation
"""
import json

import pytest

from arcana.components.contracts import (AnalysisResult, Approved, Invalid,
                                         NarrationResult, Parsed,
                                         PolicyDecision, Rejected,
                                         SelectionResult, parse_stage_output,
                                         selection_problem)
from arcana.components.parsing import extract_json_object


def test_extract_plain_json():
    assert extract_json_object('{"a": 1}') == {"a": 1}


def test_extract_fenced_json():
    raw = 'Here you go:\n```json\n{"approved": true}\n```\nThanks'
    assert extract_json_object(raw) == {"approved": True}


def test_extract_embedded_object():
    raw = 'Sure! {"mood": "calm", "topic": "love"} hope that helps'
    assert extract_json_object(raw) == {"mood": "calm", "topic": "love"}


@pytest.mark.parametrize("raw", ["", "   ", "no json here", "[1, 2, 3]", "{broken"])
def test_extract_rejects_non_objects(raw):
    assert extract_json_object(raw) is None


def test_policy_decision_outcomes():
    assert PolicyDecision(approved=True, context="ok").to_outcome() == Approved(context="ok")
    outcome = PolicyDecision(approved=False).to_outcome()
    assert isinstance(outcome, Rejected)
    assert outcome.reason


def test_analysis_aliases_and_count_coercion():
    raw = json.dumps({
        "mood": "anxious", "topic": "career", "period": "this year",
        "context": "layoffs", "cardCount": 5,
    })
    result = parse_stage_output(raw, AnalysisResult)
    assert isinstance(result, Parsed)
    assert result.value.recommended_count == 5

    raw = json.dumps({
        "mood": "anxious", "topic": "career", "period": "this year",
        "context": "layoffs", "card_count": 7,
    })
    result = parse_stage_output(raw, AnalysisResult, {"allowed_counts": (3, 5), "default_count": 3})
    assert result.value.recommended_count == 3


def test_analysis_missing_field_is_invalid():
    result = parse_stage_output('{"mood": "calm"}', AnalysisResult)
    assert isinstance(result, Invalid)
    assert "topic" in result.reason


def test_selection_validated_against_context():
    context = {"expected_count": 3, "deck_size": 78}
    ok = parse_stage_output(
        '{"selectedCards": [0, 5, 77], "reasoning": "r", "confidence": 0.9}',
        SelectionResult,
        context,
    )
    assert isinstance(ok, Parsed)
    assert ok.value.selected_items == [0, 5, 77]

    for payload in (
        {"selected_cards": [1, 1, 2], "reasoning": "r", "confidence": 0.5},
        {"selected_cards": [1, 2], "reasoning": "r", "confidence": 0.5},
        {"selected_cards": [1, 2, 78], "reasoning": "r", "confidence": 0.5},
        {"selected_cards": [1, 2, 3], "reasoning": "r", "confidence": 1.5},
        {"selected_cards": [1, 2, 3], "reasoning": "", "confidence": 0.5},
        {"selected_cards": ["1", 2, 3], "reasoning": "r", "confidence": 0.5},
    ):
        assert isinstance(parse_stage_output(json.dumps(payload), SelectionResult, context), Invalid)


def test_selection_problem_messages():
    assert selection_problem([1, 2, 3], 3, 78) is None
    assert "duplicate" in selection_problem([1, 1, 2], 3, 78)
    assert "expected 3" in selection_problem([1, 2], 3, 78)
    assert "outside" in selection_problem([-1, 2, 3], 3, 78)
    assert "not an integer" in selection_problem([True, 2, 3], 3, 78)


def test_narration_requires_one_entry_per_card():
    payload = {
        "header": "h",
        "cards_reading": [{"position": 1, "interpretation": "a"}, {"position": 2, "interpretation": "b"}],
        "reading": "body",
        "suggestions": ["s"],
        "next_questions": ["q"],
        "final_summary": "sum",
        "disclaimer": "d",
    }
    assert isinstance(parse_stage_output(json.dumps(payload), NarrationResult, {"expected_count": 2}), Parsed)
    result = parse_stage_output(json.dumps(payload), NarrationResult, {"expected_count": 3})
    assert isinstance(result, Invalid)
    assert "expected 3" in result.reason
