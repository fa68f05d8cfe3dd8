"""
Deterministic reading used when narration keeps returning malformed output
"""

from __future__ import annotations

from typing import Any, Dict, List

from arcana.components.contracts import AnalysisResult
from arcana.components.reading import card_entry
from arcana.services.card_catalog import CardCatalog

FALLBACK_DISCLAIMER = (
    "This reading is for reflection and entertainment only. "
    "Use your own judgement for important decisions."
)


def build_fallback_reading(
    question: str,
    analysis: AnalysisResult,
    selected_items: List[int],
    catalog: CardCatalog,
) -> Dict[str, Any]:
    """
    Build a complete reading from card metadata alone

    The same inputs always produce the same document.
    """
    cards_reading = []
    for position, card_id in enumerate(selected_items, start=1):
        card = catalog.get(card_id)
        meaning = card.short_meaning if card and card.short_meaning else None
        name = card.display_name if card else f"card {card_id}"
        text = f"{name} in position {position}"
        if meaning:
            text = f"{text}: {meaning}."
        cards_reading.append(card_entry(catalog, card_id, position, text))

    names = ", ".join(entry["display_name"] for entry in cards_reading)
    return {
        "header": f"Your reading on {analysis.topic}",
        "cards_reading": cards_reading,
        "reading": (
            f"The {len(selected_items)} cards drawn ({names}) speak to your question "
            f"\"{question}\". Take time with each card's meaning and consider how it "
            "relates to where you stand now."
        ),
        "suggestions": [
            "Trust yourself",
            "Stay open to new possibilities",
            "Think decisions through carefully",
        ],
        "next_questions": [
            "What do you truly want here?",
            "What is standing in your way?",
        ],
        "final_summary": "A hopeful path lies ahead.",
        "disclaimer": FALLBACK_DISCLAIMER,
        "is_fallback": True,
    }
