"""
Assembly of the stored reading document
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from arcana.components.contracts import NarrationResult
from arcana.services.card_catalog import CardCatalog


def card_entry(
    catalog: CardCatalog,
    card_id: int,
    position: int,
    interpretation: Optional[str],
) -> Dict[str, Any]:
    """Per-card block enriched with catalog metadata"""
    card = catalog.get(card_id)
    if card is None:
        return {
            "position": position,
            "card_id": card_id,
            "name": f"Card {card_id}",
            "display_name": f"Card {card_id}",
            "image": f"cards/unknown/{card_id}.jpg",
            "arcana": "unknown",
            "keywords": [],
            "interpretation": interpretation or f"Interpretation for card {card_id}",
        }
    return {
        "position": position,
        "card_id": card_id,
        "name": card.name,
        "display_name": card.display_name,
        "image": card.image,
        "arcana": card.arcana,
        "keywords": list(card.keywords),
        "interpretation": interpretation or f"Interpretation for {card.name}",
    }


def assemble_reading(
    narration: NarrationResult,
    selected_items: List[int],
    catalog: CardCatalog,
) -> Dict[str, Any]:
    """Combine narration text and card metadata into the persisted reading"""
    cards_reading = [
        card_entry(catalog, card_id, position, narration.per_item[position - 1].interpretation)
        for position, card_id in enumerate(selected_items, start=1)
    ]
    return {
        "header": narration.header,
        "cards_reading": cards_reading,
        "reading": narration.body,
        "suggestions": list(narration.suggestions),
        "next_questions": list(narration.followups),
        "final_summary": narration.summary,
        "disclaimer": narration.disclaimer,
        "is_fallback": False,
    }
