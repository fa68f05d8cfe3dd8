"""
Card catalog: reference data loaded once and shared read-only by readings
"""
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError

from arcana.core.database import SessionFactory, session_scope
from arcana.core.errors import PersistenceError
from arcana.core.logging_config import LoggingConfig
from arcana.models.card import Card

logger = LoggingConfig.get_logger(__name__)

MAJOR_ARCANA: List[Tuple[str, List[str], str]] = [
    ("The Fool", ["beginnings", "spontaneity", "faith"], "A leap into something new"),
    ("The Magician", ["willpower", "skill", "manifestation"], "Resources are at hand; act"),
    ("The High Priestess", ["intuition", "mystery", "inner voice"], "Trust what you sense but cannot prove"),
    ("The Empress", ["abundance", "nurture", "creativity"], "Growth through care"),
    ("The Emperor", ["structure", "authority", "stability"], "Order and firm boundaries"),
    ("The Hierophant", ["tradition", "guidance", "belief"], "Learning from established ways"),
    ("The Lovers", ["union", "choice", "values"], "A decision of the heart"),
    ("The Chariot", ["determination", "control", "victory"], "Forward by force of will"),
    ("Strength", ["courage", "patience", "compassion"], "Gentle mastery over fear"),
    ("The Hermit", ["introspection", "solitude", "wisdom"], "Answers found by looking inward"),
    ("Wheel of Fortune", ["cycles", "change", "fate"], "The situation is turning"),
    ("Justice", ["fairness", "truth", "consequence"], "Actions meet their balance"),
    ("The Hanged Man", ["pause", "surrender", "perspective"], "See it from another angle"),
    ("Death", ["endings", "transformation", "release"], "Something closes so another can open"),
    ("Temperance", ["balance", "moderation", "healing"], "Blend opposites patiently"),
    ("The Devil", ["attachment", "temptation", "shadow"], "Notice what binds you"),
    ("The Tower", ["upheaval", "revelation", "sudden change"], "Unstable foundations give way"),
    ("The Star", ["hope", "renewal", "inspiration"], "Calm after the storm"),
    ("The Moon", ["illusion", "uncertainty", "dreams"], "Not everything is as it seems"),
    ("The Sun", ["joy", "success", "vitality"], "Clarity and warmth"),
    ("Judgement", ["reckoning", "awakening", "calling"], "Answer the call to rise"),
    ("The World", ["completion", "integration", "fulfilment"], "A cycle reaches its end"),
]

SUITS: List[Tuple[str, List[str]]] = [
    ("Wands", ["energy", "ambition"]),
    ("Cups", ["emotion", "relationships"]),
    ("Swords", ["thought", "conflict"]),
    ("Pentacles", ["work", "material security"]),
]

RANKS: List[Tuple[str, str]] = [
    ("Ace", "potential"),
    ("Two", "choice"),
    ("Three", "growth"),
    ("Four", "stability"),
    ("Five", "struggle"),
    ("Six", "harmony"),
    ("Seven", "assessment"),
    ("Eight", "movement"),
    ("Nine", "near completion"),
    ("Ten", "culmination"),
    ("Page", "curiosity"),
    ("Knight", "pursuit"),
    ("Queen", "maturity"),
    ("King", "mastery"),
]


@dataclass(frozen=True)
class CardInfo:
    """Immutable view of one card"""
    card_id: int
    name: str
    display_name: str
    arcana: str
    suit: Optional[str] = None
    keywords: Tuple[str, ...] = field(default_factory=tuple)
    short_meaning: Optional[str] = None
    image_url: Optional[str] = None

    @property
    def image(self) -> str:
        return self.image_url or f"cards/{self.arcana.lower()}/{self.card_id}.jpg"


class CardCatalog:
    """Read-only snapshot of the deck, keyed by card id"""

    def __init__(self, cards: Iterable[CardInfo]):
        self._cards: Mapping[int, CardInfo] = MappingProxyType({card.card_id: card for card in cards})

    def __len__(self) -> int:
        return len(self._cards)

    def __contains__(self, card_id: object) -> bool:
        return card_id in self._cards

    def get(self, card_id: int) -> Optional[CardInfo]:
        return self._cards.get(card_id)

    @property
    def ids(self) -> List[int]:
        return sorted(self._cards)

    def summary_lines(self) -> List[str]:
        """'<id>=<name>' lines for prompt construction"""
        return [f"{card.card_id}={card.name}" for card in sorted(self._cards.values(), key=lambda c: c.card_id)]


def default_deck() -> List[Dict]:
    """The standard 78-card deck: 0-21 major arcana, then 14 cards per suit"""
    cards: List[Dict] = []
    for card_id, (name, keywords, meaning) in enumerate(MAJOR_ARCANA):
        cards.append({
            "card_id": card_id,
            "name": name,
            "display_name": name,
            "arcana": "major",
            "suit": None,
            "keywords": keywords,
            "short_meaning": meaning,
        })

    card_id = len(MAJOR_ARCANA)
    for suit, suit_keywords in SUITS:
        for rank, rank_keyword in RANKS:
            name = f"{rank} of {suit}"
            cards.append({
                "card_id": card_id,
                "name": name,
                "display_name": name,
                "arcana": "minor",
                "suit": suit.lower(),
                "keywords": [rank_keyword, *suit_keywords],
                "short_meaning": f"{rank_keyword.capitalize()} in matters of {suit_keywords[0]}",
            })
            card_id += 1
    return cards


def build_default_catalog() -> CardCatalog:
    """Catalog of the default deck without touching the database"""
    return CardCatalog(
        CardInfo(
            card_id=card["card_id"],
            name=card["name"],
            display_name=card["display_name"],
            arcana=card["arcana"],
            suit=card["suit"],
            keywords=tuple(card["keywords"]),
            short_meaning=card["short_meaning"],
        )
        for card in default_deck()
    )


class CardCatalogService:
    """Seeds and loads the cards table"""

    def __init__(self, session_factory: SessionFactory):
        self.session_factory = session_factory

    def ensure_default_deck(self) -> int:
        """
        Insert the default deck when the cards table is empty

        Returns:
            Number of cards inserted (0 when the table already had cards)
        """
        try:
            with session_scope(self.session_factory) as db:
                existing = db.execute(select(func.count(Card.card_id))).scalar_one()
                if existing:
                    return 0
                deck = default_deck()
                db.add_all(Card(**card) for card in deck)
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to seed card deck: {e}") from e

        logger.info(f"Seeded {len(deck)} cards", extra={"cards": len(deck)})
        return len(deck)

    def load_catalog(self) -> CardCatalog:
        """Snapshot every card in the table"""
        try:
            with session_scope(self.session_factory) as db:
                rows = db.execute(select(Card).order_by(Card.card_id)).scalars().all()
                catalog = CardCatalog(
                    CardInfo(
                        card_id=row.card_id,
                        name=row.name,
                        display_name=row.display_name,
                        arcana=row.arcana,
                        suit=row.suit,
                        keywords=tuple(row.keywords or ()),
                        short_meaning=row.short_meaning,
                        image_url=row.image_url,
                    )
                    for row in rows
                )
        except SQLAlchemyError as e:
            raise PersistenceError(f"Failed to load card catalog: {e}") from e

        logger.info(f"Loaded card catalog with {len(catalog)} cards", extra={"cards": len(catalog)})
        return catalog
