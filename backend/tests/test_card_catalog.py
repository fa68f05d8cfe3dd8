"""
Tests for the card catalog
"""
from arcana.models.card import Card
from arcana.services.card_catalog import (CardCatalog, CardCatalogService,
                                          CardInfo, default_deck)


def test_default_deck_has_78_cards():
    deck = default_deck()
    assert len(deck) == 78
    assert [card["card_id"] for card in deck] == list(range(78))
    assert sum(1 for card in deck if card["arcana"] == "major") == 22
    assert deck[22]["suit"] is not None


def test_catalog_lookup_and_images(catalog):
    assert len(catalog) == 78
    assert 77 in catalog
    assert 78 not in catalog
    assert catalog.get(0).name == "The Fool"
    assert catalog.get(0).image == "cards/major/0.jpg"
    assert catalog.get(40).image == "cards/minor/40.jpg"
    assert catalog.summary_lines()[1] == "1=The Magician"


def test_explicit_image_url_wins():
    card = CardInfo(card_id=5, name="X", display_name="X", arcana="major", image_url="https://cdn/x.png")
    assert CardCatalog([card]).get(5).image == "https://cdn/x.png"


def test_ensure_default_deck_is_idempotent(session_factory, db):
    service = CardCatalogService(session_factory)

    assert service.ensure_default_deck() == 78
    assert service.ensure_default_deck() == 0
    assert db.query(Card).count() == 78


def test_load_catalog_from_database(session_factory):
    service = CardCatalogService(session_factory)
    service.ensure_default_deck()

    catalog = service.load_catalog()
    assert len(catalog) == 78
    assert catalog.get(21).name == "The World"
    assert catalog.get(21).keywords
