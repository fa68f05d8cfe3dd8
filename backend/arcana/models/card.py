"""
Card reference data
"""
from sqlalchemy import Column, Integer, String, Text

from arcana.core.database import Base
from arcana.models.prediction import JSONType


class Card(Base):
    """One card of the deck; read-only during readings"""
    __tablename__ = "cards"

    card_id = Column(Integer, primary_key=True, autoincrement=False)
    name = Column(String(100), nullable=False)
    display_name = Column(String(100), nullable=False)
    arcana = Column(String(20), nullable=False)  # major / minor
    suit = Column(String(20), nullable=True)  # None for major arcana
    keywords = Column(JSONType, nullable=False, default=list)
    short_meaning = Column(Text, nullable=True)
    long_meaning = Column(Text, nullable=True)
    image_url = Column(String(255), nullable=True)

    def __repr__(self):
        return f"<Card(card_id={self.card_id}, name={self.name})>"
