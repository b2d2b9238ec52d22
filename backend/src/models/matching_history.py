"""MatchingHistory model - every category applied to an invoice line item.

A MANUAL row comes from a user mapping; a PATTERN row comes from an applied
suggestion and remembers the pattern that produced it, so later confirmation
or correction feedback can be routed to that pattern.
"""

from enum import Enum as PyEnum

from sqlalchemy import Column, Integer, Text, Numeric, Float, Boolean, DateTime, Index

from .base import Base, utcnow


class MatchingMethod(str, PyEnum):
    """How a category ended up on a line item"""
    MANUAL = "MANUAL"
    PATTERN = "PATTERN"


class MatchingHistory(Base):
    __tablename__ = "matching_history"

    id = Column(Integer, primary_key=True, autoincrement=True)
    actor_id = Column(Text, nullable=False)

    line_item_ref = Column(Text, nullable=False)
    source_identity = Column(Text, nullable=False)
    description_text = Column(Text, nullable=False)
    amount = Column(Numeric(14, 2), nullable=False)

    category = Column(Text, nullable=False)
    sub_category_ref = Column(Text, nullable=True)
    confidence = Column(Float, nullable=False, default=1.0)
    matching_method = Column(Text, nullable=False, default=MatchingMethod.MANUAL.value)

    # Producing pattern (PATTERN rows only)
    pattern_field = Column(Text, nullable=True)
    pattern_value = Column(Text, nullable=True)

    user_confirmed = Column(Boolean, nullable=False, default=False)
    user_corrected = Column(Boolean, nullable=False, default=False)
    corrected_category = Column(Text, nullable=True)
    confirmed_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, nullable=False, default=utcnow)

    def to_dict(self):
        """Convert matching history entry to dictionary representation"""
        return {
            "id": self.id,
            "line_item_ref": self.line_item_ref,
            "source_identity": self.source_identity,
            "description_text": self.description_text,
            "amount": str(self.amount),
            "category": self.category,
            "sub_category_ref": self.sub_category_ref,
            "confidence": self.confidence,
            "matching_method": self.matching_method,
            "user_confirmed": self.user_confirmed,
            "user_corrected": self.user_corrected,
            "corrected_category": self.corrected_category,
            "created_at": self.created_at.isoformat(),
        }


Index("idx_matching_history_confirmed", MatchingHistory.user_confirmed, MatchingHistory.confirmed_at)
