"""CorrectionRecord model - durable history of human corrections.

Each row is one human-reviewed document (or one manual category mapping):
the original extraction, the corrected values and the context needed to
re-derive learned patterns. Rows are written once and never updated.
"""

from sqlalchemy import Column, Integer, Text, Numeric, DateTime, Index

from .base import Base, PortableJSONB, utcnow


class CorrectionRecordType:
    """Marker values distinguishing correction history from business records"""
    REVIEW = "REVIEW"            # correction ingestion from the review workflow
    CATEGORY_MAPPING = "CATEGORY_MAPPING"  # learn / correct actions


class CorrectionRecord(Base):
    """Immutable original-vs-corrected snapshot used as the unit of learning signal.

    corrections_json holds a list of {"field", "original", "corrected"} entries
    over the closed CorrectableField set; it is never an open key/value map.
    """
    __tablename__ = "correction_record"

    id = Column(Integer, primary_key=True, autoincrement=True)
    record_type = Column(Text, nullable=False)
    actor_id = Column(Text, nullable=False)

    invoice_text = Column(Text, nullable=False)
    corrections_json = Column(PortableJSONB, nullable=False)
    user_confidence_json = Column(PortableJSONB, nullable=False, default=dict)
    document_metadata_json = Column(PortableJSONB, nullable=True)

    # Category-mapping context
    line_item_ref = Column(Text, nullable=True)
    source_identity = Column(Text, nullable=True)
    description_text = Column(Text, nullable=True)
    amount = Column(Numeric(14, 2), nullable=True)
    sub_category_ref = Column(Text, nullable=True)

    created_at = Column(DateTime, nullable=False, default=utcnow)

    def to_dict(self):
        """Convert correction record to dictionary representation"""
        return {
            "id": self.id,
            "record_type": self.record_type,
            "actor_id": self.actor_id,
            "corrections": self.corrections_json,
            "user_confidence": self.user_confidence_json,
            "document_metadata": self.document_metadata_json,
            "line_item_ref": self.line_item_ref,
            "source_identity": self.source_identity,
            "description_text": self.description_text,
            "amount": str(self.amount) if self.amount is not None else None,
            "sub_category_ref": self.sub_category_ref,
            "created_at": self.created_at.isoformat(),
        }


Index("idx_correction_record_created", CorrectionRecord.created_at.desc())
Index("idx_correction_record_type_created", CorrectionRecord.record_type, CorrectionRecord.created_at.desc())
