"""SQLAlchemy Models for InvoiceLearn"""

from .base import Base, PortableJSONB, utcnow
from .correction_record import CorrectionRecord, CorrectionRecordType
from .matching_history import MatchingHistory, MatchingMethod
from .invoice_line_item import InvoiceLineItem

__all__ = [
    "Base",
    "PortableJSONB",
    "utcnow",
    "CorrectionRecord",
    "CorrectionRecordType",
    "MatchingHistory",
    "MatchingMethod",
    "InvoiceLineItem",
]
