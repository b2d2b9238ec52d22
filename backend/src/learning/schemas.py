"""Learning schemas: correctable fields, corrections, patterns and suggestions.

Correction history is an explicit list of FieldCorrection over the closed
CorrectableField set. Everything derived from it (observations, patterns,
suggestions) is an immutable value object.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Dict, List, NamedTuple, Optional, Tuple

from pydantic import BaseModel, Field

from domain.documents.models import DocumentMetadata
from domain.extraction.date_parser import format_date_iso

from .matchers import FieldMatcher, MatcherKind

logger = logging.getLogger(__name__)

INITIAL_CONFIDENCE = Decimal("0.7")
REINFORCEMENT_STEP = Decimal("0.1")
MAX_CONFIDENCE = Decimal("1.0")


class CorrectableField(str, Enum):
    INVOICE_NUMBER = "invoice_number"
    ISSUE_DATE = "issue_date"
    VENDOR_NAME = "vendor_name"
    VENDOR_TAX_ID = "vendor_tax_id"
    DESCRIPTION = "description"
    SUBTOTAL = "subtotal"
    TAX_AMOUNT = "tax_amount"
    TOTAL = "total"
    CATEGORY = "category"

    @classmethod
    def from_key(cls, key: str) -> Optional["CorrectableField"]:
        """Field for a submitted key (snake_case or the review UI's camelCase)."""
        if key in _FIELD_ALIASES:
            return _FIELD_ALIASES[key]
        try:
            return cls(key)
        except ValueError:
            return None

    @property
    def matcher_kind(self) -> MatcherKind:
        if self in (CorrectableField.SUBTOTAL, CorrectableField.TAX_AMOUNT, CorrectableField.TOTAL):
            return MatcherKind.NUMERIC
        if self == CorrectableField.ISSUE_DATE:
            return MatcherKind.DATE
        return MatcherKind.LITERAL


_FIELD_ALIASES = {
    "invoiceNumber": CorrectableField.INVOICE_NUMBER,
    "date": CorrectableField.ISSUE_DATE,
    "issueDate": CorrectableField.ISSUE_DATE,
    "vendorName": CorrectableField.VENDOR_NAME,
    "vendorTaxId": CorrectableField.VENDOR_TAX_ID,
    "amount": CorrectableField.SUBTOTAL,
    "tax": CorrectableField.TAX_AMOUNT,
    "taxAmount": CorrectableField.TAX_AMOUNT,
}


def normalize_value(field_name: CorrectableField, raw: Any) -> Optional[str]:
    """Canonical string form used in pattern keys.

    Returns None for empty values and for values that cannot be read as the
    field's kind (e.g. "abc" for a total).
    """
    if raw is None:
        return None
    if isinstance(raw, str) and not raw.strip():
        return None

    kind = field_name.matcher_kind
    if kind == MatcherKind.NUMERIC:
        try:
            cleaned = str(raw).replace(",", "").replace("$", "").strip()
            amount = Decimal(cleaned).quantize(Decimal("0.01"))
        except (InvalidOperation, ValueError):
            return None
        return str(amount) if amount.is_finite() else None
    if kind == MatcherKind.DATE:
        return format_date_iso(raw)

    collapsed = " ".join(str(raw).split())
    if field_name == CorrectableField.CATEGORY:
        return collapsed.upper()
    return collapsed.lower()


@dataclass(frozen=True)
class FieldCorrection:
    field: CorrectableField
    original: Optional[str]
    corrected: Optional[str]

    @property
    def changed(self) -> bool:
        """True when there is a corrected value and it differs from the original."""
        corrected = normalize_value(self.field, self.corrected)
        if corrected is None:
            return False
        return corrected != normalize_value(self.field, self.original)

    def to_dict(self) -> dict:
        return {"field": self.field.value, "original": self.original, "corrected": self.corrected}

    @classmethod
    def from_dict(cls, data: dict) -> "FieldCorrection":
        return cls(
            field=CorrectableField(data["field"]),
            original=data.get("original"),
            corrected=data.get("corrected"),
        )


def _as_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    return value if isinstance(value, str) else str(value)


def build_corrections(original: Dict[str, Any], corrected: Dict[str, Any]) -> List[FieldCorrection]:
    """Pair original and corrected values per known field.

    Unknown keys are dropped (and logged); every known key present in
    ``corrected`` yields one FieldCorrection, changed or not.
    """
    originals: Dict[CorrectableField, Any] = {}
    for key, value in (original or {}).items():
        known = CorrectableField.from_key(key)
        if known is not None:
            originals[known] = value

    corrections = []
    for key, value in (corrected or {}).items():
        known = CorrectableField.from_key(key)
        if known is None:
            logger.debug(f"Ignoring unknown corrected field: {key}")
            continue
        corrections.append(FieldCorrection(
            field=known,
            original=_as_text(originals.get(known)),
            corrected=_as_text(value),
        ))
    return corrections


class PatternKey(NamedTuple):
    field: str
    value: str

    def __str__(self) -> str:
        return f"{self.field}:{self.value}"


@dataclass(frozen=True)
class PatternExample:
    """Literal input that produced a pattern"""
    text: str
    amount: Optional[Decimal] = None
    source_identity: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "text": self.text,
            "amount": str(self.amount) if self.amount is not None else None,
            "sourceIdentity": self.source_identity,
        }


@dataclass(frozen=True)
class PatternObservation:
    key: PatternKey
    matcher: MatcherKind
    example: PatternExample
    observed_at: datetime
    sub_category_ref: Optional[str] = None


@dataclass(frozen=True)
class LearnedPattern:
    """Confidence-weighted pattern keyed by (field, normalized value).

    confidence_score is a Decimal so repeated +0.1 steps land exactly on
    0.8, 0.9, 1.0.
    """
    field: str
    value: str
    matcher: MatcherKind
    confidence_score: Decimal
    examples: Tuple[PatternExample, ...]
    observations: int
    last_reinforced_at: datetime
    sub_category_ref: Optional[str] = None

    def __post_init__(self):
        if not self.examples:
            raise ValueError("A learned pattern needs at least one example")
        if not (Decimal("0") <= self.confidence_score <= MAX_CONFIDENCE):
            raise ValueError(f"Confidence out of range: {self.confidence_score}")

    @property
    def key(self) -> PatternKey:
        return PatternKey(self.field, self.value)

    @property
    def confidence(self) -> float:
        return float(self.confidence_score)

    @property
    def field_matcher(self) -> FieldMatcher:
        return FieldMatcher(self.matcher, self.value)

    def to_dict(self) -> dict:
        return {
            "field": self.field,
            "value": self.value,
            "matcher": self.matcher.value,
            "confidence": self.confidence,
            "examples": [example.to_dict() for example in self.examples],
            "observations": self.observations,
            "subCategoryRef": self.sub_category_ref,
            "lastReinforcedAt": self.last_reinforced_at.isoformat(),
        }


@dataclass(frozen=True)
class MatchSuggestion:
    """Read-only projection of a pattern answering a suggestion query"""
    field: str
    value: str
    confidence: float
    examples: Tuple[PatternExample, ...]
    reason: str
    pattern_key: PatternKey
    sub_category_ref: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "field": self.field,
            "value": self.value,
            "confidence": self.confidence,
            "examples": [example.to_dict() for example in self.examples],
            "reason": self.reason,
            "patternKey": str(self.pattern_key),
            "subCategoryRef": self.sub_category_ref,
        }


@dataclass
class RebuildSummary:
    total_records: int
    patterns_produced: int
    confirmations_replayed: int = 0


@dataclass
class CorrectionRecordData:
    """Typed view of a stored correction record"""
    id: int
    record_type: str
    corrections: List[FieldCorrection]
    created_at: datetime
    source_identity: Optional[str] = None
    description_text: Optional[str] = None
    amount: Optional[Decimal] = None
    sub_category_ref: Optional[str] = None
    user_confidence: Dict[str, float] = field(default_factory=dict)

    @classmethod
    def from_model(cls, record) -> "CorrectionRecordData":
        return cls(
            id=record.id,
            record_type=record.record_type,
            corrections=[FieldCorrection.from_dict(c) for c in (record.corrections_json or [])],
            created_at=record.created_at,
            source_identity=record.source_identity,
            description_text=record.description_text,
            amount=Decimal(record.amount) if record.amount is not None else None,
            sub_category_ref=record.sub_category_ref,
            user_confidence=dict(record.user_confidence_json or {}),
        )


class CorrectionSubmission(BaseModel):
    """Correction ingestion payload from the review workflow.

    The three required parts are optional here so the service can reject a
    submission with a domain validation error instead of a schema error.
    """

    invoice_text: Optional[str] = None
    original_extraction: Optional[Dict[str, Any]] = None
    corrected_data: Optional[Dict[str, Any]] = None
    user_confidence: Dict[str, float] = Field(default_factory=dict)
    document_metadata: Optional[DocumentMetadata] = None

    def missing_parts(self) -> List[str]:
        missing = []
        if not self.invoice_text or not self.invoice_text.strip():
            missing.append("invoiceText")
        if self.original_extraction is None:
            missing.append("originalExtraction")
        if self.corrected_data is None:
            missing.append("correctedData")
        return missing
