"""Correction learning services for InvoiceLearn

This module provides services for:
- Learning category mappings from manual line item mappings
- Recording, confirming and correcting pattern-based matches
- Ingesting reviewed invoice corrections
- Serving ranked suggestions from the pattern store

Every mutation validates its inputs and resolves its references before the
first write. The pattern store is only touched after the database commit,
and always from the persisted record, so a later rebuild sees the same
observations. Commit and reinforcement run inside the store's exclusive
section so a concurrent rebuild cannot count a record twice.
"""

import logging
import re
from decimal import Decimal, InvalidOperation, ROUND_FLOOR
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from domain.errors import InputValidationError, NotFoundError
from models.base import utcnow
from models.correction_record import CorrectionRecord, CorrectionRecordType
from models.invoice_line_item import InvoiceLineItem
from models.matching_history import MatchingHistory, MatchingMethod
from infrastructure.repositories.learning_repository import LearningRepository

from .observations import derive_observations
from .pattern_store import PatternStore
from .schemas import (
    CorrectableField,
    CorrectionRecordData,
    CorrectionSubmission,
    FieldCorrection,
    LearnedPattern,
    MatchSuggestion,
    PatternKey,
    build_corrections,
    normalize_value,
)

logger = logging.getLogger(__name__)

DEFAULT_SUGGESTION_LIMIT = 5

STOP_WORDS = {'the', 'and', 'for', 'ltd', 'limited', 'inc', 'corp'}
MAX_KEYWORDS = 3


def extract_keywords(text: Optional[str]) -> Tuple[str, ...]:
    """First three meaningful lowercase words of a text.

    Example:
        >>> extract_keywords("The Steel Beams Ltd - 200UB")
        ('steel', 'beams', '200ub')
    """
    if not text:
        return ()
    words = re.sub(r"[^\w\s]", " ", text.lower()).split()
    meaningful = [w for w in words if len(w) > 2 and w not in STOP_WORDS]
    return tuple(meaningful[:MAX_KEYWORDS])


def amount_band(amount: Decimal) -> Tuple[Decimal, Decimal]:
    """Amount range an example covers: 50 wide under 100, 200 under 1000, else 1000."""
    if amount < 100:
        size = Decimal(50)
    elif amount < 1000:
        size = Decimal(200)
    else:
        size = Decimal(1000)
    low = (amount / size).to_integral_value(rounding=ROUND_FLOOR) * size
    return low, low + size


def _parse_amount(value: Any, name: str = "amount") -> Decimal:
    try:
        parsed = Decimal(str(value).replace(",", "").replace("$", "").strip()).quantize(Decimal("0.01"))
    except (InvalidOperation, ValueError):
        raise InputValidationError(f"{name} must be a number, got {value!r}")
    # NaN passes quantize unchanged
    if not parsed.is_finite():
        raise InputValidationError(f"{name} must be a finite number, got {value!r}")
    return parsed


def _require(**values) -> None:
    missing = [
        name for name, value in values.items()
        if value is None or (isinstance(value, str) and not value.strip())
    ]
    if missing:
        raise InputValidationError(f"Missing required fields: {', '.join(missing)}")


def _match_reason(
    pattern: LearnedPattern,
    source_identity: str,
    description_text: str,
    amount: Decimal,
) -> Optional[str]:
    """Why a category pattern applies to this input, or None when it does not."""
    description_keywords = set(extract_keywords(description_text))
    source_keywords = extract_keywords(source_identity)
    percent = round(pattern.confidence * 100)

    for example in pattern.examples:
        if description_keywords & set(extract_keywords(example.text)):
            return f"Similar items matched to {pattern.value} ({percent}% confidence)"

    for example in pattern.examples:
        if source_keywords and extract_keywords(example.source_identity) == source_keywords:
            return (
                f'Supplier "{source_identity}" previously matched to {pattern.value} '
                f"({pattern.observations} times)"
            )

    for example in pattern.examples:
        if example.amount is None:
            continue
        low, high = amount_band(example.amount)
        if low <= amount <= high:
            return f"Amount ${amount} typically matches {pattern.value} range"

    return None


class InvoiceLearningService:
    """Service for learning invoice line item categories from user feedback.

    Bound to one database session, the caller's identity and the process-wide
    pattern store.
    """

    def __init__(
        self,
        db: Session,
        actor_id: str,
        store: PatternStore,
        suggestion_limit: int = DEFAULT_SUGGESTION_LIMIT,
    ):
        self.db = db
        self.actor_id = actor_id
        self.store = store
        self.suggestion_limit = suggestion_limit
        self.repository = LearningRepository(db)

    def learn_from_mapping(
        self,
        line_item_ref: str,
        source_identity: str,
        description_text: str,
        amount: Any,
        target_category: str,
        sub_category_ref: Optional[str] = None,
    ) -> MatchingHistory:
        """Learn from a manual category mapping.

        Args:
            line_item_ref: Invoice line item the user mapped
            source_identity: Supplier / vendor identity
            description_text: Line item description
            amount: Line item amount
            target_category: Category the user chose
            sub_category_ref: Optional finer-grained target

        Returns:
            MANUAL, confirmed MatchingHistory row

        Raises:
            InputValidationError: If a required field is missing or malformed
            NotFoundError: If the line item does not exist
        """
        _require(
            line_item_ref=line_item_ref,
            source_identity=source_identity,
            description_text=description_text,
            amount=amount,
            target_category=target_category,
        )
        parsed_amount = _parse_amount(amount)
        line_item = self._get_line_item(line_item_ref)

        history, record = self._record_mapping(
            line_item, source_identity, description_text, parsed_amount,
            target_category, sub_category_ref,
        )
        with self.store.exclusive():
            self.db.commit()
            self._reinforce_from(record)
            logger.info(
                f"Learned mapping for line item {line_item_ref}: "
                f"{description_text!r} -> {history.category}"
            )
        return history

    def record_match(
        self,
        line_item_ref: str,
        pattern_key: PatternKey,
        source_identity: str,
        description_text: str,
        amount: Any,
    ) -> MatchingHistory:
        """Record that a suggested pattern was applied to a line item.

        Raises:
            InputValidationError: If a required field is missing
            NotFoundError: If the line item or the pattern does not exist
        """
        _require(
            line_item_ref=line_item_ref,
            source_identity=source_identity,
            description_text=description_text,
            amount=amount,
        )
        parsed_amount = _parse_amount(amount)
        line_item = self._get_line_item(line_item_ref)
        pattern = self.store.get(PatternKey(*pattern_key))
        if pattern is None:
            raise NotFoundError(f"Pattern not found: {PatternKey(*pattern_key)}")

        self.repository.set_line_item_category(line_item, pattern.value, pattern.sub_category_ref)
        history = self.repository.create_matching_history(
            actor_id=self.actor_id,
            line_item_ref=line_item.id,
            source_identity=source_identity,
            description_text=description_text,
            amount=parsed_amount,
            category=pattern.value,
            sub_category_ref=pattern.sub_category_ref,
            matching_method=MatchingMethod.PATTERN,
            confidence=pattern.confidence,
            pattern_field=pattern.field,
            pattern_value=pattern.value,
        )
        self.db.commit()
        return history

    def confirm_match(self, history_id: int) -> MatchingHistory:
        """Mark a match as correct and reinforce the pattern that produced it.

        Confirming an already confirmed match changes nothing.

        Raises:
            NotFoundError: If the matching history entry does not exist
        """
        history = self._get_history(history_id)
        if history.user_confirmed:
            return history

        history.user_confirmed = True
        history.confirmed_at = utcnow()
        with self.store.exclusive():
            self.db.commit()
            if history.matching_method == MatchingMethod.PATTERN.value and history.pattern_field:
                self.store.confirm(
                    PatternKey(history.pattern_field, history.pattern_value),
                    history.confirmed_at,
                )
        logger.info(f"Confirmed match {history_id}")
        return history

    def correct_match(
        self,
        history_id: int,
        corrected_category: str,
        sub_category_ref: Optional[str] = None,
    ) -> MatchingHistory:
        """Record that a match was wrong and learn the corrected category.

        The pattern behind the wrong match is left untouched.

        Returns:
            New MANUAL MatchingHistory row for the corrected category

        Raises:
            InputValidationError: If corrected_category is missing
            NotFoundError: If the history entry or its line item does not exist
        """
        _require(corrected_category=corrected_category)
        history = self._get_history(history_id)
        line_item = self._get_line_item(history.line_item_ref)

        history.user_corrected = True
        history.corrected_category = normalize_value(CorrectableField.CATEGORY, corrected_category)

        new_history, record = self._record_mapping(
            line_item,
            history.source_identity,
            history.description_text,
            Decimal(history.amount),
            corrected_category,
            sub_category_ref,
        )
        with self.store.exclusive():
            self.db.commit()
            self._reinforce_from(record)
            logger.info(
                f"Corrected match {history_id}: {history.category} -> {new_history.category}"
            )
        return new_history

    def get_suggestions(
        self,
        source_identity: str,
        description_text: str,
        amount: Any,
    ) -> List[MatchSuggestion]:
        """Ranked category suggestions for a line item.

        Ranked by confidence, then most recently reinforced. Empty when no
        pattern matches.

        Raises:
            InputValidationError: If a query parameter is missing or malformed
        """
        _require(source_identity=source_identity, description_text=description_text, amount=amount)
        parsed_amount = _parse_amount(amount)

        suggestions = []
        for pattern in self.store.for_field(CorrectableField.CATEGORY.value):
            reason = _match_reason(pattern, source_identity, description_text, parsed_amount)
            if reason is None:
                continue
            suggestions.append(MatchSuggestion(
                field=pattern.field,
                value=pattern.value,
                confidence=pattern.confidence,
                examples=pattern.examples,
                reason=reason,
                pattern_key=pattern.key,
                sub_category_ref=pattern.sub_category_ref,
            ))
            if len(suggestions) >= self.suggestion_limit:
                break

        logger.info(
            f"Generated {len(suggestions)} suggestions for: {source_identity} - {description_text}"
        )
        return suggestions

    def ingest_correction(self, submission: CorrectionSubmission) -> CorrectionRecord:
        """Store a reviewed invoice and learn from every changed field.

        Raises:
            InputValidationError: If invoiceText, originalExtraction or
                correctedData is absent (nothing is written)
        """
        missing = submission.missing_parts()
        if missing:
            raise InputValidationError(f"Missing required fields: {', '.join(missing)}")

        corrections = build_corrections(submission.original_extraction, submission.corrected_data)
        original = submission.original_extraction
        corrected = submission.corrected_data

        description = (
            _field_value(corrected, CorrectableField.DESCRIPTION)
            or _field_value(original, CorrectableField.DESCRIPTION)
            or _first_line(submission.invoice_text)
        )
        source_identity = (
            _field_value(corrected, CorrectableField.VENDOR_NAME)
            or _field_value(original, CorrectableField.VENDOR_NAME)
        )
        amount = None
        for field_name in (CorrectableField.TOTAL, CorrectableField.SUBTOTAL):
            raw = _field_value(corrected, field_name) or _field_value(original, field_name)
            if raw is not None and normalize_value(field_name, raw) is not None:
                amount = Decimal(normalize_value(field_name, raw))
                break

        record = self.repository.create_correction_record(
            record_type=CorrectionRecordType.REVIEW,
            actor_id=self.actor_id,
            invoice_text=submission.invoice_text,
            corrections_json=[c.to_dict() for c in corrections],
            user_confidence_json=dict(submission.user_confidence),
            document_metadata_json=(
                submission.document_metadata.model_dump() if submission.document_metadata else None
            ),
            source_identity=str(source_identity) if source_identity is not None else None,
            description_text=str(description) if description is not None else None,
            amount=amount,
        )
        with self.store.exclusive():
            self.db.commit()
            learned = self._reinforce_from(record)
            logger.info(
                f"Ingested correction record {record.id}: "
                f"{sum(1 for c in corrections if c.changed)} changed fields, {learned} patterns reinforced"
            )
        return record

    def get_learning_stats(self) -> Dict[str, Any]:
        """Pattern totals by field, correction count and matching accuracy."""
        patterns = list(self.store.snapshot().values())
        by_field: Dict[str, int] = {}
        for pattern in patterns:
            by_field[pattern.field] = by_field.get(pattern.field, 0) + 1

        counts = self.repository.get_matching_counts()
        reviewed = counts["confirmed"] + counts["corrected"]

        return {
            "total_patterns": len(patterns),
            "patterns_by_field": by_field,
            "average_confidence": (
                round(sum(p.confidence for p in patterns) / len(patterns), 3) if patterns else 0.0
            ),
            "correction_records": self.repository.count_correction_records(),
            "matches_recorded": counts["total"],
            "matches_confirmed": counts["confirmed"],
            "matches_corrected": counts["corrected"],
            "accuracy_rate": round(counts["confirmed"] / reviewed, 3) if reviewed else 0.0,
        }

    def _record_mapping(
        self,
        line_item: InvoiceLineItem,
        source_identity: str,
        description_text: str,
        amount: Decimal,
        target_category: str,
        sub_category_ref: Optional[str],
    ) -> Tuple[MatchingHistory, CorrectionRecord]:
        category = normalize_value(CorrectableField.CATEGORY, target_category)
        correction = FieldCorrection(
            field=CorrectableField.CATEGORY,
            original=line_item.category,
            corrected=category,
        )

        record = self.repository.create_correction_record(
            record_type=CorrectionRecordType.CATEGORY_MAPPING,
            actor_id=self.actor_id,
            invoice_text=description_text,
            corrections_json=[correction.to_dict()],
            user_confidence_json={CorrectableField.CATEGORY.value: 1.0},
            line_item_ref=line_item.id,
            source_identity=source_identity,
            description_text=description_text,
            amount=amount,
            sub_category_ref=sub_category_ref,
        )
        self.repository.set_line_item_category(line_item, category, sub_category_ref)
        history = self.repository.create_matching_history(
            actor_id=self.actor_id,
            line_item_ref=line_item.id,
            source_identity=source_identity,
            description_text=description_text,
            amount=amount,
            category=category,
            sub_category_ref=sub_category_ref,
            matching_method=MatchingMethod.MANUAL,
            confidence=1.0,
            user_confirmed=True,
            confirmed_at=record.created_at,
        )
        return history, record

    def _reinforce_from(self, record: CorrectionRecord) -> int:
        observations = derive_observations(CorrectionRecordData.from_model(record))
        for observation in observations:
            self.store.reinforce(observation)
        return len(observations)

    def _get_line_item(self, line_item_ref: str) -> InvoiceLineItem:
        line_item = self.repository.get_line_item(line_item_ref)
        if line_item is None:
            raise NotFoundError(f"Invoice line item not found: {line_item_ref}")
        return line_item

    def _get_history(self, history_id: Any) -> MatchingHistory:
        try:
            key = int(history_id)
        except (TypeError, ValueError):
            raise NotFoundError(f"Matching history not found: {history_id}")
        history = self.repository.get_matching_history(key)
        if history is None:
            raise NotFoundError(f"Matching history not found: {history_id}")
        return history


def _field_value(data: Optional[Dict[str, Any]], field_name: CorrectableField) -> Any:
    for key, value in (data or {}).items():
        if CorrectableField.from_key(key) == field_name and value not in (None, ""):
            return value
    return None


def _first_line(text: Optional[str]) -> Optional[str]:
    for line in (text or "").splitlines():
        if line.strip():
            return line.strip()
    return None
