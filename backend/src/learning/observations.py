"""Turning stored correction records into pattern observations.

Used by the incremental path (right after a record is written) and by the
aggregator replay, so both see the same observations for the same record.
"""

from typing import List

from models.correction_record import CorrectionRecordType

from .schemas import (
    CorrectableField,
    CorrectionRecordData,
    FieldCorrection,
    PatternExample,
    PatternKey,
    PatternObservation,
    normalize_value,
)


def _carries_signal(record: CorrectionRecordData, correction: FieldCorrection) -> bool:
    # A manual category mapping is itself the correction, even when the line
    # item already carried that category.
    if record.record_type == CorrectionRecordType.CATEGORY_MAPPING:
        return normalize_value(correction.field, correction.corrected) is not None
    return correction.changed


def _example_for(record: CorrectionRecordData, correction: FieldCorrection) -> PatternExample:
    if correction.field == CorrectableField.CATEGORY:
        return PatternExample(
            text=" ".join((record.description_text or "").split()),
            amount=record.amount,
            source_identity=record.source_identity,
        )
    return PatternExample(
        text=" ".join(str(correction.corrected).split()),
        amount=None,
        source_identity=record.source_identity,
    )


def derive_observations(record: CorrectionRecordData) -> List[PatternObservation]:
    """One observation per field that carries learning signal, in record order."""
    observations = []
    for correction in record.corrections:
        if not _carries_signal(record, correction):
            continue

        example = _example_for(record, correction)
        if not example.text:
            continue

        observations.append(PatternObservation(
            key=PatternKey(correction.field.value, normalize_value(correction.field, correction.corrected)),
            matcher=correction.field.matcher_kind,
            example=example,
            observed_at=record.created_at,
            sub_category_ref=record.sub_category_ref if correction.field == CorrectableField.CATEGORY else None,
        ))
    return observations
