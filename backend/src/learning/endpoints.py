"""Learning API endpoints for correction ingestion, matching feedback and suggestions

This module provides API endpoints that feed and query the pattern store:
- POST /invoices/training - Ingest a reviewed invoice (original vs corrected)
- POST /invoices/learning - learn | record | confirm | correct
- GET /invoices/learning - Ranked category suggestions for a line item
- POST /invoices/training/patterns/rebuild - Rebuild patterns from history
- GET /invoices/learning/stats - Pattern and matching statistics
"""

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from config import get_settings
from database import get_db
from dependencies import get_actor_id, get_learning_service, get_pattern_store
from domain.documents.models import DocumentMetadata
from domain.errors import InputValidationError
from .aggregator import PatternAggregator
from .pattern_store import PatternStore
from .schemas import CorrectionSubmission, FieldCorrection, PatternKey
from .services import InvoiceLearningService

logger = logging.getLogger(__name__)

LEARNING_ACTIONS = ("learn", "record", "confirm", "correct")


# Request/Response schemas
class DocumentMetadataPayload(BaseModel):
    """Source document facts sent with a training submission"""
    file_name: Optional[str] = Field(None, alias="fileName")
    page_count: Optional[int] = Field(None, alias="pageCount")
    size_bytes: Optional[int] = Field(None, alias="sizeBytes")

    class Config:
        populate_by_name = True


class TrainingRequest(BaseModel):
    """Reviewed invoice: the extraction as produced and as corrected by a user"""
    invoice_text: Optional[str] = Field(None, alias="invoiceText")
    original_extraction: Optional[Dict[str, Any]] = Field(None, alias="originalExtraction")
    corrected_data: Optional[Dict[str, Any]] = Field(None, alias="correctedData")
    user_confidence: Dict[str, float] = Field(default_factory=dict, alias="userConfidence")
    document_metadata: Optional[DocumentMetadataPayload] = Field(None, alias="documentMetadata")

    class Config:
        populate_by_name = True


class LearningActionRequest(BaseModel):
    """Learning action; which fields are required depends on ``action``"""
    action: Optional[str] = None
    line_item_ref: Optional[str] = Field(None, alias="lineItemRef")
    source_identity: Optional[str] = Field(None, alias="sourceIdentity")
    description_text: Optional[str] = Field(None, alias="descriptionText")
    amount: Any = None
    target_category: Optional[str] = Field(None, alias="targetCategory")
    sub_category_ref: Optional[str] = Field(None, alias="subCategoryRef")
    pattern_key: Optional[str] = Field(None, alias="patternKey")
    matching_history_id: Optional[int] = Field(None, alias="matchingHistoryId")
    corrected_category: Optional[str] = Field(None, alias="correctedCategory")

    class Config:
        populate_by_name = True


class RebuildRequest(BaseModel):
    limit: Optional[int] = Field(None, ge=1)


def _parse_pattern_key(raw: Optional[str]) -> PatternKey:
    if not raw or ":" not in raw:
        raise InputValidationError(f"patternKey must look like 'field:value', got {raw!r}")
    field_name, value = raw.split(":", 1)
    return PatternKey(field_name, value)


# Router
router = APIRouter(prefix="/api/v1/invoices", tags=["learning"])


@router.post("/training")
def submit_training(
    request: TrainingRequest,
    service: InvoiceLearningService = Depends(get_learning_service),
):
    """Store a reviewed invoice and learn a pattern from every changed field.

    Raises:
        InputValidationError: If invoiceText, originalExtraction or
            correctedData is missing (400, nothing stored)
    """
    submission = CorrectionSubmission(
        invoice_text=request.invoice_text,
        original_extraction=request.original_extraction,
        corrected_data=request.corrected_data,
        user_confidence=request.user_confidence,
        document_metadata=(
            DocumentMetadata(**request.document_metadata.model_dump())
            if request.document_metadata else None
        ),
    )
    record = service.ingest_correction(submission)
    changed = [
        correction for correction in map(FieldCorrection.from_dict, record.corrections_json)
        if correction.changed
    ]

    return {
        "success": True,
        "message": "Training data saved",
        "recordId": record.id,
        "correctionCount": len(changed),
        "correctedFields": [correction.field.value for correction in changed],
    }


@router.post("/learning")
def learning_action(
    request: LearningActionRequest,
    service: InvoiceLearningService = Depends(get_learning_service),
):
    """Dispatch a learning action.

    - learn: manual mapping of a line item to ``targetCategory``
    - record: a suggestion (``patternKey``) was applied to a line item
    - confirm: a recorded match was right
    - correct: a recorded match was wrong, ``correctedCategory`` is right

    Raises:
        InputValidationError: Unknown action or missing fields (400)
        NotFoundError: Unknown line item, pattern or history id (404)
    """
    if request.action not in LEARNING_ACTIONS:
        raise InputValidationError(
            f"Invalid action: {request.action!r} (expected one of {', '.join(LEARNING_ACTIONS)})"
        )

    if request.action == "learn":
        history = service.learn_from_mapping(
            request.line_item_ref,
            request.source_identity,
            request.description_text,
            request.amount,
            request.target_category,
            request.sub_category_ref,
        )
        message = "Pattern learned successfully"
    elif request.action == "record":
        history = service.record_match(
            request.line_item_ref,
            _parse_pattern_key(request.pattern_key),
            request.source_identity,
            request.description_text,
            request.amount,
        )
        message = "Match recorded"
    else:
        if request.matching_history_id is None:
            raise InputValidationError("Missing required fields: matchingHistoryId")
        if request.action == "confirm":
            history = service.confirm_match(request.matching_history_id)
            message = "Match confirmed successfully"
        else:
            history = service.correct_match(
                request.matching_history_id,
                request.corrected_category,
                request.sub_category_ref,
            )
            message = "Match corrected and pattern updated"

    return {
        "success": True,
        "message": message,
        "matchingHistory": history.to_dict(),
    }


@router.get("/learning")
def get_suggestions(
    source_identity: Optional[str] = Query(None, alias="sourceIdentity"),
    description_text: Optional[str] = Query(None, alias="descriptionText"),
    amount: Optional[str] = Query(None),
    service: InvoiceLearningService = Depends(get_learning_service),
):
    """Ranked category suggestions; all three parameters are required."""
    suggestions = service.get_suggestions(source_identity, description_text, amount)
    return {
        "success": True,
        "suggestions": [suggestion.to_dict() for suggestion in suggestions],
    }


@router.post("/training/patterns/rebuild")
def rebuild_patterns(
    request: Optional[RebuildRequest] = None,
    actor_id: str = Depends(get_actor_id),
    db: Session = Depends(get_db),
    store: PatternStore = Depends(get_pattern_store),
):
    """Rebuild the pattern store from the newest correction records.

    Returns counts only; the patterns themselves are served by GET /learning.
    """
    limit = (request.limit if request else None) or get_settings().PATTERN_REBUILD_LIMIT
    summary = PatternAggregator(db, store).rebuild_patterns(limit=limit)

    logger.info(
        f"Pattern rebuild requested: {summary.total_records} records, "
        f"{summary.patterns_produced} patterns",
        extra={"actor_id": actor_id},
    )
    return {
        "success": True,
        "totalRecords": summary.total_records,
        "patternsProduced": summary.patterns_produced,
        "confirmationsReplayed": summary.confirmations_replayed,
    }


@router.get("/learning/stats")
def learning_stats(service: InvoiceLearningService = Depends(get_learning_service)):
    """Pattern totals by field, correction count and matching accuracy."""
    stats = service.get_learning_stats()
    return {
        "success": True,
        "stats": {
            "totalPatterns": stats["total_patterns"],
            "patternsByField": stats["patterns_by_field"],
            "averageConfidence": stats["average_confidence"],
            "correctionRecords": stats["correction_records"],
            "matchesRecorded": stats["matches_recorded"],
            "matchesConfirmed": stats["matches_confirmed"],
            "matchesCorrected": stats["matches_corrected"],
            "accuracyRate": stats["accuracy_rate"],
        },
    }
