"""Global FastAPI dependencies for caller identity and shared services.

This module provides:
- get_actor_id: caller identity from the trusted X-User-Id header
- get_pattern_store: the process-wide learned pattern store
- get_orchestrator: the extraction orchestrator built from settings
- get_text_extractor: the document text extractor
- get_learning_service: an InvoiceLearningService bound to the request

Identity is established upstream; this service only requires that it is
present.
"""

from functools import lru_cache
from typing import Optional

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.orm import Session

from config import get_settings
from database import get_db
from domain.extraction.orchestrator import ExtractionOrchestrator
from infrastructure.extractors.pdf_text_extractor import PDFTextExtractor
from infrastructure.providers.registry_init import build_orchestrator
from learning.pattern_store import PatternStore
from learning.services import InvoiceLearningService


def get_actor_id(x_user_id: Optional[str] = Header(None, alias="X-User-Id")) -> str:
    """Authenticated caller from the X-User-Id header.

    Raises:
        HTTPException 401: If the header is absent or blank
    """
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing X-User-Id header",
        )
    return x_user_id.strip()


@lru_cache()
def get_pattern_store() -> PatternStore:
    """Singleton pattern store shared by every request in the process."""
    return PatternStore()


@lru_cache()
def get_orchestrator() -> ExtractionOrchestrator:
    return build_orchestrator(get_settings(), get_pattern_store())


@lru_cache()
def get_text_extractor() -> PDFTextExtractor:
    return PDFTextExtractor()


def get_learning_service(
    db: Session = Depends(get_db),
    actor_id: str = Depends(get_actor_id),
    store: PatternStore = Depends(get_pattern_store),
) -> InvoiceLearningService:
    """Learning service bound to the request's session and caller.

    Example:
        @router.get("/invoices/learning/stats")
        def stats(service: InvoiceLearningService = Depends(get_learning_service)):
            return service.get_learning_stats()
    """
    return InvoiceLearningService(
        db,
        actor_id,
        store,
        suggestion_limit=get_settings().SUGGESTION_LIMIT,
    )
