"""InvoiceLearn Backend - Main FastAPI Application

Invoice extraction with provider fallback, and correction learning.

This module creates and configures the main FastAPI application, including:
- API routers (documents, invoice parsing, learning)
- Middleware (request ID correlation, CORS)
- Exception handlers mapping domain errors to structured failure bodies
- Health endpoint
"""

import logging
from contextlib import asynccontextmanager
from typing import Any

from fastapi import Depends, FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from starlette.exceptions import HTTPException as StarletteHTTPException

from config import get_settings
from database import get_db, get_db_session, init_db
from dependencies import get_orchestrator, get_pattern_store
from domain.errors import InvoiceLearnError, NotFoundError
from domain.extraction.strategies import UnknownStrategyError
from learning.aggregator import PatternAggregator
from learning.pattern_store import PatternStore
from observability.logging_config import configure_logging
from observability.middleware import RequestIDMiddleware

# API Routers
from api.v1.documents.router import router as documents_router
from api.v1.extraction.router import router as extraction_router
from learning.endpoints import router as learning_router

settings = get_settings()

configure_logging(level=settings.LOG_LEVEL, json_format=settings.LOG_JSON)

logger = logging.getLogger(__name__)

HTTP_ERROR_KINDS = {
    status.HTTP_400_BAD_REQUEST: "VALIDATION_ERROR",
    status.HTTP_401_UNAUTHORIZED: "UNAUTHORIZED",
    status.HTTP_403_FORBIDDEN: "FORBIDDEN",
    status.HTTP_404_NOT_FOUND: "NOT_FOUND",
    status.HTTP_405_METHOD_NOT_ALLOWED: "METHOD_NOT_ALLOWED",
}


def error_response(status_code: int, kind: str, message: str) -> JSONResponse:
    """Structured failure body shared by every handler."""
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "error": {"kind": kind, "message": message}},
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler.

    - Startup: create missing tables, rebuild the pattern store from the
      newest correction records, build the extraction providers
    - Shutdown: log only; the pattern store is rebuilt on the next start
    """
    logger.info("InvoiceLearn API starting up...")
    logger.info(f"Environment: {settings.ENVIRONMENT}")

    init_db()
    with get_db_session() as session:
        PatternAggregator(session, get_pattern_store()).rebuild_patterns(
            limit=settings.PATTERN_REBUILD_LIMIT
        )
    get_orchestrator()

    yield

    logger.info("InvoiceLearn API shutting down...")


app = FastAPI(
    title="InvoiceLearn API",
    description="Invoice extraction with provider fallback and correction learning",
    version="0.1.0",
    docs_url="/docs" if settings.ENVIRONMENT != "production" else None,
    redoc_url="/redoc" if settings.ENVIRONMENT != "production" else None,
    openapi_url="/openapi.json" if settings.ENVIRONMENT != "production" else None,
    lifespan=lifespan,
)


# =============================================================================
# MIDDLEWARE CONFIGURATION
# =============================================================================

app.add_middleware(RequestIDMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Request-ID"],
)


# =============================================================================
# EXCEPTION HANDLERS
# =============================================================================

@app.exception_handler(NotFoundError)
async def not_found_exception_handler(request: Request, exc: NotFoundError) -> JSONResponse:
    logger.warning(f"Not found on {request.method} {request.url.path}: {exc.message}")
    return error_response(status.HTTP_404_NOT_FOUND, exc.kind, exc.message)


@app.exception_handler(InvoiceLearnError)
async def domain_exception_handler(request: Request, exc: InvoiceLearnError) -> JSONResponse:
    """Handle validation and document errors raised before any mutation."""
    logger.warning(f"{exc.kind} on {request.method} {request.url.path}: {exc.message}")
    return error_response(status.HTTP_400_BAD_REQUEST, exc.kind, exc.message)


@app.exception_handler(UnknownStrategyError)
async def unknown_strategy_exception_handler(
    request: Request,
    exc: UnknownStrategyError
) -> JSONResponse:
    logger.warning(f"Unknown strategy on {request.method} {request.url.path}: {exc}")
    return error_response(status.HTTP_400_BAD_REQUEST, "VALIDATION_ERROR", str(exc))


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request,
    exc: RequestValidationError
) -> JSONResponse:
    """Handle Pydantic validation errors.

    Field-level problems are folded into one message.
    """
    problems = [
        f"{'.'.join(str(part) for part in error['loc'] if part != 'body')}: {error['msg']}"
        for error in exc.errors()
    ]
    logger.warning(f"Validation error on {request.method} {request.url.path}: {problems}")
    return error_response(
        status.HTTP_400_BAD_REQUEST,
        "VALIDATION_ERROR",
        "; ".join(problems) or "Request validation failed",
    )


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(
    request: Request,
    exc: StarletteHTTPException
) -> JSONResponse:
    kind = HTTP_ERROR_KINDS.get(exc.status_code, "HTTP_ERROR")
    return error_response(exc.status_code, kind, str(exc.detail))


@app.exception_handler(SQLAlchemyError)
async def database_exception_handler(
    request: Request,
    exc: SQLAlchemyError
) -> JSONResponse:
    """Handle database errors.

    Logs the full error but returns a generic message.
    """
    logger.error(
        f"Database error on {request.method} {request.url.path}",
        exc_info=exc
    )
    return error_response(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "DATABASE_ERROR",
        "A database error occurred. Please try again later.",
    )


@app.exception_handler(Exception)
async def generic_exception_handler(
    request: Request,
    exc: Exception
) -> JSONResponse:
    logger.error(
        f"Unhandled exception on {request.method} {request.url.path}",
        exc_info=exc
    )
    return error_response(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "INTERNAL_ERROR",
        "An unexpected error occurred. Please try again later.",
    )


# =============================================================================
# ROUTER REGISTRATION
# =============================================================================

app.include_router(documents_router)
app.include_router(extraction_router)
app.include_router(learning_router)


# =============================================================================
# ROOT ENDPOINTS
# =============================================================================

@app.get("/health")
def health_check(
    db: Session = Depends(get_db),
    store: PatternStore = Depends(get_pattern_store),
):
    """Database connectivity plus pattern store size.

    Returns 503 when the database cannot be reached.
    """
    try:
        db.execute(text("SELECT 1"))
        database = "healthy"
    except SQLAlchemyError as e:
        logger.error(f"Database health check failed: {e}")
        database = "unhealthy"

    healthy = database == "healthy"
    return JSONResponse(
        status_code=status.HTTP_200_OK if healthy else status.HTTP_503_SERVICE_UNAVAILABLE,
        content={
            "status": "healthy" if healthy else "unhealthy",
            "components": {"database": database},
            "patterns": len(store),
        },
    )


@app.get("/", include_in_schema=False)
async def root() -> dict[str, Any]:
    return {
        "name": "InvoiceLearn API",
        "version": "0.1.0",
        "status": "running",
        "docs": "/docs" if settings.ENVIRONMENT != "production" else None,
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.ENVIRONMENT == "development",
        log_level=settings.LOG_LEVEL.lower(),
    )
