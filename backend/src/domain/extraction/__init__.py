"""Domain layer for extraction module.

This module defines the extraction domain logic: invoice and attempt models,
confidence calculation, the strategy registry, the provider port and the
orchestrator that walks fallback chains.
"""

from .models import (
    AttemptOutcome,
    ExpectedFormat,
    ExtractionAttempt,
    ExtractionResult,
    InvoiceLineItem,
    RunStatus,
    StructuredInvoice,
)
from .confidence import calculate_confidence
from .ports import ExtractionProviderPort, ProviderOutcome
from .strategies import (
    Strategy,
    StrategyName,
    StrategyRegistry,
    UnknownStrategyError,
    build_fallback_chain,
)
from .orchestrator import ExtractionOrchestrator, ExtractionRun, ParseContext

__all__ = [
    "AttemptOutcome",
    "ExpectedFormat",
    "ExtractionAttempt",
    "ExtractionResult",
    "InvoiceLineItem",
    "RunStatus",
    "StructuredInvoice",
    "calculate_confidence",
    "ExtractionProviderPort",
    "ProviderOutcome",
    "Strategy",
    "StrategyName",
    "StrategyRegistry",
    "UnknownStrategyError",
    "build_fallback_chain",
    "ExtractionOrchestrator",
    "ExtractionRun",
    "ParseContext",
]
