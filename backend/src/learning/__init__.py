"""Correction learning: patterns learned from human corrections.

Provides the pattern store, the learning service behind the learn /
confirm / correct actions and suggestion queries, and the aggregator that
rebuilds patterns from correction history.
"""

from .matchers import FieldMatcher, MatcherKind
from .pattern_store import PatternStore
from .schemas import (
    CorrectableField,
    CorrectionSubmission,
    FieldCorrection,
    LearnedPattern,
    MatchSuggestion,
    PatternKey,
    RebuildSummary,
)
from .services import InvoiceLearningService
from .aggregator import PatternAggregator

__all__ = [
    "FieldMatcher",
    "MatcherKind",
    "PatternStore",
    "CorrectableField",
    "CorrectionSubmission",
    "FieldCorrection",
    "LearnedPattern",
    "MatchSuggestion",
    "PatternKey",
    "RebuildSummary",
    "InvoiceLearningService",
    "PatternAggregator",
]
