"""In-memory pattern store shared by every request in the process.

Writes to one pattern key are serialized by a per-key lock around the
read-modify-write; readers copy the index under a short store-wide lock.
The pure ``apply_*`` functions are the only place confidence and examples
change, so incremental learning and a full rebuild agree by construction.
"""

import logging
import threading
from contextlib import contextmanager
from dataclasses import replace
from datetime import datetime
from typing import Dict, Iterator, List, Mapping, Optional

from .schemas import (
    INITIAL_CONFIDENCE,
    MAX_CONFIDENCE,
    REINFORCEMENT_STEP,
    LearnedPattern,
    PatternKey,
    PatternObservation,
)

logger = logging.getLogger(__name__)


def apply_observation(existing: Optional[LearnedPattern], observation: PatternObservation) -> LearnedPattern:
    """Create a pattern (0.7) or reinforce it (+0.1, capped at 1.0)."""
    if existing is None:
        return LearnedPattern(
            field=observation.key.field,
            value=observation.key.value,
            matcher=observation.matcher,
            confidence_score=INITIAL_CONFIDENCE,
            examples=(observation.example,),
            observations=1,
            last_reinforced_at=observation.observed_at,
            sub_category_ref=observation.sub_category_ref,
        )

    examples = existing.examples
    if observation.example not in examples:
        examples = examples + (observation.example,)

    return replace(
        existing,
        confidence_score=min(MAX_CONFIDENCE, existing.confidence_score + REINFORCEMENT_STEP),
        examples=examples,
        observations=existing.observations + 1,
        last_reinforced_at=max(existing.last_reinforced_at, observation.observed_at),
        sub_category_ref=observation.sub_category_ref or existing.sub_category_ref,
    )


def apply_confirmation(existing: Optional[LearnedPattern], confirmed_at: datetime) -> Optional[LearnedPattern]:
    """Confirmation of an applied suggestion: +0.1, no new example.

    A confirmation for a pattern that no longer exists is a no-op.
    """
    if existing is None:
        return None
    return replace(
        existing,
        confidence_score=min(MAX_CONFIDENCE, existing.confidence_score + REINFORCEMENT_STEP),
        last_reinforced_at=max(existing.last_reinforced_at, confirmed_at),
    )


class PatternStore:
    """Thread-safe pattern index keyed by PatternKey"""

    def __init__(self, patterns: Optional[Mapping[PatternKey, LearnedPattern]] = None):
        self._patterns: Dict[PatternKey, LearnedPattern] = dict(patterns or {})
        self._lock = threading.Lock()
        self._key_locks: Dict[PatternKey, threading.Lock] = {}
        self._writer = threading.RLock()

    @contextmanager
    def exclusive(self) -> Iterator[None]:
        """Section that a rebuild cannot interleave with.

        Learning holds it from the database commit until the store is
        reinforced; a rebuild holds it from reading history until the swap.
        A rebuild therefore either misses a record whose reinforcement comes
        after it, or includes a record whose reinforcement came before it.
        """
        with self._writer:
            yield

    def _lock_for(self, key: PatternKey) -> threading.Lock:
        with self._lock:
            lock = self._key_locks.get(key)
            if lock is None:
                lock = self._key_locks[key] = threading.Lock()
            return lock

    def reinforce(self, observation: PatternObservation) -> LearnedPattern:
        """Apply one observation to its key and return the updated pattern."""
        with self._lock_for(observation.key):
            with self._lock:
                existing = self._patterns.get(observation.key)
            updated = apply_observation(existing, observation)
            with self._lock:
                self._patterns[observation.key] = updated

        logger.debug(
            f"Reinforced pattern {observation.key}: "
            f"confidence={updated.confidence:.2f}, examples={len(updated.examples)}"
        )
        return updated

    def confirm(self, key: PatternKey, confirmed_at: datetime) -> Optional[LearnedPattern]:
        """Reinforce an existing pattern without adding an example."""
        with self._lock_for(key):
            with self._lock:
                existing = self._patterns.get(key)
            updated = apply_confirmation(existing, confirmed_at)
            if updated is None:
                logger.info(f"Confirmation for unknown pattern ignored: {key}")
                return None
            with self._lock:
                self._patterns[key] = updated
        return updated

    def get(self, key: PatternKey) -> Optional[LearnedPattern]:
        with self._lock:
            return self._patterns.get(key)

    def snapshot(self) -> Dict[PatternKey, LearnedPattern]:
        """Copy of the index; patterns are immutable so a shallow copy is enough."""
        with self._lock:
            return dict(self._patterns)

    def for_field(self, field_name: str) -> List[LearnedPattern]:
        """Patterns for one field, highest confidence first, most recent first on ties."""
        patterns = [p for p in self.snapshot().values() if p.field == field_name]
        return sorted(patterns, key=lambda p: (p.confidence_score, p.last_reinforced_at), reverse=True)

    def replace_all(self, patterns: Mapping[PatternKey, LearnedPattern]) -> None:
        """Swap in a rebuilt index in one step.

        Key locks of patterns that did not survive are dropped unless a
        writer currently holds them.
        """
        with self._writer, self._lock:
            self._patterns = dict(patterns)
            self._key_locks = {
                key: lock for key, lock in self._key_locks.items()
                if key in self._patterns or lock.locked()
            }
        logger.info(f"Pattern store replaced: {len(patterns)} patterns")

    def lock_count(self) -> int:
        with self._lock:
            return len(self._key_locks)

    def __len__(self) -> int:
        with self._lock:
            return len(self._patterns)
