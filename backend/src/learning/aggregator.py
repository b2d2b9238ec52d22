"""Pattern aggregator - rebuilds the pattern index from correction history.

Cold-start and recovery path. The newest ``limit`` correction records are
replayed oldest first through the same observation derivation and the same
apply functions the incremental path uses, together with the confirmed
pattern matches that fall inside the replayed window. The result replaces
the store contents in one swap. Reading history and the swap happen inside
the store's exclusive section, the same one learning holds from commit to
reinforcement.
"""

import logging
from typing import Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from infrastructure.repositories.learning_repository import LearningRepository

from .observations import derive_observations
from .pattern_store import PatternStore, apply_confirmation, apply_observation
from .schemas import (
    CorrectionRecordData,
    LearnedPattern,
    PatternKey,
    RebuildSummary,
)

logger = logging.getLogger(__name__)


class PatternAggregator:
    """Replays durable history into a fresh pattern index"""

    def __init__(self, db: Session, store: PatternStore):
        self.repository = LearningRepository(db)
        self.store = store

    def rebuild_patterns(self, limit: Optional[int] = None) -> RebuildSummary:
        """Rebuild the pattern store from the most recent correction records.

        Args:
            limit: Number of newest records to replay, all when None

        Returns:
            RebuildSummary with record and pattern counts only
        """
        with self.store.exclusive():
            records, confirmations, patterns = self._replay(limit)
            self.store.replace_all(patterns)

        logger.info(
            f"Rebuilt patterns from {len(records)} correction records "
            f"and {confirmations} confirmations: {len(patterns)} patterns"
        )
        return RebuildSummary(
            total_records=len(records),
            patterns_produced=len(patterns),
            confirmations_replayed=confirmations,
        )

    def _replay(self, limit: Optional[int]) -> Tuple[list, int, Dict[PatternKey, LearnedPattern]]:
        records = self.repository.get_recent_correction_records(limit)
        records.reverse()  # oldest first

        # (timestamp, kind, id, payload); records sort before confirmations at equal times
        events: List[Tuple] = [
            (record.created_at, 0, record.id, CorrectionRecordData.from_model(record))
            for record in records
        ]

        confirmations = 0
        if records:
            for history in self.repository.get_confirmed_pattern_matches(since=records[0].created_at):
                events.append((
                    history.confirmed_at, 1, history.id,
                    PatternKey(history.pattern_field, history.pattern_value),
                ))
                confirmations += 1

        events.sort(key=lambda event: event[:3])

        patterns: Dict[PatternKey, LearnedPattern] = {}
        for timestamp, kind, _, payload in events:
            if kind == 0:
                for observation in derive_observations(payload):
                    patterns[observation.key] = apply_observation(patterns.get(observation.key), observation)
            else:
                confirmed = apply_confirmation(patterns.get(payload), timestamp)
                if confirmed is not None:
                    patterns[payload] = confirmed
        return records, confirmations, patterns
