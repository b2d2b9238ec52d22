"""Learning repository for correction and matching history"""

from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional

from sqlalchemy import select, func, and_
from sqlalchemy.orm import Session

from models.correction_record import CorrectionRecord
from models.invoice_line_item import InvoiceLineItem
from models.matching_history import MatchingHistory, MatchingMethod


class LearningRepository:
    """Repository for correction_record, matching_history and line item access.

    Writes flush but never commit; the calling service owns the transaction.
    """

    def __init__(self, db: Session):
        """Initialize repository with database session.

        Args:
            db: SQLAlchemy database session
        """
        self.db = db

    def create_correction_record(self, **values) -> CorrectionRecord:
        """Persist a correction record.

        Args:
            **values: CorrectionRecord column values

        Returns:
            Persisted CorrectionRecord with id and created_at populated
        """
        record = CorrectionRecord(**values)
        self.db.add(record)
        self.db.flush()
        return record

    def get_recent_correction_records(self, limit: Optional[int] = None) -> List[CorrectionRecord]:
        """Newest correction records first (ties broken by id).

        Args:
            limit: Maximum number of records, all when None
        """
        query = select(CorrectionRecord).order_by(
            CorrectionRecord.created_at.desc(),
            CorrectionRecord.id.desc(),
        )
        if limit is not None:
            query = query.limit(limit)
        return list(self.db.execute(query).scalars().all())

    def count_correction_records(self) -> int:
        return self.db.execute(select(func.count(CorrectionRecord.id))).scalar_one()

    def get_line_item(self, line_item_ref: str) -> Optional[InvoiceLineItem]:
        return self.db.get(InvoiceLineItem, line_item_ref)

    def set_line_item_category(
        self,
        line_item: InvoiceLineItem,
        category: str,
        sub_category_ref: Optional[str] = None
    ) -> InvoiceLineItem:
        line_item.category = category
        line_item.sub_category_ref = sub_category_ref
        self.db.flush()
        return line_item

    def create_matching_history(
        self,
        actor_id: str,
        line_item_ref: str,
        source_identity: str,
        description_text: str,
        amount: Decimal,
        category: str,
        matching_method: MatchingMethod,
        confidence: float,
        sub_category_ref: Optional[str] = None,
        pattern_field: Optional[str] = None,
        pattern_value: Optional[str] = None,
        user_confirmed: bool = False,
        confirmed_at: Optional[datetime] = None,
    ) -> MatchingHistory:
        """Persist one applied match.

        Returns:
            Persisted MatchingHistory row
        """
        history = MatchingHistory(
            actor_id=actor_id,
            line_item_ref=line_item_ref,
            source_identity=source_identity,
            description_text=description_text,
            amount=amount,
            category=category,
            sub_category_ref=sub_category_ref,
            confidence=confidence,
            matching_method=matching_method.value,
            pattern_field=pattern_field,
            pattern_value=pattern_value,
            user_confirmed=user_confirmed,
            confirmed_at=confirmed_at,
        )
        self.db.add(history)
        self.db.flush()
        return history

    def get_matching_history(self, history_id: int) -> Optional[MatchingHistory]:
        return self.db.get(MatchingHistory, history_id)

    def get_confirmed_pattern_matches(self, since: datetime) -> List[MatchingHistory]:
        """Confirmed PATTERN rows with confirmed_at at or after ``since``, oldest first."""
        query = select(MatchingHistory).where(
            and_(
                MatchingHistory.matching_method == MatchingMethod.PATTERN.value,
                MatchingHistory.user_confirmed.is_(True),
                MatchingHistory.confirmed_at.is_not(None),
                MatchingHistory.confirmed_at >= since,
            )
        ).order_by(MatchingHistory.confirmed_at.asc(), MatchingHistory.id.asc())
        return list(self.db.execute(query).scalars().all())

    def get_matching_counts(self) -> Dict[str, int]:
        """Totals for accuracy statistics.

        Returns:
            Dict with total, confirmed and corrected counts
        """
        row = self.db.execute(
            select(
                func.count(MatchingHistory.id),
                func.count(MatchingHistory.id).filter(MatchingHistory.user_confirmed.is_(True)),
                func.count(MatchingHistory.id).filter(MatchingHistory.user_corrected.is_(True)),
            )
        ).one()
        return {"total": row[0], "confirmed": row[1], "corrected": row[2]}
