from typing import Iterable, Optional

from elibrary.db.base import BookAnalytics as DbBookAnalytics
from elibrary.domain.interfaces import IBookAnalyticsWriter
from elibrary.repositories.insert_utils import insert_ignoring_conflict
from sqlalchemy import update


class BookAnalyticsRepository(IBookAnalyticsWriter):
    """Per-book purchase counters, updated in the caller's transaction."""

    def __init__(self, db_session) -> None:
        self.db = db_session

    def increment_purchases(self, book_ids: Iterable[int]) -> None:
        ids = sorted(set(book_ids))
        if not ids:
            return

        # Counter rows are created lazily on first purchase
        for book_id in ids:
            insert_ignoring_conflict(
                self.db,
                DbBookAnalytics,
                {"book_id": book_id, "purchases": 0},
                conflict_columns=("book_id",),
            )

        stmt = (
            update(DbBookAnalytics)
            .where(DbBookAnalytics.book_id.in_(ids))
            .values(purchases=DbBookAnalytics.purchases + 1)
            .execution_options(synchronize_session=False)
        )
        self.db.execute(stmt)

    def get_purchases(self, book_id: int) -> Optional[int]:
        row = self.db.query(DbBookAnalytics).filter_by(book_id=book_id).first()
        return row.purchases if row else None
