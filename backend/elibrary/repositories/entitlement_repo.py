"""
Entitlement repository: the `purchased_books` library table.

A row per (user, book) is the single source of truth for ownership. Grants
use the table's unique constraint, so two requests racing to grant the same
book leave exactly one row.
"""

import logging
from typing import Dict, Iterable, List, Optional, Sequence, Set

from elibrary.db.base import Book as DbBook
from elibrary.db.base import PurchasedBook as DbPurchasedBook
from elibrary.domain.entities import CatalogItem, GrantResult
from elibrary.domain.interfaces import IEntitlementGranter
from elibrary.repositories.catalog_repo import CatalogRepository
from elibrary.repositories.insert_utils import insert_ignoring_conflict

logger = logging.getLogger(__name__)


class EntitlementRepository(IEntitlementGranter):
    def __init__(self, db_session) -> None:
        self.db = db_session

    def grant_if_absent(
        self, user_id: int, item_id: int, transaction_id: Optional[str] = None
    ) -> GrantResult:
        granted = insert_ignoring_conflict(
            self.db,
            DbPurchasedBook,
            {"user_id": user_id, "book_id": item_id, "transaction_id": transaction_id},
            conflict_columns=("user_id", "book_id"),
        )
        if not granted:
            logger.info(
                "Book already in library; grant skipped",
                extra={"context": {"user_id": user_id, "book_id": item_id}},
            )
        return GrantResult(granted=granted)

    def grant_many(
        self,
        user_id: int,
        item_ids: Sequence[int],
        transaction_ids: Optional[Dict[int, str]] = None,
    ) -> List[int]:
        """
        Grant each item the user does not own yet.

        Args:
            user_id: Library owner
            item_ids: Book ids, duplicates ignored
            transaction_ids: Optional book id -> ledger transaction id linkage

        Returns:
            Book ids newly granted by this call, in input order
        """
        transaction_ids = transaction_ids or {}
        granted: List[int] = []
        seen: Set[int] = set()
        for item_id in item_ids:
            if item_id in seen:
                continue
            seen.add(item_id)
            result = self.grant_if_absent(user_id, item_id, transaction_ids.get(item_id))
            if result.granted:
                granted.append(item_id)
        return granted

    def owns(self, user_id: int, item_id: int) -> bool:
        return (
            self.db.query(DbPurchasedBook.id)
            .filter_by(user_id=user_id, book_id=item_id)
            .first()
            is not None
        )

    def owned_item_ids(self, user_id: int, item_ids: Iterable[int]) -> Set[int]:
        wanted = set(item_ids)
        if not wanted:
            return set()
        rows = (
            self.db.query(DbPurchasedBook.book_id)
            .filter(
                DbPurchasedBook.user_id == user_id,
                DbPurchasedBook.book_id.in_(wanted),
            )
            .all()
        )
        return {row.book_id for row in rows}

    def list_for_user(self, user_id: int) -> List[CatalogItem]:
        db_books = (
            self.db.query(DbBook)
            .join(DbPurchasedBook, DbPurchasedBook.book_id == DbBook.id)
            .filter(DbPurchasedBook.user_id == user_id)
            .order_by(DbPurchasedBook.created_at.desc(), DbPurchasedBook.id.desc())
            .all()
        )
        return [CatalogRepository._to_domain(book) for book in db_books]
