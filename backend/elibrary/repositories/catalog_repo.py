"""Catalog repository: read-only lookups of books by store product id."""

from decimal import Decimal
from typing import Dict, Iterable, Optional

from elibrary.db.base import Book as DbBook
from elibrary.domain.entities import CatalogItem
from elibrary.domain.interfaces import ICatalogReader


class CatalogRepository(ICatalogReader):
    """Repository for Book lookups used by the purchase flow."""

    def __init__(self, db_session) -> None:
        self.db = db_session

    def get_by_id(self, book_id: int) -> Optional[CatalogItem]:
        db_book = self.db.get(DbBook, book_id)
        return self._to_domain(db_book) if db_book else None

    def get_by_product_id(self, product_id: str) -> Optional[CatalogItem]:
        db_book = self.db.query(DbBook).filter_by(product_id=product_id).first()
        return self._to_domain(db_book) if db_book else None

    def get_by_product_ids(self, product_ids: Iterable[str]) -> Dict[str, CatalogItem]:
        """Batch fetch to avoid one query per receipt line item."""
        wanted = {pid for pid in product_ids if pid}
        if not wanted:
            return {}
        db_books = self.db.query(DbBook).filter(DbBook.product_id.in_(wanted)).all()
        return {book.product_id: self._to_domain(book) for book in db_books}

    def add(
        self,
        title: str,
        product_id: Optional[str] = None,
        actual_price: Optional[Decimal] = None,
        discounted_price: Optional[Decimal] = None,
        currency: Optional[str] = None,
    ) -> CatalogItem:
        """Create a catalog entry (management CLI and seeding)."""
        db_book = DbBook(
            title=title,
            product_id=product_id,
            actual_price=actual_price,
            discounted_price=discounted_price,
            currency=currency,
        )
        self.db.add(db_book)
        self.db.commit()
        self.db.refresh(db_book)
        return self._to_domain(db_book)

    @staticmethod
    def _to_domain(db_book: DbBook) -> CatalogItem:
        return CatalogItem(
            id=db_book.id,
            product_id=db_book.product_id,
            title=db_book.title,
            actual_price=db_book.actual_price,
            discounted_price=db_book.discounted_price,
            currency=db_book.currency,
        )
