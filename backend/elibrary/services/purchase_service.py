"""
Purchase orchestration: verify a store receipt, record billing, grant books.

One call is one unit of work. Verification happens before any write; the
ledger and library writes for all line items share the caller's session
and are committed together, or rolled back together on failure.
"""

import logging
import time
from typing import Callable, Dict, List, Optional

from elibrary.core.exceptions import (
    InvalidReceiptError,
    PersistenceFailureError,
    UnknownProductError,
)
from elibrary.core.logging_config import log_performance
from elibrary.domain.entities import (
    META_BOOK_ID,
    META_PRODUCT_ID,
    CatalogItem,
    PurchaseLineItem,
    PurchaseSummary,
    TransactionDetails,
    User,
)
from elibrary.domain.interfaces import (
    IBookAnalyticsWriter,
    ICatalogReader,
    IEntitlementGranter,
    IReceiptVerifier,
    ITransactionLedger,
)
from elibrary.repositories.analytics_repo import BookAnalyticsRepository
from elibrary.repositories.catalog_repo import CatalogRepository
from elibrary.repositories.entitlement_repo import EntitlementRepository
from elibrary.repositories.transaction_ledger import TransactionLedger
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)

NO_ITEMS_MESSAGE = "No purchase items found in receipt"


class PurchaseOrchestrator:
    """Application service behind the verify-purchase endpoint.

    Repositories are built per call from the session handed in, so the
    orchestrator itself holds no database state and can be shared.
    """

    def __init__(
        self,
        verifier: IReceiptVerifier,
        catalog_factory: Callable[[Session], ICatalogReader] = CatalogRepository,
        ledger_factory: Callable[[Session], ITransactionLedger] = TransactionLedger,
        granter_factory: Callable[[Session], IEntitlementGranter] = EntitlementRepository,
        analytics_factory: Callable[
            [Session], IBookAnalyticsWriter
        ] = BookAnalyticsRepository,
    ) -> None:
        self.verifier = verifier
        self.catalog_factory = catalog_factory
        self.ledger_factory = ledger_factory
        self.granter_factory = granter_factory
        self.analytics_factory = analytics_factory

    def verify_and_grant(
        self,
        raw_receipt: bytes | str,
        user: User,
        session: Session,
        deadline: Optional[float] = None,
    ) -> PurchaseSummary:
        """
        Verify a receipt and add its books to the user's library.

        Args:
            raw_receipt: Store receipt blob as sent by the app
            user: Authenticated owner of the receipt
            session: Unit of work; committed on success, rolled back on failure
            deadline: Absolute time.monotonic() limit for verification

        Returns:
            PurchaseSummary of granted, already owned and skipped products

        Raises:
            InvalidReceiptError: receipt rejected or without line items
            ProviderUnavailableError: store unreachable after retries
            PersistenceFailureError: the database write failed and was rolled back
        """
        start = time.perf_counter()

        line_items = self.verifier.verify(raw_receipt, deadline=deadline)
        if not line_items:
            raise InvalidReceiptError(NO_ITEMS_MESSAGE)

        try:
            summary = self._record_and_grant(line_items, user, session)
            session.commit()
        except (SQLAlchemyError, PersistenceFailureError) as e:
            session.rollback()
            logger.error(
                "Purchase unit of work failed; rolled back",
                extra={
                    "context": {
                        "user_id": user.id,
                        "line_items": len(line_items),
                        "error": str(e),
                    }
                },
                exc_info=True,
            )
            if isinstance(e, PersistenceFailureError):
                raise
            raise PersistenceFailureError("Could not save purchase") from e
        except Exception as e:
            session.rollback()
            logger.error(
                "Unexpected error in purchase unit of work; rolled back",
                extra={
                    "context": {
                        "user_id": user.id,
                        "line_items": len(line_items),
                        "error_type": type(e).__name__,
                        "error": str(e),
                    }
                },
                exc_info=True,
            )
            raise

        log_performance(
            "verify_and_grant",
            (time.perf_counter() - start) * 1000,
            user_id=user.id,
            granted=len(summary.granted_items),
            already_owned=len(summary.already_owned_items),
            skipped=len(summary.skipped_unknown_product_ids),
        )
        return summary

    def _record_and_grant(
        self, line_items: List[PurchaseLineItem], user: User, session: Session
    ) -> PurchaseSummary:
        catalog = self.catalog_factory(session)
        ledger = self.ledger_factory(session)
        granter = self.granter_factory(session)

        known = catalog.get_by_product_ids(item.product_id for item in line_items)

        summary = PurchaseSummary()
        books: List[CatalogItem] = []
        transaction_ids: Dict[int, str] = {}

        for line_item in line_items:
            book = known.get(line_item.product_id)
            if book is None:
                self._skip_unknown(line_item, user, summary)
                continue

            result = ledger.record_if_new(
                self.verifier.provider,
                line_item.original_transaction_id,
                TransactionDetails(
                    user_id=user.id,
                    amount=book.price,
                    currency=book.billing_currency,
                    description=f"In-app purchase: {book.title}",
                    purpose_type="book_purchase",
                    meta_data={
                        META_PRODUCT_ID: line_item.product_id,
                        META_BOOK_ID: book.id,
                    },
                ),
            )

            if book.id not in transaction_ids:
                books.append(book)
                transaction_ids[book.id] = result.transaction.id

        if not books:
            return summary

        owned = granter.owned_item_ids(user.id, [book.id for book in books])
        to_grant = [book.id for book in books if book.id not in owned]
        granted_ids = set(granter.grant_many(user.id, to_grant, transaction_ids))

        for book in books:
            if book.id in granted_ids:
                summary.granted_items.append(book)
            else:
                summary.already_owned_items.append(book)

        if granted_ids:
            self.analytics_factory(session).increment_purchases(
                [book.id for book in summary.granted_items]
            )

        logger.info(
            "Receipt processed",
            extra={
                "context": {
                    "user_id": user.id,
                    "granted_book_ids": [b.id for b in summary.granted_items],
                    "already_owned_book_ids": [
                        b.id for b in summary.already_owned_items
                    ],
                    "skipped_product_ids": summary.skipped_unknown_product_ids,
                }
            },
        )
        return summary

    @staticmethod
    def _skip_unknown(
        line_item: PurchaseLineItem, user: User, summary: PurchaseSummary
    ) -> None:
        error = UnknownProductError(line_item.product_id)
        logger.warning(
            str(error),
            extra={
                "context": {
                    "user_id": user.id,
                    "product_id": line_item.product_id,
                    "original_transaction_id": line_item.original_transaction_id,
                }
            },
        )
        if line_item.product_id not in summary.skipped_unknown_product_ids:
            summary.skipped_unknown_product_ids.append(line_item.product_id)
