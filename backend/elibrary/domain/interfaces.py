"""
Abstract interfaces for the purchase flow collaborators.

These interfaces define contracts without implementation details so the
orchestrator can be wired with SQLAlchemy repositories in production and
with fakes in tests.
"""

from abc import ABC, abstractmethod
from typing import Dict, Iterable, List, Optional, Sequence, Set

from .entities import (
    CatalogItem,
    GrantResult,
    LedgerEntry,
    LedgerResult,
    PurchaseLineItem,
    TransactionDetails,
    TransactionProvider,
    User,
)


class IReceiptVerifier(ABC):
    """Store-side receipt verification capability."""

    provider: TransactionProvider

    @abstractmethod
    def verify(
        self, raw_receipt: bytes | str, deadline: Optional[float] = None
    ) -> List[PurchaseLineItem]:
        """Return the purchased line items of a receipt.

        Raises:
            InvalidReceiptError: receipt malformed or rejected
            ProviderUnavailableError: store unreachable or transient failure
        """
        pass


class ICatalogReader(ABC):
    """Read-only access to the book catalog."""

    @abstractmethod
    def get_by_product_id(self, product_id: str) -> Optional[CatalogItem]:
        """Get a catalog item by its store product id."""
        pass

    @abstractmethod
    def get_by_product_ids(self, product_ids: Iterable[str]) -> Dict[str, CatalogItem]:
        """Batch lookup keyed by product id; unknown ids are absent."""
        pass

    @abstractmethod
    def get_by_id(self, book_id: int) -> Optional[CatalogItem]:
        """Get a catalog item by primary key."""
        pass


class ITransactionLedger(ABC):
    """Append-only record of billing events."""

    @abstractmethod
    def record_if_new(
        self,
        provider: TransactionProvider,
        original_transaction_id: str,
        details: TransactionDetails,
    ) -> LedgerResult:
        """Insert a transaction unless (provider, id) is already recorded."""
        pass

    @abstractmethod
    def get(
        self, provider: TransactionProvider, original_transaction_id: str
    ) -> Optional[LedgerEntry]:
        """Get the transaction recorded for (provider, id)."""
        pass


class IEntitlementGranter(ABC):
    """User library writes and ownership checks."""

    @abstractmethod
    def grant_if_absent(
        self, user_id: int, item_id: int, transaction_id: Optional[str] = None
    ) -> GrantResult:
        """Grant one item; granted=False when the user already owns it."""
        pass

    @abstractmethod
    def grant_many(
        self,
        user_id: int,
        item_ids: Sequence[int],
        transaction_ids: Optional[Dict[int, str]] = None,
    ) -> List[int]:
        """Grant several items; return the ids granted by this call."""
        pass

    @abstractmethod
    def owns(self, user_id: int, item_id: int) -> bool:
        """Check whether the user owns the item."""
        pass

    @abstractmethod
    def owned_item_ids(self, user_id: int, item_ids: Iterable[int]) -> Set[int]:
        """Subset of item_ids the user already owns."""
        pass

    @abstractmethod
    def list_for_user(self, user_id: int) -> List[CatalogItem]:
        """All catalog items in the user's library."""
        pass


class IBookAnalyticsWriter(ABC):
    """Per-book counters updated on grant."""

    @abstractmethod
    def increment_purchases(self, book_ids: Iterable[int]) -> None:
        """Add one purchase to each book's counter."""
        pass


class IUserReader(ABC):
    """Interface for user read operations."""

    @abstractmethod
    def get_by_id(self, user_id: int) -> Optional[User]:
        """Get user by ID."""
        pass

    @abstractmethod
    def get_by_email(self, email: str) -> Optional[User]:
        """Get user by email."""
        pass
