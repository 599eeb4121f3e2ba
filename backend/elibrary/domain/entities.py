"""
Domain entities - pure business values, no framework dependencies.

The purchase flow passes these between the verifier, the repositories and
the orchestrator; SQLAlchemy models never leave the repository layer.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional


class TransactionProvider(str, Enum):
    APPLE = "apple"
    GOOGLE = "google"
    STRIPE = "stripe"
    PAYSTACK = "paystack"


class TransactionStatus(str, Enum):
    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"


class TransactionKind(str, Enum):
    PURCHASE = "purchase"
    PAYOUT = "payout"
    REFUND = "refund"


class TransactionDirection(str, Enum):
    DEBIT = "debit"
    CREDIT = "credit"


# Documented keys of Transaction.meta_data
META_PRODUCT_ID = "product_id"
META_BOOK_ID = "book_id"


@dataclass
class User:
    """Authenticated user as seen by the purchase flow."""

    id: int
    email: str = ""
    name: str = ""
    is_active: bool = True
    created_at: Optional[datetime] = None

    def __post_init__(self):
        if self.id is None or self.id <= 0:
            raise ValueError("Valid user id is required")

    # Flask-Login compatibility for request-loaded users
    @property
    def is_authenticated(self) -> bool:
        return True

    @property
    def is_anonymous(self) -> bool:
        return False

    def get_id(self) -> str:
        return str(self.id)


@dataclass(frozen=True)
class PurchaseLineItem:
    """One purchased product reported by the store receipt."""

    product_id: str
    original_transaction_id: str

    def __post_init__(self):
        if not self.product_id:
            raise ValueError("product_id is required")
        if not self.original_transaction_id:
            raise ValueError("original_transaction_id is required")


@dataclass(frozen=True)
class CatalogItem:
    """A book that can be purchased, keyed externally by its store product id."""

    id: int
    product_id: Optional[str]
    title: str
    actual_price: Optional[Decimal] = None
    discounted_price: Optional[Decimal] = None
    currency: Optional[str] = None

    @property
    def price(self) -> Decimal:
        """Amount billed for this item: actual, else discounted, else zero."""
        if self.actual_price is not None:
            return Decimal(self.actual_price)
        if self.discounted_price is not None:
            return Decimal(self.discounted_price)
        return Decimal("0")

    @property
    def billing_currency(self) -> str:
        return (self.currency or "usd").lower()

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "product_id": self.product_id, "title": self.title}


@dataclass(frozen=True)
class LedgerEntry:
    """Immutable view of a recorded billing transaction."""

    id: str
    reference: str
    user_id: int
    provider: str
    provider_transaction_id: str
    amount: Decimal
    currency: str
    status: str
    kind: str
    direction: str
    meta_data: Dict[str, Any] = field(default_factory=dict)
    created_at: Optional[datetime] = None


@dataclass(frozen=True)
class TransactionDetails:
    """Attributes for a ledger row that does not exist yet."""

    user_id: int
    amount: Decimal
    currency: str = "usd"
    status: TransactionStatus = TransactionStatus.SUCCESS
    kind: TransactionKind = TransactionKind.PURCHASE
    direction: TransactionDirection = TransactionDirection.DEBIT
    description: Optional[str] = None
    purpose_type: Optional[str] = None
    meta_data: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if self.amount < 0:
            raise ValueError("Amount cannot be negative")


@dataclass(frozen=True)
class LedgerResult:
    """Outcome of TransactionLedger.record_if_new."""

    created: bool
    transaction: LedgerEntry


@dataclass(frozen=True)
class GrantResult:
    """Outcome of EntitlementGranter.grant_if_absent."""

    granted: bool


@dataclass
class PurchaseSummary:
    """What one verify-and-grant call did for the user."""

    granted_items: List[CatalogItem] = field(default_factory=list)
    already_owned_items: List[CatalogItem] = field(default_factory=list)
    skipped_unknown_product_ids: List[str] = field(default_factory=list)

    @property
    def has_new_grants(self) -> bool:
        return bool(self.granted_items)

    @property
    def message(self) -> str:
        if self.granted_items:
            return "Purchase verified successfully"
        return "All books in receipt are already in your library"
