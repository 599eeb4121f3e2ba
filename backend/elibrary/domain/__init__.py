"""
Domain package - Pure business logic layer.

This package contains:
- entities.py: Purchase flow values (line items, catalog items, ledger
  entries, summaries) and the transaction enums
- interfaces.py: Verifier, repository and ledger contracts
"""

from .entities import (
    CatalogItem,
    GrantResult,
    LedgerEntry,
    LedgerResult,
    PurchaseLineItem,
    PurchaseSummary,
    TransactionDetails,
    TransactionDirection,
    TransactionKind,
    TransactionProvider,
    TransactionStatus,
    User,
)
from .interfaces import (
    IBookAnalyticsWriter,
    ICatalogReader,
    IEntitlementGranter,
    IReceiptVerifier,
    ITransactionLedger,
    IUserReader,
)

__all__ = [
    # Domain entities
    "User",
    "CatalogItem",
    "PurchaseLineItem",
    "LedgerEntry",
    "LedgerResult",
    "GrantResult",
    "PurchaseSummary",
    "TransactionDetails",
    # Enums
    "TransactionProvider",
    "TransactionStatus",
    "TransactionKind",
    "TransactionDirection",
    # Interfaces
    "IReceiptVerifier",
    "ICatalogReader",
    "ITransactionLedger",
    "IEntitlementGranter",
    "IBookAnalyticsWriter",
    "IUserReader",
]
