"""
Receipt verifier test doubles.

StubReceiptVerifier returns canned line items (or raises a canned error)
without any network access, and records the calls it received.
"""

from typing import List, Optional

from elibrary.domain.entities import PurchaseLineItem, TransactionProvider
from elibrary.domain.interfaces import IReceiptVerifier


def line_item(product_id: str, original_transaction_id: str) -> PurchaseLineItem:
    return PurchaseLineItem(
        product_id=product_id, original_transaction_id=original_transaction_id
    )


class StubReceiptVerifier(IReceiptVerifier):
    provider = TransactionProvider.APPLE

    def __init__(
        self,
        items: Optional[List[PurchaseLineItem]] = None,
        error: Optional[Exception] = None,
    ) -> None:
        self.items = list(items or [])
        self.error = error
        self.calls = []

    def verify(self, raw_receipt, deadline=None):
        self.calls.append({"raw_receipt": raw_receipt, "deadline": deadline})
        if self.error is not None:
            raise self.error
        return list(self.items)


def receipt_r() -> StubReceiptVerifier:
    """Receipt with one catalog book (book.123) and one unknown sku (book.999)."""
    return StubReceiptVerifier(
        [
            line_item("book.123", "1000000001"),
            line_item("book.999", "1000000002"),
        ]
    )
