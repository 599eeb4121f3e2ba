"""
Data Transfer Objects (DTOs) for the mobile purchase API.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from elibrary.domain.entities import CatalogItem, PurchaseSummary


@dataclass
class VerifyPurchaseRequest:
    """DTO for POST /api/iap/verify-purchase."""

    receipt_data: Any = None
    password: Optional[str] = None

    @classmethod
    def from_json(cls, payload: Optional[Dict[str, Any]]) -> "VerifyPurchaseRequest":
        payload = payload if isinstance(payload, dict) else {}
        return cls(
            receipt_data=payload.get("receipt_data"),
            password=payload.get("password"),
        )

    def validate(self) -> None:
        """Validate the request data."""
        if not isinstance(self.receipt_data, str) or not self.receipt_data.strip():
            raise ValueError("receipt_data is required")
        if self.password is not None and not isinstance(self.password, str):
            raise ValueError("password must be a string")


def _books(items: List[CatalogItem]) -> List[Dict[str, Any]]:
    return [item.to_dict() for item in items]


@dataclass
class VerifyPurchaseResponse:
    """DTO for a successful verify-purchase response."""

    books: List[Dict[str, Any]] = field(default_factory=list)
    already_owned: List[Dict[str, Any]] = field(default_factory=list)
    skipped_product_ids: List[str] = field(default_factory=list)
    message: str = ""
    status: str = "success"

    @classmethod
    def from_summary(cls, summary: PurchaseSummary) -> "VerifyPurchaseResponse":
        return cls(
            books=_books(summary.granted_items),
            already_owned=_books(summary.already_owned_items),
            skipped_product_ids=list(summary.skipped_unknown_product_ids),
            message=summary.message,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status,
            "books": self.books,
            "already_owned": self.already_owned,
            "skipped_product_ids": self.skipped_product_ids,
            "message": self.message,
        }


@dataclass
class LibraryResponse:
    """DTO for GET /api/library."""

    books: List[Dict[str, Any]] = field(default_factory=list)
    status: str = "success"

    @classmethod
    def from_items(cls, items: List[CatalogItem]) -> "LibraryResponse":
        return cls(books=_books(items))

    def to_dict(self) -> Dict[str, Any]:
        return {"status": self.status, "books": self.books}
