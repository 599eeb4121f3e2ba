from typing import List

from elibrary.domain.entities import CatalogItem
from elibrary.domain.interfaces import IEntitlementGranter


class LibraryService:
    """Read side of entitlements: what a user owns."""

    def __init__(self, entitlements: IEntitlementGranter) -> None:
        self.entitlements = entitlements

    def list_books(self, user_id: int) -> List[CatalogItem]:
        """Books in the user's library, most recently granted first."""
        return self.entitlements.list_for_user(user_id)

    def user_owns_book(self, user_id: int, book_id: int) -> bool:
        return self.entitlements.owns(user_id, book_id)
