"""
Library controller - read-only views of the user's purchased books.
"""

import logging

from elibrary.core.auth_decorators import get_current_user, jwt_required
from elibrary.db.session import SessionLocal
from elibrary.repositories.entitlement_repo import EntitlementRepository
from elibrary.schemas.dtos import LibraryResponse
from elibrary.services.library_service import LibraryService
from flask import Blueprint, jsonify

logger = logging.getLogger(__name__)

library_bp = Blueprint("library", __name__, url_prefix="/api/library")


@library_bp.route("", methods=["GET"])
@jwt_required
def list_library():
    user = get_current_user()
    db = SessionLocal()
    try:
        service = LibraryService(EntitlementRepository(db))
        books = service.list_books(user.id)
        return jsonify(LibraryResponse.from_items(books).to_dict()), 200
    finally:
        db.close()


@library_bp.route("/<int:book_id>/owned", methods=["GET"])
@jwt_required
def book_owned(book_id: int):
    """Whether the current user owns the given book."""
    user = get_current_user()
    db = SessionLocal()
    try:
        service = LibraryService(EntitlementRepository(db))
        owned = service.user_owns_book(user.id, book_id)
        return jsonify({"book_id": book_id, "owned": owned}), 200
    finally:
        db.close()
