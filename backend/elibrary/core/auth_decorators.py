"""
Authentication helpers for the mobile/API surface.

The apps authenticate with a long-lived JWT Bearer token:

    Authorization: Bearer <token>

`jwt_required` validates the token, loads the user row and stores a
domain `User` on `flask.g.current_user`. Views read it back through
`get_current_user()`; `current_user` from Flask-Login resolves to the same
user through the LoginManager request loader registered in main.py.

Example:
    @library_bp.route("", methods=["GET"])
    @jwt_required
    def list_library():
        user = get_current_user()
        ...
"""

import logging
from functools import wraps
from typing import Any, Optional

from elibrary.core.security import extract_bearer_token, get_user_from_token
from flask import g, jsonify, request

logger = logging.getLogger(__name__)


def get_current_user() -> Any:
    """Return the user authenticated for this request, or None."""
    if hasattr(g, "current_user") and g.current_user:
        return g.current_user
    return None


def load_user_from_token(token: Optional[str]):
    """Resolve a bearer token to an active domain user, or None."""
    if not token:
        return None

    user_data = get_user_from_token(token)
    if not user_data:
        return None

    from elibrary.db.session import SessionLocal
    from elibrary.repositories.user_repo import UserRepository

    db = SessionLocal()
    try:
        user = UserRepository(db).get_by_id(user_data["user_id"])
    finally:
        db.close()

    if user is None or not user.is_active:
        return None
    return user


def jwt_required(f):
    """Decorator to require JWT authentication for API endpoints.

    Returns 401 when the header is missing, the token is invalid or expired,
    or the user no longer exists or is inactive.
    """

    @wraps(f)
    def decorated_function(*args, **kwargs):
        token = extract_bearer_token(request.headers.get("Authorization"))
        if not token:
            return jsonify({"error": "Missing or invalid Authorization header"}), 401

        if get_user_from_token(token) is None:
            return jsonify({"error": "Invalid or expired token"}), 401

        user = load_user_from_token(token)
        if user is None:
            logger.warning(
                "Token rejected: user missing or inactive",
                extra={"context": {"path": request.path}},
            )
            return jsonify({"error": "Invalid token payload"}), 401

        g.current_user = user
        return f(*args, **kwargs)

    return decorated_function
