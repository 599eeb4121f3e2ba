"""
Common API utilities for consistent response formatting across controllers.
"""

from flask import jsonify


def error_response(message: str, status_code: int) -> tuple:
    """
    Error body used by the mobile API.

    Returns:
        Tuple of ({"error": message} json response, status_code)
    """
    return jsonify({"error": message}), status_code
