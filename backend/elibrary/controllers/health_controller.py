"""
Health controller - liveness and database check for monitoring.
"""

import logging

from elibrary.db.session import SessionLocal
from flask import Blueprint, jsonify
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

logger = logging.getLogger(__name__)

health_bp = Blueprint("health", __name__, url_prefix="/health")


@health_bp.route("", methods=["GET"])
def health_check():
    """
    Report service health.

    Returns:
        200 {"status": "healthy", "database": "ok"}
        503 {"status": "unhealthy", "database": "error"} when SELECT 1 fails

    Note:
        No authentication required (monitoring endpoint)
    """
    db = None
    try:
        db = SessionLocal()
        db.execute(text("SELECT 1"))
        return jsonify({"status": "healthy", "database": "ok"}), 200
    except SQLAlchemyError as e:
        logger.error(
            "Health check: database unreachable",
            extra={"context": {"endpoint": "/health", "error": str(e)}},
            exc_info=True,
        )
        return jsonify({"status": "unhealthy", "database": "error"}), 503
    finally:
        if db is not None:
            db.close()
