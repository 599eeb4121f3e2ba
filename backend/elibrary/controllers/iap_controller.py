"""
In-app purchase controller.

POST /api/iap/verify-purchase verifies an App Store receipt for the
authenticated user and adds the purchased books to their library.
"""

import logging
import time

from elibrary.core.api_utils import error_response
from elibrary.core.auth_decorators import get_current_user, jwt_required
from elibrary.core.config import get_purchase_deadline_seconds
from elibrary.core.exceptions import (
    InvalidReceiptError,
    PersistenceFailureError,
    ProviderUnavailableError,
)
from elibrary.core.limiter_config import VERIFY_PURCHASE_LIMIT, limiter
from elibrary.db.session import SessionLocal
from elibrary.schemas.dtos import VerifyPurchaseRequest, VerifyPurchaseResponse
from elibrary.services.purchase_service import PurchaseOrchestrator
from elibrary.services.receipt_verifier import build_receipt_verifier
from flask import Blueprint, jsonify, request

logger = logging.getLogger(__name__)

iap_bp = Blueprint("iap", __name__, url_prefix="/api/iap")


def _build_receipt_verifier():
    """Verifier chain for this request; patched in tests."""
    return build_receipt_verifier()


@iap_bp.route("/verify-purchase", methods=["POST"])
@limiter.limit(VERIFY_PURCHASE_LIMIT)
@jwt_required
def verify_purchase():
    """Verify a receipt and grant its books.

    Request JSON: {"receipt_data": "<base64>", "password": "<optional>"}

    password is type-checked for older clients but never forwarded; the
    store always receives APPSTORE_SHARED_SECRET.

    Status codes:
        200: Receipt processed (books granted or already owned)
        400: Missing receipt_data, invalid receipt or no purchase items
        401: Missing or invalid token
        500: Store unavailable or purchase could not be saved
    """
    user = get_current_user()
    dto = VerifyPurchaseRequest.from_json(request.get_json(silent=True))
    try:
        dto.validate()
    except ValueError as e:
        return error_response(str(e), 400)

    receipt_length = len(dto.receipt_data)
    deadline = time.monotonic() + get_purchase_deadline_seconds()

    db = SessionLocal()
    try:
        orchestrator = PurchaseOrchestrator(_build_receipt_verifier())
        summary = orchestrator.verify_and_grant(
            dto.receipt_data, user, db, deadline=deadline
        )
        return jsonify(VerifyPurchaseResponse.from_summary(summary).to_dict()), 200
    except InvalidReceiptError as e:
        logger.info(
            "Receipt rejected",
            extra={
                "context": {
                    "user_id": user.id,
                    "reason": str(e),
                    "store_status": e.status,
                }
            },
        )
        return error_response(str(e), 400)
    except (ProviderUnavailableError, PersistenceFailureError) as e:
        logger.warning(
            "Purchase verification failed",
            extra={
                "context": {
                    "user_id": user.id,
                    "receipt_length": receipt_length,
                    "error_type": type(e).__name__,
                    "error": str(e),
                }
            },
        )
        return error_response("Verification failed", 500)
    except Exception:
        logger.exception(
            "Unexpected error verifying purchase",
            extra={"context": {"user_id": user.id, "receipt_length": receipt_length}},
        )
        return error_response("Verification failed", 500)
    finally:
        db.close()
