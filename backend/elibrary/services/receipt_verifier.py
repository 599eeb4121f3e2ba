"""
Receipt verification against the App Store `verifyReceipt` endpoint.

AppStoreReceiptVerifier performs one verification round trip (with the
documented production -> sandbox fallback). RetryingReceiptVerifier wraps
any verifier with bounded exponential backoff for transient failures.
Both honour an absolute `time.monotonic()` deadline.
"""

import base64
import logging
import time
from typing import Any, Callable, Dict, List, Optional

import requests
from elibrary.core.config import get_appstore_settings
from elibrary.core.exceptions import (
    DeadlineExceededError,
    InvalidReceiptError,
    ProviderUnavailableError,
)
from elibrary.domain.entities import PurchaseLineItem, TransactionProvider
from elibrary.domain.interfaces import IReceiptVerifier

logger = logging.getLogger(__name__)

STATUS_OK = 0
STATUS_SANDBOX_RECEIPT = 21007
# Store-side conditions that may succeed on a later attempt
TRANSIENT_STATUSES = frozenset({21005, 21009})
INTERNAL_ERROR_RANGE = range(21100, 21200)


def _is_transient_status(status: int) -> bool:
    return status in TRANSIENT_STATUSES or status in INTERNAL_ERROR_RANGE


def _encode_receipt(raw_receipt: bytes | str) -> str:
    if isinstance(raw_receipt, bytes):
        return base64.b64encode(raw_receipt).decode("ascii")
    return raw_receipt.strip()


def _remaining(deadline: Optional[float]) -> Optional[float]:
    if deadline is None:
        return None
    return deadline - time.monotonic()


class AppStoreReceiptVerifier(IReceiptVerifier):
    """Verify App Store receipts with Apple's legacy verifyReceipt API.

    A receipt produced by a sandbox build is first rejected by production
    with status 21007 and is then sent once to the sandbox endpoint.
    """

    provider = TransactionProvider.APPLE

    def __init__(
        self,
        shared_secret: Optional[str] = None,
        production_url: str = "",
        sandbox_url: str = "",
        timeout: float = 10.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.shared_secret = shared_secret
        self.production_url = production_url
        self.sandbox_url = sandbox_url
        self.timeout = timeout
        self.http = session or requests

    def verify(
        self, raw_receipt: bytes | str, deadline: Optional[float] = None
    ) -> List[PurchaseLineItem]:
        if not raw_receipt:
            raise InvalidReceiptError("Invalid receipt")

        payload = {
            "receipt-data": _encode_receipt(raw_receipt),
            "password": self.shared_secret,
            "exclude-old-transactions": False,
        }

        body = self._post(self.production_url, payload, deadline)
        status = body.get("status")

        if status == STATUS_SANDBOX_RECEIPT:
            logger.info(
                "Sandbox receipt sent to production; retrying against sandbox",
                extra={"context": {"sandbox_url": self.sandbox_url}},
            )
            body = self._post(self.sandbox_url, payload, deadline)
            status = body.get("status")

        if status == STATUS_OK:
            items = self._parse_line_items(body)
            logger.info(
                "Receipt verified",
                extra={
                    "context": {
                        "environment": body.get("environment"),
                        "line_items": len(items),
                    }
                },
            )
            return items

        if isinstance(status, int) and _is_transient_status(status):
            logger.warning(
                "App Store reported a transient verification failure",
                extra={"context": {"status": status}},
            )
            raise ProviderUnavailableError(
                f"App Store temporarily unavailable (status {status})", status=status
            )

        logger.info(
            "Receipt rejected by App Store",
            extra={"context": {"status": status}},
        )
        raise InvalidReceiptError("Invalid receipt", status=status)

    def _post(
        self, url: str, payload: Dict[str, Any], deadline: Optional[float]
    ) -> Dict[str, Any]:
        remaining = _remaining(deadline)
        if remaining is not None and remaining <= 0:
            raise DeadlineExceededError("Verification deadline exceeded")
        timeout = self.timeout if remaining is None else min(self.timeout, remaining)

        try:
            response = self.http.post(url, json=payload, timeout=timeout)
        except requests.Timeout as e:
            logger.warning(
                "App Store request timed out",
                extra={"context": {"url": url, "timeout": timeout}},
            )
            raise ProviderUnavailableError("App Store request timed out") from e
        except requests.RequestException as e:
            logger.warning(
                "App Store request failed",
                extra={"context": {"url": url, "error": str(e)}},
            )
            raise ProviderUnavailableError("App Store unreachable") from e

        if response.status_code >= 500 or response.status_code == 429:
            raise ProviderUnavailableError(
                f"App Store returned HTTP {response.status_code}",
                status=response.status_code,
            )
        if response.status_code != 200:
            raise InvalidReceiptError(
                "Invalid receipt", status=response.status_code
            )

        try:
            body = response.json()
        except ValueError as e:
            raise InvalidReceiptError("Invalid receipt") from e
        if not isinstance(body, dict):
            raise InvalidReceiptError("Invalid receipt")
        return body

    @staticmethod
    def _parse_line_items(body: Dict[str, Any]) -> List[PurchaseLineItem]:
        receipt = body.get("receipt") or {}
        if not isinstance(receipt, dict):
            raise InvalidReceiptError("Invalid receipt")
        in_app = receipt.get("in_app") or []
        if not isinstance(in_app, list):
            raise InvalidReceiptError("Invalid receipt")

        items: List[PurchaseLineItem] = []
        for entry in in_app:
            if not isinstance(entry, dict):
                raise InvalidReceiptError("Invalid receipt")
            product_id = entry.get("product_id")
            if not product_id:
                continue
            original_id = entry.get("original_transaction_id") or entry.get(
                "transaction_id"
            )
            if not original_id:
                logger.warning(
                    "Receipt line item without transaction id skipped",
                    extra={"context": {"product_id": product_id}},
                )
                continue
            items.append(
                PurchaseLineItem(
                    product_id=str(product_id),
                    original_transaction_id=str(original_id),
                )
            )
        return items


class RetryingReceiptVerifier(IReceiptVerifier):
    """Retry a verifier on ProviderUnavailableError with exponential backoff.

    InvalidReceiptError is never retried. No sleep extends past the deadline.
    """

    def __init__(
        self,
        inner: IReceiptVerifier,
        attempts: int = 3,
        backoff_seconds: float = 0.5,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if attempts < 1:
            raise ValueError("attempts must be at least 1")
        self.inner = inner
        self.provider = inner.provider
        self.attempts = attempts
        self.backoff_seconds = backoff_seconds
        self._sleep = sleep

    def verify(
        self, raw_receipt: bytes | str, deadline: Optional[float] = None
    ) -> List[PurchaseLineItem]:
        # attempts >= 1, so the last pass either returns or raises
        for attempt in range(self.attempts):
            try:
                return self.inner.verify(raw_receipt, deadline=deadline)
            except DeadlineExceededError:
                raise
            except ProviderUnavailableError as e:
                if attempt + 1 >= self.attempts:
                    raise

                delay = self.backoff_seconds * (2**attempt)
                remaining = _remaining(deadline)
                if remaining is not None and delay >= remaining:
                    logger.warning(
                        "Not retrying receipt verification: deadline too close",
                        extra={"context": {"attempt": attempt + 1, "delay": delay}},
                    )
                    raise

                logger.info(
                    f"Receipt verification attempt {attempt + 1} failed; retrying",
                    extra={
                        "context": {
                            "attempt": attempt + 1,
                            "max_attempts": self.attempts,
                            "delay": delay,
                            "error": str(e),
                        }
                    },
                )
            self._sleep(delay)


def build_receipt_verifier() -> IReceiptVerifier:
    """Build the production verifier chain from configuration."""
    settings = get_appstore_settings()
    app_store = AppStoreReceiptVerifier(
        shared_secret=settings["shared_secret"],
        production_url=settings["production_url"],
        sandbox_url=settings["sandbox_url"],
        timeout=settings["timeout"],
    )
    return RetryingReceiptVerifier(
        app_store,
        attempts=settings["retry_attempts"],
        backoff_seconds=settings["retry_backoff"],
    )
