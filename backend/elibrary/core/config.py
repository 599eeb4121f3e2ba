"""
Centralized configuration module for application-wide settings.

Values are read from environment variables (optionally loaded from a .env
file by main.py) and exposed both as getter functions, so tests can change
the environment and re-read them, and as module-level constants resolved at
import time.
"""

import logging
import os

logger = logging.getLogger(__name__)

_TRUTHY = ("true", "1", "yes")


def _get_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning(
            f"Invalid value for {name}; falling back to default",
            extra={"context": {"variable": name, "value": raw, "default": default}},
        )
        return default


def _get_int(name: str, default: int) -> int:
    return int(_get_float(name, float(default)))


def is_truthy(value: str | None) -> bool:
    return (value or "").strip().lower() in _TRUTHY


# ===========================
# Environment
# ===========================


def get_environment() -> str:
    """Return the deployment environment (development, production, ...)."""
    return os.getenv("FLASK_ENV", "development")


def is_production() -> bool:
    return get_environment() == "production"


def is_test_mode() -> bool:
    """Check if we're running in test mode (pytest/CI)."""
    return is_truthy(os.getenv("TESTING")) or bool(os.getenv("PYTEST_CURRENT_TEST"))


def get_database_url() -> str:
    """
    Get the SQLAlchemy database URL.

    Environment Variables:
        DATABASE_URL: Any SQLAlchemy URL (PostgreSQL in production)
            Default: 'sqlite:///./elibrary.db'
    """
    return os.getenv("DATABASE_URL", "sqlite:///./elibrary.db")


# ===========================
# App Store Receipt Verification
# ===========================

APPSTORE_PRODUCTION_URL_DEFAULT = "https://buy.itunes.apple.com/verifyReceipt"
APPSTORE_SANDBOX_URL_DEFAULT = "https://sandbox.itunes.apple.com/verifyReceipt"


def get_appstore_settings() -> dict:
    """
    Get App Store receipt verification settings.

    Environment Variables:
        APPSTORE_SHARED_SECRET: App-specific shared secret (required for
            auto-renewable subscriptions, optional otherwise)
        APPSTORE_PRODUCTION_URL / APPSTORE_SANDBOX_URL: verifyReceipt endpoints
        APPSTORE_TIMEOUT_SECONDS: Per-request HTTP timeout (default 10)
        APPSTORE_RETRY_ATTEMPTS: Total attempts on transient failures (default 3)
        APPSTORE_RETRY_BACKOFF_SECONDS: Base backoff, doubled per attempt (default 0.5)

    Returns:
        dict with keys shared_secret, production_url, sandbox_url, timeout,
        retry_attempts, retry_backoff
    """
    return {
        "shared_secret": os.getenv("APPSTORE_SHARED_SECRET") or None,
        "production_url": os.getenv(
            "APPSTORE_PRODUCTION_URL", APPSTORE_PRODUCTION_URL_DEFAULT
        ),
        "sandbox_url": os.getenv("APPSTORE_SANDBOX_URL", APPSTORE_SANDBOX_URL_DEFAULT),
        "timeout": _get_float("APPSTORE_TIMEOUT_SECONDS", 10.0),
        "retry_attempts": max(1, _get_int("APPSTORE_RETRY_ATTEMPTS", 3)),
        "retry_backoff": max(0.0, _get_float("APPSTORE_RETRY_BACKOFF_SECONDS", 0.5)),
    }


def get_purchase_deadline_seconds() -> float:
    """
    Get the time budget for a single verify-purchase request.

    Environment Variables:
        PURCHASE_VERIFY_DEADLINE_SECONDS: Seconds allowed for receipt
            verification including retries (default 30)
    """
    return max(1.0, _get_float("PURCHASE_VERIFY_DEADLINE_SECONDS", 30.0))


# ===========================
# Secrets
# ===========================

WEAK_SECRETS = ("dev-secret-change-me", "dev-jwt-secret-change-me", "secret123")


def get_secret_key() -> str:
    return os.getenv("FLASK_SECRET_KEY", "dev-secret-change-me")


def validate_production_secrets() -> None:
    """Fail fast if a production deployment runs with weak secrets."""
    if not is_production():
        return
    secret_key = get_secret_key()
    if secret_key in WEAK_SECRETS or len(secret_key) < 32:
        raise ValueError(
            "Production deployment requires strong SECRET_KEY (min 32 chars). "
            "Set FLASK_SECRET_KEY environment variable."
        )


def log_purchase_config() -> None:
    """
    Log the active receipt verification configuration.

    Should be called during application startup; never logs the shared secret.
    """
    settings = get_appstore_settings()
    logger.info(
        "Receipt verification configuration initialized",
        extra={
            "context": {
                "production_url": settings["production_url"],
                "sandbox_url": settings["sandbox_url"],
                "has_shared_secret": bool(settings["shared_secret"]),
                "timeout": settings["timeout"],
                "retry_attempts": settings["retry_attempts"],
                "deadline_seconds": get_purchase_deadline_seconds(),
            }
        },
    )
