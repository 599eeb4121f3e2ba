"""Security helpers (passwords, JWT) and environment configuration."""

from datetime import timedelta

import jwt
import pytest
from elibrary.core import config
from elibrary.core.security import (
    create_user_token,
    decode_access_token,
    extract_bearer_token,
    get_jwt_secret_key,
    get_user_from_token,
    hash_password,
    verify_password,
)


@pytest.mark.unit
@pytest.mark.security
class TestPasswords:
    def test_hash_and_verify(self):
        hashed = hash_password("correct horse")

        assert hashed != "correct horse"
        assert verify_password("correct horse", hashed) is True
        assert verify_password("wrong", hashed) is False


@pytest.mark.unit
@pytest.mark.security
class TestTokens:
    def test_round_trip(self):
        token = create_user_token(7, "reader@example.com")

        assert get_user_from_token(token) == {"user_id": 7, "email": "reader@example.com"}
        assert decode_access_token(token)["sub"] == "7"

    def test_expired_token_rejected(self):
        token = create_user_token(7, "reader@example.com", expires_delta=timedelta(seconds=-1))

        assert decode_access_token(token) is None
        assert get_user_from_token(token) is None

    def test_token_signed_with_other_key_rejected(self):
        forged = jwt.encode({"sub": "7", "email": "x@example.com"}, "other", algorithm="HS256")

        assert get_user_from_token(forged) is None

    def test_token_without_subject_rejected(self):
        token = jwt.encode(
            {"email": "x@example.com"}, get_jwt_secret_key(), algorithm="HS256"
        )

        assert get_user_from_token(token) is None

    @pytest.mark.parametrize(
        "header,expected",
        [
            ("Bearer abc.def", "abc.def"),
            ("Bearer   ", None),
            ("Basic abc", None),
            (None, None),
            ("", None),
        ],
    )
    def test_extract_bearer_token(self, header, expected):
        assert extract_bearer_token(header) == expected

    def test_production_rejects_weak_jwt_secret(self, monkeypatch):
        monkeypatch.setenv("FLASK_ENV", "production")
        monkeypatch.setenv("JWT_SECRET_KEY", "dev-jwt-secret-change-me")

        with pytest.raises(ValueError):
            get_jwt_secret_key()


@pytest.mark.unit
class TestConfig:
    def test_appstore_defaults(self, monkeypatch):
        for name in (
            "APPSTORE_SHARED_SECRET",
            "APPSTORE_PRODUCTION_URL",
            "APPSTORE_SANDBOX_URL",
            "APPSTORE_TIMEOUT_SECONDS",
            "APPSTORE_RETRY_ATTEMPTS",
            "APPSTORE_RETRY_BACKOFF_SECONDS",
        ):
            monkeypatch.delenv(name, raising=False)

        settings = config.get_appstore_settings()

        assert settings == {
            "shared_secret": None,
            "production_url": config.APPSTORE_PRODUCTION_URL_DEFAULT,
            "sandbox_url": config.APPSTORE_SANDBOX_URL_DEFAULT,
            "timeout": 10.0,
            "retry_attempts": 3,
            "retry_backoff": 0.5,
        }

    def test_invalid_number_falls_back_to_default(self, monkeypatch):
        monkeypatch.setenv("APPSTORE_TIMEOUT_SECONDS", "ten")
        monkeypatch.setenv("APPSTORE_RETRY_ATTEMPTS", "0")

        settings = config.get_appstore_settings()

        assert settings["timeout"] == 10.0
        assert settings["retry_attempts"] == 1

    def test_deadline_seconds(self, monkeypatch):
        monkeypatch.delenv("PURCHASE_VERIFY_DEADLINE_SECONDS", raising=False)
        assert config.get_purchase_deadline_seconds() == 30.0

        monkeypatch.setenv("PURCHASE_VERIFY_DEADLINE_SECONDS", "12")
        assert config.get_purchase_deadline_seconds() == 12.0

    def test_production_rejects_weak_secret_key(self, monkeypatch):
        monkeypatch.setenv("FLASK_ENV", "production")
        monkeypatch.setenv("FLASK_SECRET_KEY", "secret123")

        with pytest.raises(ValueError):
            config.validate_production_secrets()

    def test_test_mode_detected(self):
        assert config.is_test_mode() is True
