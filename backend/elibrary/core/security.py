import os
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import jwt
from elibrary.core.config import WEAK_SECRETS, is_production
from passlib.context import CryptContext

# Password hashing configuration
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def hash_password(password: str) -> str:
    """Hash a password using bcrypt.

    Args:
        password: Plain text password to hash

    Returns:
        Hashed password string
    """
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify a password against its hash."""
    return pwd_context.verify(plain_password, hashed_password)


# JWT configuration
def get_jwt_secret_key():
    """Get JWT secret key with production validation.

    In production (FLASK_ENV=production) the secret must be set, must not be a
    known development default and must be at least 32 characters long.

    Raises:
        ValueError: If production deployment uses weak or missing JWT secret
    """
    secret = os.getenv("JWT_SECRET_KEY", "dev-jwt-secret-change-me")
    if is_production():
        if secret in WEAK_SECRETS or len(secret) < 32:
            raise ValueError(
                "Production deployment requires strong JWT_SECRET_KEY (min 32 chars). "
                "Set JWT_SECRET_KEY environment variable."
            )

    return secret


JWT_ALGORITHM = "HS256"
JWT_EXPIRATION_HOURS = 24 * 30


def create_access_token(
    data: Dict[str, Any], expires_delta: Optional[timedelta] = None
) -> str:
    """Create a JWT access token.

    Args:
        data: Payload data to encode in the token
        expires_delta: Optional custom expiration time

    Returns:
        Encoded JWT token string
    """
    to_encode = data.copy()

    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(hours=JWT_EXPIRATION_HOURS)

    to_encode.update({"exp": expire})

    return jwt.encode(to_encode, get_jwt_secret_key(), algorithm=JWT_ALGORITHM)


def decode_access_token(token: str) -> Optional[Dict[str, Any]]:
    """Decode and validate a JWT access token.

    Returns:
        Decoded payload if valid, None if invalid or expired
    """
    try:
        return jwt.decode(token, get_jwt_secret_key(), algorithms=[JWT_ALGORITHM])
    except jwt.PyJWTError:
        return None


def create_user_token(
    user_id: int, email: str, expires_delta: Optional[timedelta] = None
) -> str:
    """Create a JWT token for a mobile/API user."""
    token_data = {"sub": str(user_id), "email": email, "type": "access"}
    return create_access_token(token_data, expires_delta)


def get_user_from_token(token: str) -> Optional[Dict[str, Any]]:
    """Extract user information from a JWT token.

    Returns:
        {"user_id": int, "email": str} if valid, None otherwise
    """
    payload = decode_access_token(token)
    if payload is None:
        return None

    user_id = payload.get("sub")
    email = payload.get("email")

    if user_id is None or email is None:
        return None

    try:
        return {"user_id": int(user_id), "email": email}
    except (TypeError, ValueError):
        return None


def extract_bearer_token(auth_header: Optional[str]) -> Optional[str]:
    """Return the token part of an 'Authorization: Bearer <token>' header."""
    if not auth_header or not auth_header.startswith("Bearer "):
        return None
    token = auth_header.split(" ", 1)[1].strip()
    return token or None
