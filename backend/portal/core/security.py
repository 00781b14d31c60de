"""
Password hashing and JWT helpers for access tokens and signature magic links.
"""
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import bcrypt
import jwt

from portal.core.config import settings

ACCESS_PURPOSE = "access"
MAGIC_LINK_PURPOSE = "magic_link"


def hash_password(password: str) -> str:
    """Hash a password using bcrypt."""
    return bcrypt.hashpw(password.encode('utf-8'), bcrypt.gensalt()).decode('utf-8')


def verify_password(password: str, hashed: str) -> bool:
    return bcrypt.checkpw(password.encode('utf-8'), hashed.encode('utf-8'))


def _encode(payload: Dict[str, Any], expires_minutes: int) -> str:
    now = datetime.now(timezone.utc)
    payload = {**payload, "iat": now, "exp": now + timedelta(minutes=expires_minutes)}
    return jwt.encode(payload, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def create_access_token(profile_id: int, role: str) -> str:
    return _encode(
        {"sub": str(profile_id), "role": role, "purpose": ACCESS_PURPOSE},
        settings.ACCESS_TOKEN_EXPIRE_MINUTES,
    )


def create_magic_link_token(profile_id: int, email: str, policy_id: Optional[int] = None) -> str:
    """
    Login token embedded in the links emailed to clients.
    The ``jti`` lets the verifier accept each link only once.
    """
    payload = {
        "sub": str(profile_id),
        "email": email,
        "purpose": MAGIC_LINK_PURPOSE,
        "jti": uuid.uuid4().hex,
    }
    if policy_id is not None:
        payload["policy_id"] = policy_id
    return _encode(payload, settings.MAGIC_LINK_EXPIRE_MINUTES)


def decode_token(token: str, purpose: str = ACCESS_PURPOSE) -> Dict[str, Any]:
    """
    Decode and verify a token.
    Raises jwt.InvalidTokenError when the signature, expiry or purpose is wrong.
    """
    payload = jwt.decode(
        token,
        settings.SECRET_KEY,
        algorithms=[settings.ALGORITHM],
        options={"require": ["sub", "exp", "iat"]},
    )
    if payload.get("purpose") != purpose:
        raise jwt.InvalidTokenError(f"Token is not valid for {purpose}")
    return payload
