"""
JWT token utilities.

Identity is issued elsewhere; this service only verifies bearer tokens
carrying ``sub``, ``user_id`` and ``role`` claims. ``create_access_token``
is used by tooling and tests to mint tokens with the shared secret.
"""

from datetime import timedelta
from typing import Optional, Dict, Any
from jose import JWTError, jwt
from parcel_handoff.app.core.clock import utcnow
from parcel_handoff.app.core.config import settings


def create_access_token(data: Dict[str, Any], expires_delta: Optional[timedelta] = None) -> str:
    """
    Create a JWT access token.
    
    Example payload:
        {
            "sub": "carrier_jane",
            "user_id": 12,
            "role": "CARRIER",
            "exp": 1234567890
        }
    """
    to_encode = data.copy()
    expire = utcnow() + (expires_delta or timedelta(minutes=settings.access_token_expire_minutes))
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.secret_key, algorithm=settings.algorithm)


def decode_access_token(token: str) -> Optional[Dict[str, Any]]:
    """Decode and validate a JWT; returns None when the signature or expiry is invalid."""
    try:
        return jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
    except JWTError:
        return None
