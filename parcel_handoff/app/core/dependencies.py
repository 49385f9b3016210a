"""
FastAPI dependencies: authentication and service lookup.
"""

import hmac
from typing import Optional
from fastapi import Depends, Header, HTTPException, Request, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from parcel_handoff.app.core.config import settings
from parcel_handoff.app.core.exceptions import AuthenticationError
from parcel_handoff.app.core.jwt import decode_access_token
from parcel_handoff.app.db.session import get_db
from parcel_handoff.app.models.user import User
from parcel_handoff.app.services.container import DeliveryServices

# HTTP Bearer security scheme
security = HTTPBearer()


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: AsyncSession = Depends(get_db)
) -> dict:
    """
    FastAPI dependency for JWT authentication.
    
    1. Validates JWT token signature and expiry
    2. Verifies the user still exists and is active (real-time check)
    
    Returns:
        Decoded token payload (``sub``, ``user_id``, ``role``)
        
    Raises:
        HTTPException: 401 if authentication fails, 403 if the account is inactive
    """
    payload = decode_access_token(credentials.credentials)
    if payload is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )
    
    user_id = payload.get("user_id")
    if not user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token payload",
            headers={"WWW-Authenticate": "Bearer"},
        )
    
    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found",
            headers={"WWW-Authenticate": "Bearer"},
        )
    
    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User account is inactive",
        )
    
    return payload


def get_services(request: Request) -> DeliveryServices:
    """Delivery services built by the application lifespan."""
    return request.app.state.services


async def verify_cron_secret(x_cron_secret: Optional[str] = Header(None)) -> None:
    """Guard for the internal sweep trigger called by an external scheduler."""
    if not x_cron_secret or not hmac.compare_digest(x_cron_secret.encode(), settings.cron_secret.encode()):
        raise AuthenticationError("Invalid cron secret")
