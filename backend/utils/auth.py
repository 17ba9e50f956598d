"""
Authentication utilities
Bearer JWT tokens carry the caller's user id (sub) and organization id (org)
"""
import os
import jwt
from datetime import datetime, timedelta, timezone
from fastapi import HTTPException, Header, Depends
from typing import Optional, Dict, Any
import logging

logger = logging.getLogger(__name__)

SECRET_KEY = os.getenv("JWT_SECRET_KEY", "your-secret-key-change-in-production")
ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = 480  # 8 hours


def create_access_token(user_id: str, username: str, organization_id: Optional[str] = None) -> str:
    """Create a JWT access token"""
    now = datetime.now(timezone.utc)
    to_encode = {
        "sub": user_id,
        "username": username,
        "exp": now + timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES),
        "iat": now,
    }
    if organization_id:
        to_encode["org"] = organization_id
    return jwt.encode(to_encode, SECRET_KEY, algorithm=ALGORITHM)


async def verify_token(authorization: Optional[str] = Header(None)) -> Dict[str, Any]:
    """
    Verify JWT token from Authorization header and return the decoded payload.

    Args:
        authorization: The Authorization header value (Bearer <token>)

    Returns:
        Dict containing the decoded JWT payload with user information

    Raises:
        HTTPException: If token is missing, invalid, or expired
    """
    if not authorization:
        raise HTTPException(
            status_code=401,
            detail="Missing authorization header"
        )

    # Extract token from "Bearer <token>"
    parts = authorization.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise HTTPException(
            status_code=401,
            detail="Invalid authorization header format. Expected 'Bearer <token>'"
        )

    try:
        payload = jwt.decode(
            parts[1],
            SECRET_KEY,
            algorithms=[ALGORITHM],
            options={
                "verify_exp": True,
                "verify_iat": True,
                "verify_signature": True
            }
        )
    except jwt.ExpiredSignatureError:
        raise HTTPException(
            status_code=401,
            detail="Token has expired"
        )
    except jwt.InvalidTokenError as e:
        logger.error(f"Invalid token: {e}")
        raise HTTPException(
            status_code=401,
            detail="Invalid token"
        )

    if not payload.get("sub"):
        raise HTTPException(
            status_code=401,
            detail="Invalid token: missing user ID"
        )

    return payload


async def get_current_user_id(token_payload: Dict[str, Any] = Depends(verify_token)) -> str:
    """Extract the user ID from the verified token payload."""
    return token_payload["sub"]


async def get_user_organization_id(token_payload: Dict[str, Any] = Depends(verify_token)) -> str:
    """
    Extract the organization ID from the verified token payload.

    Every template and process operation is scoped to an organization, so a
    token without one is rejected.
    """
    organization_id = token_payload.get("org")
    if not organization_id:
        raise HTTPException(
            status_code=401,
            detail="Organization not found in token"
        )
    return organization_id
