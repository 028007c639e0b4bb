"""
FastAPI dependencies for authentication.

This module provides dependency functions that can be used in route handlers to:
- Extract and validate the current user from a JWT bearer token
- Resolve a raw token to a user for transports without headers (WebSocket)
"""

import logging
from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from database import get_db
from models import User
from auth.security import verify_token
from errors import Unauthenticated

logger = logging.getLogger(__name__)

# HTTP Bearer token scheme for JWT authentication
security = HTTPBearer(auto_error=False)


def resolve_token(token: Optional[str], db: Session) -> User:
    """
    Resolve a bearer token to the user it was issued for.

    Args:
        token: Raw JWT access token
        db: Database session

    Returns:
        User the token is bound to

    Raises:
        Unauthenticated: if the token is missing, invalid, expired, of the
            wrong type, or names a user that no longer exists
    """
    if not token:
        logger.info("No authentication credentials provided")
        raise Unauthenticated("Not authenticated")

    payload = verify_token(token)
    if payload is None:
        raise Unauthenticated("Invalid or expired token")

    if payload.get("type") != "access":
        logger.info(f"Invalid token type: {payload.get('type')}")
        raise Unauthenticated("Invalid token type")

    # Parse user_id safely (malformed tokens should return 401, not 500)
    try:
        user_id = int(payload.get("sub"))
    except (TypeError, ValueError):
        logger.info(f"Invalid user_id format in token: {payload.get('sub')}")
        raise Unauthenticated("Invalid token format")

    user = db.query(User).filter(User.id == user_id).first()
    if user is None:
        logger.info(f"User not found for id: {user_id}")
        raise Unauthenticated("User not found")

    logger.debug(f"User authenticated via JWT: {user.id}")
    return user


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db),
) -> User:
    """
    Extract and validate the current user from the Authorization header.

    Example:
        @router.get("/protected")
        def protected_route(user: User = Depends(get_current_user)):
            return {"user_id": user.id}
    """
    token = credentials.credentials if credentials else None
    return resolve_token(token, db)
