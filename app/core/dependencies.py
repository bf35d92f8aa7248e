# app/core/dependencies.py
import logging

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from app.core.security import AuthUser, TokenVerifier, identity_from_payload
from app.database import get_db

logger = logging.getLogger(__name__)

security = HTTPBearer()
auth = TokenVerifier()

__all__ = ["get_current_user", "get_db", "validate_token", "security", "auth"]


async def validate_token(token: HTTPAuthorizationCredentials = Depends(security)) -> dict:
    """Validate and decode the bearer JWT.

    Returns:
        dict: Decoded token payload

    Raises:
        HTTPException: If token is invalid or expired
    """
    try:
        if not token or not token.credentials:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Authentication token is required",
                headers={"WWW-Authenticate": "Bearer"},
            )

        return auth.verify_token(token.credentials)

    except HTTPException:
        raise
    except Exception as e:
        logger.error("Token validation error: %s", str(e))
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication failed",
            headers={"WWW-Authenticate": "Bearer"},
        ) from e


async def get_current_user(
    request: Request,
    payload: dict = Depends(validate_token),
) -> AuthUser:
    """Get the current identity from the verified JWT payload.

    Returns:
        AuthUser: Current authenticated identity

    Raises:
        HTTPException: If the payload carries no usable user id
    """
    user = identity_from_payload(payload)

    # Add user info to request state for logging
    request.state.user_id = user.id

    return user
