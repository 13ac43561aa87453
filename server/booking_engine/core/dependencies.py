"""FastAPI dependencies for caller identity."""

from typing import Optional

import jwt
from fastapi import Depends, Header
from jwt import PyJWTError

from ..schemas.auth import CurrentUser
from .config import settings
from .exceptions import AuthenticationError, ForbiddenError


async def get_current_user(
    authorization: Optional[str] = Header(None, alias="Authorization")
) -> CurrentUser:
    """
    Authentication dependency that validates Bearer tokens.

    The token is issued by the auth collaborator; ``sub`` is the user ID and
    ``role`` the caller's role.

    Args:
        authorization: Authorization header with Bearer token

    Returns:
        CurrentUser: Identity from the validated token

    Raises:
        AuthenticationError: If the token is missing or invalid
    """
    if not authorization:
        raise AuthenticationError(detail="Authorization header missing")

    try:
        scheme, token = authorization.split()
    except ValueError:
        raise AuthenticationError(detail="Invalid authorization header format")

    if scheme.lower() != "bearer":
        raise AuthenticationError(detail="Invalid authentication scheme")

    try:
        # PyJWT rejects expired tokens when exp is present
        payload = jwt.decode(
            token,
            settings.bearer_token_secret,
            algorithms=["HS256"]
        )
    except PyJWTError as e:
        raise AuthenticationError(detail=f"Token validation failed: {str(e)}")

    user_id = payload.get("sub")
    if not user_id:
        raise AuthenticationError(detail="Invalid token payload")

    return CurrentUser(user_id=str(user_id), role=payload.get("role") or "customer")


async def require_admin(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
    """Allow only callers with the admin role."""
    if not user.is_admin:
        raise ForbiddenError(
            detail="This operation requires the admin role",
            required_role=settings.admin_role,
        )
    return user

