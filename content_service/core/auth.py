"""
Authentication dependencies for content service.

Turns the bearer token of a request into the Ctx every repository call
runs under.
"""

from typing import Optional

import structlog
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from ..domain.exceptions import AuthError, CtxCannotNewRootCtx
from .context import Ctx
from .security import Principal, validate_token

logger = structlog.get_logger(__name__)
security = HTTPBearer(auto_error=False)


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_principal(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> Optional[Principal]:
    """
    Validate the bearer token, if any.

    Returns:
        Principal for a valid token, None when no token was sent

    Raises:
        HTTPException: 401 if a token was sent but is not valid
    """
    if not credentials:
        return None

    try:
        principal = validate_token(credentials.credentials)
    except AuthError as e:
        raise _unauthorized(e.reason) from None

    structlog.contextvars.bind_contextvars(user_id=principal.author_id)
    return principal


async def require_ctx(principal: Optional[Principal] = Depends(get_principal)) -> Ctx:
    """
    Require an authenticated author and build its execution context.

    Raises:
        HTTPException: 401 if the request is not authenticated
    """
    if principal is None:
        logger.debug("Authenticated endpoint called without credentials")
        raise _unauthorized("Authentication required")

    try:
        return Ctx.new(principal.author_id)
    except CtxCannotNewRootCtx:
        raise _unauthorized("invalid subject") from None
