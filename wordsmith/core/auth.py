"""
Caller context for billing routes.

Resolves the caller's workspace from an HS256 JWT carrying a `workspace_id`
claim, and the caller's user from its `sub` claim. Falls back to the
X-Workspace-Id / X-User-Id headers when no JWT_SECRET is configured
(development and tests).
"""
from typing import Any, Dict, Optional
import logging

import jwt
from fastapi import Header, Request

from wordsmith.core.config import settings
from wordsmith.core.errors import UnauthorizedError

logger = logging.getLogger("wordsmith")


def decode_caller_jwt(token: str, secret: str) -> Dict[str, Any]:
    """
    Verify a caller JWT and return its claims.

    Raises:
        UnauthorizedError: Invalid or expired token
    """
    try:
        return jwt.decode(
            token,
            secret,
            algorithms=["HS256"],
            options={"verify_signature": True, "verify_exp": True},
        )
    except jwt.ExpiredSignatureError:
        raise UnauthorizedError("Token expired")
    except jwt.InvalidTokenError as e:
        logger.debug("Invalid token: %s", e)
        raise UnauthorizedError("Invalid token")


def verify_workspace_jwt(token: str, secret: str) -> str:
    """
    Verify a caller JWT and extract its workspace_id claim.

    Raises:
        UnauthorizedError: Invalid, expired or claim-less token
    """
    workspace_id = decode_caller_jwt(token, secret).get("workspace_id")
    if not workspace_id:
        raise UnauthorizedError("Token has no workspace")
    return str(workspace_id)


def _bearer_token(request: Request) -> str:
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Bearer "):
        raise UnauthorizedError("Missing Authorization (Bearer JWT)")
    return auth_header[7:]


async def get_current_workspace_id(
    request: Request,
    x_workspace_id: Optional[str] = Header(None, description="Dev/test only: caller workspace"),
) -> str:
    """
    Extract the caller's workspace id.

    Priority:
    1. Bearer JWT (when JWT_SECRET is configured)
    2. X-Workspace-Id header (only when JWT_SECRET is not configured)
    3. 401
    """
    secret = settings.JWT_SECRET

    if secret:
        workspace_id = verify_workspace_jwt(_bearer_token(request), secret)
    elif x_workspace_id:
        workspace_id = x_workspace_id
    else:
        raise UnauthorizedError("Missing Authorization (Bearer JWT) or X-Workspace-Id header")

    request.state.workspace_id = workspace_id
    return workspace_id


async def get_current_user_id(
    request: Request,
    x_user_id: Optional[str] = Header(None, description="Dev/test only: caller user"),
) -> str:
    """
    Extract the caller's user id from the JWT `sub` claim, or X-User-Id without a JWT_SECRET.
    """
    secret = settings.JWT_SECRET

    if secret:
        user_id = decode_caller_jwt(_bearer_token(request), secret).get("sub")
        if not user_id:
            raise UnauthorizedError("Token has no subject")
        return str(user_id)
    if x_user_id:
        return x_user_id
    raise UnauthorizedError("Missing Authorization (Bearer JWT) or X-User-Id header")
