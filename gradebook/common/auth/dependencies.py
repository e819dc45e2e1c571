"""
Authentication dependencies for the gradebook API.

The bearer token is either a signed JWT (when ``JWT_SECRET`` is configured)
whose ``sub`` and ``roles`` claims identify the caller, or, in development,
the user id itself with roles taken from the ``X-User-Roles`` header.
"""

import logging
from typing import Optional

import jwt
from fastapi import Header

from gradebook.config import settings
from gradebook.common.auth.principal import Principal
from gradebook.common.errors import NotAuthenticated

logger = logging.getLogger(__name__)


def principal_from_token(token: str, roles_header: Optional[str] = None) -> Principal:
    """
    Resolve a bearer token into a principal.

    Raises:
        NotAuthenticated: If the token cannot be decoded or carries no subject
    """
    if settings.JWT_SECRET:
        try:
            payload = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
        except jwt.PyJWTError as e:
            logger.warning(f"Rejected bearer token: {e}")
            raise NotAuthenticated(f"Invalid token: {e}")
        roles = payload.get("roles") or []
        if isinstance(roles, str):
            roles = roles.split(",")
        return Principal.from_claims(payload.get("sub"), roles)

    roles = roles_header.split(",") if roles_header else []
    return Principal.from_claims(token, roles)


async def get_current_principal(
    authorization: Optional[str] = Header(None),
    x_user_roles: Optional[str] = Header(None)
) -> Principal:
    """
    Get the calling principal from the authorization header.

    Raises:
        NotAuthenticated: If the header is missing or malformed
    """
    if not authorization:
        raise NotAuthenticated("Missing authorization header")

    try:
        scheme, token = authorization.split()
    except ValueError:
        raise NotAuthenticated("Invalid authorization header format")

    if scheme.lower() != "bearer":
        raise NotAuthenticated("Invalid authentication scheme")

    return principal_from_token(token, x_user_roles)
