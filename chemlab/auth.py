"""Learner identity verification

Access tokens are issued by the hosted auth provider (HS256 JWTs signed with
the project's JWT secret). This module only verifies them; sign-in flows live
with the provider.
"""
import logging
from dataclasses import dataclass
from typing import Optional

import jwt

from chemlab.config import JWT_SECRET, JWT_AUDIENCE
from chemlab.db import queries
from chemlab.db.connection import db
from chemlab.exceptions import AuthenticationError, AuthorizationError, ConfigurationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LearnerIdentity:
    """Verified caller identity for one request"""
    user_id: str
    email: Optional[str] = None
    role: Optional[str] = None


def verify_access_token(token: Optional[str]) -> LearnerIdentity:
    """
    Decode and verify an access token

    Raises:
        AuthenticationError: missing, expired or tampered token
        ConfigurationError: JWT_SECRET is not configured
    """
    if not token:
        raise AuthenticationError("Missing access token")

    if not JWT_SECRET:
        raise ConfigurationError("JWT_SECRET is not configured", config_key="JWT_SECRET")

    try:
        claims = jwt.decode(
            token,
            JWT_SECRET,
            algorithms=["HS256"],
            audience=JWT_AUDIENCE,
            options={"require": ["sub", "exp"]},
        )
    except jwt.ExpiredSignatureError as e:
        raise AuthenticationError("Access token expired", cause=e)
    except jwt.InvalidTokenError as e:
        raise AuthenticationError(f"Invalid access token: {e}", cause=e)

    user_id = claims.get("sub")
    if not user_id:
        raise AuthenticationError("Access token has no subject")

    logger.debug(f"Authenticated user: {user_id}")
    return LearnerIdentity(user_id=user_id, email=claims.get("email"), role=claims.get("role"))


def require_identity(identity: Optional[LearnerIdentity], operation: Optional[str] = None) -> str:
    """Return the verified learner ID or raise AuthenticationError"""
    if identity is None or not identity.user_id:
        raise AuthenticationError("Learner identity could not be established", operation=operation)
    return identity.user_id


async def require_admin(identity: Optional[LearnerIdentity], operation: Optional[str] = None, conn=None) -> str:
    """
    Return the caller's ID if they hold the admin role

    The role is looked up in ``user_roles``; token claims are not trusted.
    """
    user_id = require_identity(identity, operation=operation)

    if conn is not None:
        admin = await queries.is_admin(conn, user_id)
    else:
        async with db.connection() as new_conn:
            admin = await queries.is_admin(new_conn, user_id)

    if not admin:
        raise AuthorizationError(
            f"User {user_id} is not an admin",
            resource=operation,
            user_id=user_id,
            operation=operation,
        )
    return user_id
