"""API authentication using the learner's access token"""
import logging
from typing import Optional
from fastapi import Security
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from chemlab.auth import LearnerIdentity, verify_access_token

logger = logging.getLogger(__name__)

# auto_error=False so a missing header surfaces as our AuthenticationError (401)
security = HTTPBearer(auto_error=False)


async def get_current_identity(
    credentials: Optional[HTTPAuthorizationCredentials] = Security(security)
) -> LearnerIdentity:
    """
    Verify the bearer token from the Authorization header

    Raises:
        AuthenticationError: missing or invalid token
    """
    token = credentials.credentials if credentials else None
    return verify_access_token(token)
