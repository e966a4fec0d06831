"""
Shared pieces of the messaging HTTP api: request models and bearer-token
authentication against the gateway's JWTAuthenticator.
"""

import logging
from typing import Optional

from fastapi import HTTPException
from pydantic import BaseModel
from starlette.requests import Request

from PresenceHub.core.server.auth import JWTAuthenticator
from PresenceHub.core.server.exceptions import AUTH_ERROR_MESSAGE, AuthenticationError
from PresenceHub.core.server.interfaces import Identity

logger = logging.getLogger(__name__)


class SendMessageRequest(BaseModel):
    recipientId: int
    content: str


def bearer_token(request: Request) -> Optional[str]:
    """Extract the token from an ``Authorization: Bearer`` header."""
    auth = request.headers.get("Authorization")
    if not auth or not auth.startswith("Bearer "):
        return None
    token = auth.split(" ", 1)[1].strip()
    return token or None


def authenticate_request(request: Request, authenticator: JWTAuthenticator) -> Identity:
    """
    Resolve the caller's identity.

    Raises:
        HTTPException: 401 with the generic auth error on any failure
    """
    token = bearer_token(request)
    if token is None:
        raise HTTPException(status_code=401, detail=AUTH_ERROR_MESSAGE)
    try:
        return authenticator.verify(token)
    except AuthenticationError as e:
        logger.info("Rejected api request to %s (%s)", request.url.path, e.reason)
        raise HTTPException(status_code=401, detail=AUTH_ERROR_MESSAGE)


__all__ = [
    'SendMessageRequest',
    'bearer_token',
    'authenticate_request',
]
