"""
Authentication module for the server.

Provides JWT-based authentication with clear separation of concerns.
The credential travels in the handshake payload (``{"auth": {"token": ...}}``),
never in a header or the query string.
"""

import json
import logging
from typing import Any, Optional

import jwt

from PresenceHub.config import config
from PresenceHub.core.server.exceptions import AUTH_ERROR_MESSAGE, AuthenticationError
from PresenceHub.core.server.interfaces import Authenticator, AuthResult, Identity

logger = logging.getLogger(__name__)


class JWTAuthenticator:
    """
    JWT-based authenticator implementation.

    Verifies signature and expiry against the shared secret and turns the
    ``userId``/``email``/``role`` claims into an Identity.
    """

    def __init__(
        self,
        secret: str = None,
        algorithm: str = None,
        token_extractor=None
    ):
        """
        Initialize JWT authenticator.

        Args:
            secret: JWT secret key (defaults to config.JWT_SECRET)
            algorithm: JWT algorithm (defaults to config.JWT_ALGORITHM)
            token_extractor: Optional custom token extractor
        """
        self._secret = secret or config.JWT_SECRET
        self._algorithm = algorithm or config.JWT_ALGORITHM
        self._token_extractor = token_extractor or HandshakeTokenExtractor()

    def verify(self, token: str) -> Identity:
        """
        Verify a token and return the identity it carries.

        Args:
            token: JWT token string

        Returns:
            Identity decoded from the claims

        Raises:
            AuthenticationError: On bad signature, expiry, malformed token or
                claims. The message is always the generic one.
        """
        try:
            payload = jwt.decode(token, self._secret, algorithms=[self._algorithm])
        except jwt.ExpiredSignatureError as e:
            raise AuthenticationError("token_expired") from e
        except jwt.InvalidTokenError as e:
            raise AuthenticationError("invalid_token") from e

        try:
            return Identity.from_claims(payload)
        except ValueError as e:
            raise AuthenticationError("invalid_payload") from e

    async def authenticate(self, token: str) -> AuthResult:
        """
        Validate a JWT token.

        Args:
            token: JWT token string

        Returns:
            AuthResult with authentication status and identity
        """
        try:
            identity = self.verify(token)
        except AuthenticationError as e:
            logger.warning("Authentication failed: %s", e.reason)
            return AuthResult(
                success=False,
                error_message=AUTH_ERROR_MESSAGE,
                error_code=e.reason.upper()
            )
        return AuthResult(success=True, identity=identity)

    def extract_token(self, handshake: Any) -> Optional[str]:
        """
        Extract token from the handshake payload.

        Args:
            handshake: First frame received on the connection

        Returns:
            Extracted token or None
        """
        return self._token_extractor.extract(handshake)


class HandshakeTokenExtractor:
    """
    Token extractor for the handshake auth payload.

    Accepts the raw first frame (str/bytes) or an already decoded dict of
    the form ``{"auth": {"token": "<jwt>"}}``.
    """

    def extract(self, handshake: Any) -> Optional[str]:
        """
        Extract token from the handshake.

        Args:
            handshake: Raw frame or decoded dict

        Returns:
            Extracted token or None
        """
        if isinstance(handshake, (str, bytes, bytearray)):
            handshake = self._decode(handshake)

        if not isinstance(handshake, dict):
            return None

        auth = handshake.get("auth")
        if not isinstance(auth, dict):
            return None

        token = auth.get("token")
        if isinstance(token, str) and token:
            return token
        return None

    @staticmethod
    def _decode(raw: Any) -> Optional[Any]:
        try:
            return json.loads(raw)
        except (TypeError, ValueError) as e:
            logger.debug("Handshake frame is not JSON: %s", e)
            return None


class AuthenticationMiddleware:
    """
    Middleware that wraps authentication logic.

    Runs once per connection attempt, before any event handler exists for
    that connection.
    """

    def __init__(self, authenticator: Authenticator):
        """
        Initialize middleware.

        Args:
            authenticator: Authenticator implementation
        """
        self._authenticator = authenticator

    async def authenticate_connection(self, handshake: Any) -> AuthResult:
        """
        Authenticate a connection attempt.

        Args:
            handshake: Handshake payload received from the client

        Returns:
            AuthResult with authentication status
        """
        token = self._authenticator.extract_token(handshake)

        if not token:
            logger.warning("Authentication failed: no token in handshake")
            return AuthResult(
                success=False,
                error_message=AUTH_ERROR_MESSAGE,
                error_code="NO_TOKEN"
            )

        return await self._authenticator.authenticate(token)
