"""
Exception classes for the gateway.

Admission failures never leave the authenticator as exceptions; they are
turned into an AuthResult. The lifecycle errors, on the other hand, are
meant to reach the caller: they signal a startup-ordering bug.
"""

AUTH_ERROR_MESSAGE = "Authentication error"


class GatewayError(Exception):
    """Base exception for all gateway errors."""
    pass


class GatewayNotInitializedError(GatewayError):
    """Raised when the gateway is used before ``initialize`` ran."""

    def __init__(self, message: str = "Gateway not initialized"):
        super().__init__(message)


class GatewayAlreadyInitializedError(GatewayError):
    """Raised when ``initialize`` is called a second time."""

    def __init__(self, message: str = "Gateway already initialized"):
        super().__init__(message)


class ConnectionStateError(GatewayError):
    """Raised on an illegal connection state transition."""
    pass


class AuthenticationError(GatewayError):
    """
    Raised when a credential cannot be verified.

    The message is always the same generic text; the actual reason is kept
    in ``reason`` for server-side logs only.
    """

    def __init__(self, reason: str = "invalid_token"):
        self.reason = reason
        super().__init__(AUTH_ERROR_MESSAGE)


class StoreError(GatewayError):
    """Raised by the durable store adapter when a query fails."""
    pass
