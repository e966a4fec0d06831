"""
Data types and collaborator contracts for the server module.

The gateway only depends on these protocols, so the JWT verifier, the
durable store and the transport can each be replaced by a test double.
"""

from abc import abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Protocol, runtime_checkable


class Role(str, Enum):
    """Roles carried in the signed claims."""
    ADMIN = "admin"
    EMPLOYEE = "employee"


@dataclass(frozen=True)
class Identity:
    """
    Verified identity of a connection.

    Immutable: a connection keeps the identity it was admitted with until it
    closes.
    """
    user_id: int
    email: str
    role: Role

    @classmethod
    def from_claims(cls, claims: Mapping[str, Any]) -> 'Identity':
        """
        Build an identity from decoded token claims.

        Raises:
            ValueError: If userId is not an integer, email is missing or
                role is not a known role
        """
        user_id = claims.get("userId")
        if isinstance(user_id, bool) or not isinstance(user_id, int):
            raise ValueError("userId claim must be an integer")
        email = claims.get("email")
        if not isinstance(email, str) or not email:
            raise ValueError("email claim is required")
        return cls(user_id=user_id, email=email, role=Role(claims.get("role")))


@dataclass
class AuthResult:
    """Result of an authentication attempt."""
    success: bool
    identity: Optional[Identity] = None
    error_message: Optional[str] = None
    error_code: Optional[str] = None


@runtime_checkable
class Authenticator(Protocol):
    """Protocol for connection authenticators."""

    @abstractmethod
    async def authenticate(self, token: str) -> AuthResult:
        """
        Verify a credential.

        Args:
            token: Signed credential

        Returns:
            AuthResult carrying the Identity on success
        """
        ...

    @abstractmethod
    def extract_token(self, handshake: Any) -> Optional[str]:
        """
        Extract the credential from the handshake payload.

        Args:
            handshake: Raw or decoded handshake frame

        Returns:
            Token or None if the handshake carries none
        """
        ...


@runtime_checkable
class TransportConnection(Protocol):
    """Protocol for transport layer connections."""

    conn_id: str

    @abstractmethod
    async def send(self, message: str) -> bool:
        """Send a serialized frame through the connection."""
        ...

    @abstractmethod
    async def close(self, code: int = 1000, reason: str = "") -> None:
        """Close the connection."""
        ...

    @abstractmethod
    def is_open(self) -> bool:
        """Check if connection is open."""
        ...


@runtime_checkable
class MessageStore(Protocol):
    """
    Protocol for the durable message store.

    Rows are plain dicts shaped like the ``new_message`` payload:
    ``{id, sender_id, recipient_id, content, is_read, created_at}``.
    """

    @abstractmethod
    async def insert_message(self, sender_id: int, recipient_id: int, content: str) -> Dict[str, Any]:
        """Persist a message; id and created_at are generated by the store."""
        ...

    @abstractmethod
    async def fetch_history(
        self,
        user_id: int,
        other_user_id: int,
        limit: int = 50,
        offset: int = 0
    ) -> List[Dict[str, Any]]:
        """Return one page of the conversation, oldest first."""
        ...

    @abstractmethod
    async def mark_read(self, reader_id: int, sender_id: int) -> int:
        """Mark messages from sender to reader as read; returns the count."""
        ...

    @abstractmethod
    async def find_user_by_id(self, user_id: int) -> Optional[Dict[str, Any]]:
        """Look up a user row."""
        ...

    @abstractmethod
    async def unread_count(self, user_id: int) -> int:
        """Count unread messages addressed to the user."""
        ...

    @abstractmethod
    async def list_conversations(self, user_id: int) -> List[Dict[str, Any]]:
        """List conversation peers with their last message and unread count."""
        ...


__all__ = [
    'Role',
    'Identity',
    'AuthResult',
    'Authenticator',
    'TransportConnection',
    'MessageStore',
]
