"""
Transport layer abstraction for WebSocket connections.

Wraps the ``websockets`` server connection and tracks the per-connection
state machine: Connecting -> Admitted -> Closed, or Connecting -> Closed
when the handshake is refused. Nothing leaves Closed.
"""

import logging
import uuid
from enum import Enum, auto
from typing import Dict, FrozenSet, Optional

from websockets.asyncio.server import ServerConnection
from websockets.protocol import State

from PresenceHub.core.server.exceptions import ConnectionStateError
from PresenceHub.core.server.interfaces import Identity

logger = logging.getLogger(__name__)


class ConnectionState(Enum):
    """Lifecycle of a gateway connection."""
    CONNECTING = auto()
    ADMITTED = auto()
    CLOSED = auto()


_TRANSITIONS: Dict[ConnectionState, FrozenSet[ConnectionState]] = {
    ConnectionState.CONNECTING: frozenset({ConnectionState.ADMITTED, ConnectionState.CLOSED}),
    ConnectionState.ADMITTED: frozenset({ConnectionState.CLOSED}),
    ConnectionState.CLOSED: frozenset(),
}


class WebSocketConnection:
    """
    Wrapper around ServerConnection that implements TransportConnection.

    Owned by the gateway for its whole life. Bound to exactly one Identity
    once admitted.
    """

    def __init__(self, websocket: ServerConnection):
        """
        Initialize WebSocket connection wrapper.

        Args:
            websocket: Underlying WebSocket connection
        """
        self._websocket = websocket
        self._identity: Optional[Identity] = None
        self._state = ConnectionState.CONNECTING
        self.conn_id: str = uuid.uuid4().hex

    @property
    def identity(self) -> Optional[Identity]:
        """Identity attached at admission, None before."""
        return self._identity

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def raw_websocket(self) -> ServerConnection:
        """Get underlying WebSocket connection."""
        return self._websocket

    def admit(self, identity: Identity) -> None:
        """
        Attach the verified identity and enter the Admitted state.

        Raises:
            ConnectionStateError: If the connection is not Connecting
        """
        self._transition(ConnectionState.ADMITTED)
        self._identity = identity

    def mark_closed(self) -> bool:
        """Enter Closed. Returns False if the connection was already closed."""
        if self._state is ConnectionState.CLOSED:
            return False
        self._transition(ConnectionState.CLOSED)
        return True

    def _transition(self, new_state: ConnectionState) -> None:
        if new_state not in _TRANSITIONS[self._state]:
            raise ConnectionStateError(
                f"Illegal transition {self._state.name} -> {new_state.name} for {self.conn_id}"
            )
        logger.debug("Connection %s: %s -> %s", self.conn_id, self._state.name, new_state.name)
        self._state = new_state

    async def send(self, message: str) -> bool:
        """
        Send a frame through the connection.

        Args:
            message: Serialized frame

        Returns:
            True if the frame was handed to the transport
        """
        if self._state is ConnectionState.CLOSED:
            return False

        try:
            await self._websocket.send(message)
            return True
        except Exception as e:
            logger.debug("Failed to send on %s: %s", self.conn_id, e)
            return False

    async def close(self, code: int = 1000, reason: str = "") -> None:
        """
        Close the connection.

        Args:
            code: Close code
            reason: Close reason
        """
        if self._state is not ConnectionState.CLOSED:
            self._transition(ConnectionState.CLOSED)
        try:
            await self._websocket.close(code=code, reason=reason)
        except Exception as e:
            logger.debug("Error closing connection %s: %s", self.conn_id, e)

    def is_open(self) -> bool:
        """Check if connection is open."""
        if self._state is ConnectionState.CLOSED:
            return False
        return self._websocket.state is State.OPEN


__all__ = [
    'ConnectionState',
    'WebSocketConnection',
]
