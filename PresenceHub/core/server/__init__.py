"""
Server module for PresenceHub.

Architecture Overview:
---------------------

1. **Authentication** (`auth/`)
   - JWTAuthenticator: Verifies handshake tokens into identities
   - AuthenticationMiddleware: Admission step run on every new connection
   - HandshakeTokenExtractor: Reads the token from the first frame

2. **Presence** (`presence.py`)
   - PresenceRegistry: user id -> live connection id

3. **Transport Layer** (`transport/`)
   - WebSocketConnection: Connection wrapper and state machine

4. **Room Routing** (`routing/`)
   - room_for: Deterministic per-user room key
   - RoomRouter: Room membership and delivery

5. **Event Routing** (`events/`)
   - EventRouter: Inbound event dispatch table
   - ConnectionContext: Per-connection handler context

6. **Gateway** (`gateway.py`)
   - GatewayServer: Composes the components above
   - initialize / get_gateway / push_to_user / is_online

7. **Storage** (`storage_sqlite.py`)
   - SQLiteMessageStore: Default MessageStore implementation

Usage:
------

    from PresenceHub.core.server import initialize, push_to_user

    gateway = initialize()

    async with gateway.run("localhost", 5000):
        await push_to_user(42, "new_message", {...})
"""

from .auth import AuthenticationMiddleware, HandshakeTokenExtractor, JWTAuthenticator
from .events import ConnectionContext, EventRouter, create_default_router
from .exceptions import (
    AUTH_ERROR_MESSAGE,
    AuthenticationError,
    ConnectionStateError,
    GatewayAlreadyInitializedError,
    GatewayError,
    GatewayNotInitializedError,
    StoreError,
)
from .gateway import GatewayServer, get_gateway, initialize, is_online, push_to_user
from .interfaces import AuthResult, Identity, MessageStore, Role
from .presence import PresenceRegistry
from .routing import RoomRouter, room_for
from .storage_sqlite import SQLiteMessageStore
from .transport import ConnectionState, WebSocketConnection

__all__ = [
    # Auth
    'JWTAuthenticator',
    'AuthenticationMiddleware',
    'HandshakeTokenExtractor',
    'AuthResult',
    'Identity',
    'Role',

    # Presence and routing
    'PresenceRegistry',
    'RoomRouter',
    'room_for',

    # Transport
    'ConnectionState',
    'WebSocketConnection',

    # Events
    'ConnectionContext',
    'EventRouter',
    'create_default_router',

    # Gateway
    'GatewayServer',
    'initialize',
    'get_gateway',
    'push_to_user',
    'is_online',

    # Storage
    'MessageStore',
    'SQLiteMessageStore',

    # Errors
    'AUTH_ERROR_MESSAGE',
    'GatewayError',
    'GatewayNotInitializedError',
    'GatewayAlreadyInitializedError',
    'ConnectionStateError',
    'AuthenticationError',
    'StoreError',
]
