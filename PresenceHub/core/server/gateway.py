"""
Gateway server that composes all server components.

Owns the listening WebSocket endpoint, runs the authenticator as admission
middleware, keeps presence, joins each connection to its user room and
dispatches inbound events.

Architecture:
    ┌──────────────────────────────────────────────────────────┐
    │                      GatewayServer                       │
    │  ┌────────────────┐  ┌──────────────┐  ┌──────────────┐  │
    │  │ Authentication │  │ Presence     │  │ Event        │  │
    │  │ Middleware     │  │ Registry     │  │ Router       │  │
    │  └────────────────┘  └──────────────┘  └──────────────┘  │
    │  ┌────────────────┐  ┌──────────────────────────────┐    │
    │  │ Room Router    │  │ Message Store (collaborator) │    │
    │  └────────────────┘  └──────────────────────────────┘    │
    └──────────────────────────────────────────────────────────┘

Connection lifecycle:
    1. upgrade on WS_PATH (origin allow-list enforced by websockets)
    2. first frame = {"auth": {"token": ...}} -> admit or refuse (1008)
    3. register presence -> broadcast online_users -> join user room
    4. event loop, FIFO per connection
    5. on close: leave rooms -> unregister presence -> broadcast online_users

The process-wide instance is managed by ``initialize`` / ``get_gateway``;
collaborators push through ``push_to_user``.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from http import HTTPStatus
from typing import Any, Callable, List, Optional

import websockets
from websockets.asyncio.server import Server, ServerConnection, serve
from websockets.http11 import Request, Response

from PresenceHub.config import config
from PresenceHub.core.message.protocol import Event, EventName, EventType
from PresenceHub.core.server.auth import AuthenticationMiddleware, JWTAuthenticator
from PresenceHub.core.server.events import ConnectionContext, EventRouter, create_default_router
from PresenceHub.core.server.exceptions import (
    AUTH_ERROR_MESSAGE,
    GatewayAlreadyInitializedError,
    GatewayNotInitializedError,
)
from PresenceHub.core.server.interfaces import Identity, MessageStore
from PresenceHub.core.server.presence import PresenceRegistry
from PresenceHub.core.server.routing import RoomRouter, room_for
from PresenceHub.core.server.storage_sqlite import SQLiteMessageStore
from PresenceHub.core.server.transport import WebSocketConnection

logger = logging.getLogger(__name__)

POLICY_VIOLATION = 1008
GOING_AWAY = 1001


class GatewayServer:
    """
    Real-time presence and message-delivery gateway.

    Example:
        gateway = initialize(GatewayServer(store=SQLiteMessageStore("app.db")))

        async with gateway.run("localhost", 5000):
            await asyncio.Future()
    """

    def __init__(
        self,
        authenticator: Optional[JWTAuthenticator] = None,
        store: Optional[MessageStore] = None,
        registry: Optional[PresenceRegistry] = None,
        event_router: Optional[EventRouter] = None,
        rooms: Optional[RoomRouter] = None,
        allowed_origins: Optional[List[str]] = None,
        path: Optional[str] = None,
        handshake_timeout: Optional[float] = None,
        on_user_connect: Optional[Callable[[Identity], None]] = None,
        on_user_disconnect: Optional[Callable[[Identity], None]] = None
    ):
        """
        Initialize the gateway.

        Args:
            authenticator: JWT authenticator (creates default if None)
            store: Durable message store (SQLite at config.SQLITE_DB_FILE if None)
            registry: Presence registry (fresh one if None)
            event_router: Inbound dispatch table (default handlers if None)
            rooms: Room router (fresh one if None)
            allowed_origins: Origin allow-list (config.allowed_origins() if None)
            path: Endpoint path (config.WS_PATH if None)
            handshake_timeout: Seconds to wait for the auth frame
            on_user_connect: Callback after a user is admitted
            on_user_disconnect: Callback after a user's connection closed
        """
        self._authenticator = authenticator or JWTAuthenticator()
        self._auth_middleware = AuthenticationMiddleware(self._authenticator)
        self._store = store if store is not None else SQLiteMessageStore(config.SQLITE_DB_FILE)
        self._registry = registry or PresenceRegistry()
        self._event_router = event_router or create_default_router()
        self._rooms = rooms or RoomRouter()

        self._allowed_origins = allowed_origins if allowed_origins is not None else config.allowed_origins()
        self._path = path or config.WS_PATH
        self._handshake_timeout = handshake_timeout if handshake_timeout is not None else config.HANDSHAKE_TIMEOUT

        self._on_user_connect = on_user_connect
        self._on_user_disconnect = on_user_disconnect

        self._server: Optional[Server] = None
        self._running = False

        logger.info("GatewayServer initialized (path=%s, origins=%s)", self._path, self._allowed_origins)

    @property
    def authenticator(self) -> JWTAuthenticator:
        return self._authenticator

    @property
    def store(self) -> MessageStore:
        return self._store

    @property
    def registry(self) -> PresenceRegistry:
        return self._registry

    @property
    def rooms(self) -> RoomRouter:
        return self._rooms

    @property
    def event_router(self) -> EventRouter:
        return self._event_router

    @property
    def path(self) -> str:
        return self._path

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def port(self) -> Optional[int]:
        """Bound port, useful when started on port 0."""
        if self._server is None:
            return None
        for sock in self._server.sockets:
            return sock.getsockname()[1]
        return None

    # ------------------------------------------------------------------
    # Collaborator-facing API
    # ------------------------------------------------------------------

    async def push_to_user(self, user_id: int, event: EventName, payload: Any = None) -> int:
        """
        Emit an event to a user's room.

        Safe no-op when the user has no admitted connection: nothing is
        queued and no error is raised.

        Returns:
            Number of connections the event reached
        """
        return await self._rooms.emit_to_room(room_for(user_id), event, payload)

    def is_online(self, user_id: int) -> bool:
        return self._registry.is_online(user_id)

    def online_user_ids(self) -> List[int]:
        return self._registry.list_user_ids()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @asynccontextmanager
    async def run(self, host: str = None, port: int = None):
        """
        Run the gateway as an async context manager.

        Yields:
            The gateway instance
        """
        await self.start(host, port)
        try:
            yield self
        finally:
            await self.stop()

    async def start(self, host: str = None, port: int = None) -> None:
        """
        Start listening.

        Args:
            host: Host to bind to (config.DEFAULT_HOST if None)
            port: Port to listen on (config.DEFAULT_SERVER_PORT if None)
        """
        host = host or config.DEFAULT_HOST
        port = config.DEFAULT_SERVER_PORT if port is None else port

        self._server = await serve(
            self._handle_connection,
            host,
            port,
            origins=self._allowed_origins,
            process_request=self._process_request,
        )
        self._running = True

        logger.info("Gateway listening on ws://%s:%s%s", host, self.port, self._path)

    async def stop(self) -> None:
        """Close every connection and stop listening."""
        self._running = False

        for connection in self._rooms.connections():
            await connection.close(GOING_AWAY, "Server shutting down")

        if self._server:
            self._server.close()
            await self._server.wait_closed()
            self._server = None

        logger.info("Gateway stopped")

    # ------------------------------------------------------------------
    # Connection handling
    # ------------------------------------------------------------------

    def _process_request(self, connection: ServerConnection, request: Request) -> Optional[Response]:
        """Refuse upgrades on any path other than the gateway endpoint."""
        if request.path.split("?", 1)[0] != self._path:
            return connection.respond(HTTPStatus.NOT_FOUND, "Not Found\n")
        return None

    async def _handle_connection(self, websocket: ServerConnection) -> None:
        connection = WebSocketConnection(websocket)

        identity = await self._admit(connection)
        if identity is None:
            return

        context = ConnectionContext(identity, connection, self._rooms, self._store)
        try:
            await self._register_connection(context)
            await self._message_loop(context)
        except websockets.exceptions.ConnectionClosed:
            logger.debug("Connection closed for user %s", identity.user_id)
        except Exception as e:
            logger.exception("Error handling connection for user %s: %s", identity.user_id, e)
        finally:
            await self._handle_disconnect(context)

    async def _admit(self, connection: WebSocketConnection) -> Optional[Identity]:
        """
        Run the handshake: wait for the auth frame, verify it.

        Returns:
            The identity on success; None after refusing the connection
        """
        try:
            handshake = await asyncio.wait_for(
                connection.raw_websocket.recv(), timeout=self._handshake_timeout
            )
        except asyncio.TimeoutError:
            logger.warning("Handshake timed out for connection %s", connection.conn_id)
            await self._reject(connection)
            return None
        except websockets.exceptions.ConnectionClosed:
            connection.mark_closed()
            return None

        result = await self._auth_middleware.authenticate_connection(handshake)
        if not result.success:
            logger.info("Refused connection %s (%s)", connection.conn_id, result.error_code)
            await self._reject(connection)
            return None

        connection.admit(result.identity)
        await self._rooms.emit_to_connection(
            connection, EventType.CONNECTED, {"userId": result.identity.user_id}
        )
        return result.identity

    async def _reject(self, connection: WebSocketConnection) -> None:
        """Send the generic auth error and close with policy violation."""
        await connection.send(Event.of(EventType.CONNECT_ERROR, {"message": AUTH_ERROR_MESSAGE}).serialize())
        await connection.close(code=POLICY_VIOLATION, reason=AUTH_ERROR_MESSAGE)

    async def _register_connection(self, context: ConnectionContext) -> None:
        """Admission side effects: presence, presence broadcast, room join."""
        identity = context.identity
        superseded = self._registry.register(identity.user_id, context.connection.conn_id)
        if superseded:
            logger.debug("User %s connection %s superseded by %s",
                         identity.user_id, superseded, context.connection.conn_id)

        self._rooms.add(context.connection)
        await self._broadcast_presence()
        self._rooms.join(room_for(identity.user_id), context.connection)

        if self._on_user_connect:
            try:
                self._on_user_connect(identity)
            except Exception as e:
                logger.exception("Error in user connect callback: %s", e)

        logger.info("User connected: %s (%s)", identity.user_id, identity.email)

    async def _message_loop(self, context: ConnectionContext) -> None:
        """Dispatch inbound frames in arrival order."""
        async for raw_message in context.connection.raw_websocket:
            try:
                event = Event.deserialize(raw_message)
            except ValueError as e:
                logger.debug("Discarding malformed frame from user %s: %s", context.user_id, e)
                continue
            await self._event_router.dispatch(context, event)

    async def _handle_disconnect(self, context: ConnectionContext) -> None:
        """
        Clean up after a connection closes.

        Idempotent: a second call, or a call for a user already absent from
        the registry, still just rebroadcasts the current snapshot.
        """
        context.connection.mark_closed()
        self._rooms.leave_all(context.connection)
        # Unconditional by user id; see the known race in presence.py
        self._registry.unregister(context.user_id)
        await self._broadcast_presence()

        if self._on_user_disconnect:
            try:
                self._on_user_disconnect(context.identity)
            except Exception as e:
                logger.exception("Error in user disconnect callback: %s", e)

        logger.info("User disconnected: %s", context.user_id)

    async def _broadcast_presence(self) -> int:
        return await self._rooms.broadcast(EventType.ONLINE_USERS, self._registry.list_user_ids())


# ----------------------------------------------------------------------
# Process-wide instance
# ----------------------------------------------------------------------

_gateway: Optional[GatewayServer] = None


def initialize(server: Optional[GatewayServer] = None, **kwargs: Any) -> GatewayServer:
    """
    Install the process-wide gateway. Must run exactly once, at startup.

    Args:
        server: Gateway to install; built from ``kwargs`` if None

    Raises:
        GatewayAlreadyInitializedError: On a second call
    """
    global _gateway
    if _gateway is not None:
        raise GatewayAlreadyInitializedError()
    _gateway = server or GatewayServer(**kwargs)
    return _gateway


def get_gateway() -> GatewayServer:
    """
    Return the process-wide gateway.

    Raises:
        GatewayNotInitializedError: If ``initialize`` has not run
    """
    if _gateway is None:
        raise GatewayNotInitializedError()
    return _gateway


async def push_to_user(user_id: int, event: EventName, payload: Any = None) -> int:
    """Emit an event to a user through the process-wide gateway."""
    return await get_gateway().push_to_user(user_id, event, payload)


def is_online(user_id: int) -> bool:
    """Presence check through the process-wide gateway."""
    return get_gateway().is_online(user_id)


__all__ = [
    'GatewayServer',
    'initialize',
    'get_gateway',
    'push_to_user',
    'is_online',
]
