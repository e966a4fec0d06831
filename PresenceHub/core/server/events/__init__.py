"""
Event routing for admitted connections.

The EventRouter is a dispatch table from inbound event names to handlers.
Each handler receives an explicit ConnectionContext (identity, connection,
room router, store) instead of closing over connection state.

Handlers never touch the presence registry; only the gateway mutates it.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from PresenceHub.core.message.protocol import Event, EventName, EventType, InboundEventType, event_name
from PresenceHub.core.server.interfaces import Identity, MessageStore, TransportConnection
from PresenceHub.core.server.routing import RoomRouter, room_for

logger = logging.getLogger(__name__)

SEND_FAILED_MESSAGE = "Failed to send message"


class ConnectionContext:
    """
    Context for a single admitted connection.

    Passed into every handler invocation.
    """

    def __init__(
        self,
        identity: Identity,
        connection: TransportConnection,
        rooms: RoomRouter,
        store: MessageStore
    ):
        """
        Initialize connection context.

        Args:
            identity: Verified identity of the connection
            connection: Transport connection
            rooms: Room router used for delivery
            store: Durable message store
        """
        self.identity = identity
        self.connection = connection
        self.rooms = rooms
        self.store = store

    @property
    def user_id(self) -> int:
        return self.identity.user_id

    async def emit(self, event: EventName, data: Any = None) -> bool:
        """Emit an event to this connection only."""
        return await self.rooms.emit_to_connection(self.connection, event, data)

    async def emit_to_user(self, user_id: int, event: EventName, data: Any = None) -> int:
        """Emit an event to a user's room."""
        return await self.rooms.emit_to_room(room_for(user_id), event, data)

    @property
    def is_active(self) -> bool:
        return self.connection.is_open()


EventHandler = Callable[[ConnectionContext, Any], Awaitable[None]]


class EventRouter:
    """
    Dispatch table for inbound events.

    Errors raised by a handler stop at ``dispatch``: they are logged and the
    connection stays open.
    """

    def __init__(self):
        self._handlers: Dict[str, EventHandler] = {}

    def register(self, event: EventName, handler: EventHandler) -> None:
        """
        Register (or replace) the handler for an event.

        Args:
            event: Inbound event name
            handler: Coroutine function ``(context, data) -> None``
        """
        self._handlers[event_name(event)] = handler
        logger.debug("Registered handler for %s", event_name(event))

    def unregister(self, event: EventName) -> Optional[EventHandler]:
        return self._handlers.pop(event_name(event), None)

    def get_handler(self, event: EventName) -> Optional[EventHandler]:
        return self._handlers.get(event_name(event))

    @property
    def events(self) -> List[str]:
        return sorted(self._handlers)

    async def dispatch(self, context: ConnectionContext, event: Event) -> bool:
        """
        Run the handler registered for ``event``.

        Args:
            context: Context of the originating connection
            event: Decoded inbound event

        Returns:
            True if a handler ran to completion
        """
        handler = self._handlers.get(event.name)
        if handler is None:
            logger.debug("Ignoring unknown event %r from user %s", event.name, context.user_id)
            return False

        try:
            await handler(context, event.data)
            return True
        except Exception:
            logger.exception("Handler for %s failed for user %s", event.name, context.user_id)
            return False


def _field(data: Any, name: str) -> Any:
    """Read a payload field, tolerating non-object payloads."""
    if isinstance(data, dict):
        return data.get(name)
    return None


def _target_id(value: Any) -> Optional[int]:
    """User id from a typing or mark_read payload; numeric strings are accepted."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().isdecimal():
        return int(value.strip())
    return None


def _parse_send_message(data: Any) -> Tuple[int, str]:
    recipient_id = _field(data, "recipientId")
    content = _field(data, "content")
    if isinstance(recipient_id, bool) or not isinstance(recipient_id, int):
        raise ValueError("recipientId must be an integer")
    if not isinstance(content, str) or not content.strip():
        raise ValueError("content must be a non-empty string")
    return recipient_id, content.strip()


async def handle_send_message(context: ConnectionContext, data: Any) -> None:
    """
    Persist a direct message and deliver it live.

    The recipient's room gets ``new_message`` carrying the stored row, the
    sender gets ``message_sent``. Any failure becomes ``message_error`` to
    the sender only.
    """
    try:
        recipient_id, content = _parse_send_message(data)

        recipient = await context.store.find_user_by_id(recipient_id)
        if recipient is None:
            raise LookupError(f"recipient {recipient_id} not found")

        message = await context.store.insert_message(context.user_id, recipient_id, content)

        await context.emit_to_user(recipient_id, EventType.NEW_MESSAGE, message)
        await context.emit(EventType.MESSAGE_SENT, {
            "success": True,
            "recipientId": recipient_id,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        })
    except Exception as e:
        logger.warning("Send message error from user %s: %s", context.user_id, e)
        await context.emit(EventType.MESSAGE_ERROR, {"error": SEND_FAILED_MESSAGE})


async def handle_typing(context: ConnectionContext, data: Any) -> None:
    recipient_id = _target_id(_field(data, "recipientId"))
    if recipient_id is None:
        logger.debug("typing from user %s without a usable recipientId", context.user_id)
        return

    await context.rooms.emit_to_room(room_for(recipient_id), EventType.USER_TYPING, {
        "userId": context.user_id,
        "isTyping": _field(data, "isTyping"),
    })


async def handle_mark_read(context: ConnectionContext, data: Any) -> None:
    """Persist the read state, then send the receipt to the sender's room."""
    sender_id = _target_id(_field(data, "senderId"))
    if sender_id is None:
        logger.debug("mark_read from user %s without a usable senderId", context.user_id)
        return

    try:
        await context.store.mark_read(context.user_id, sender_id)
    except Exception:
        logger.exception("Failed to persist read state %s -> %s", sender_id, context.user_id)

    await context.rooms.emit_to_room(room_for(sender_id), EventType.MESSAGES_READ, {"userId": context.user_id})


def create_default_router() -> EventRouter:
    """Router with the send_message, typing and mark_read handlers."""
    router = EventRouter()
    router.register(InboundEventType.SEND_MESSAGE, handle_send_message)
    router.register(InboundEventType.TYPING, handle_typing)
    router.register(InboundEventType.MARK_READ, handle_mark_read)
    return router


__all__ = [
    'ConnectionContext',
    'EventHandler',
    'EventRouter',
    'SEND_FAILED_MESSAGE',
    'create_default_router',
    'handle_send_message',
    'handle_typing',
    'handle_mark_read',
]
