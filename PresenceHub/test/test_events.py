"""
Unit tests for the event router and the default handlers.

Handlers run against FakeConnection objects joined to a real RoomRouter,
with the SQLite store in memory or an AsyncMock standing in for it.
"""

from unittest.mock import AsyncMock

import pytest

from PresenceHub.core.message.protocol import Event, InboundEventType
from PresenceHub.core.server.events import (
    SEND_FAILED_MESSAGE,
    ConnectionContext,
    EventRouter,
    create_default_router,
)
from PresenceHub.core.server.exceptions import StoreError
from PresenceHub.core.server.interfaces import Identity, Role
from PresenceHub.core.server.routing import RoomRouter, room_for
from PresenceHub.test.conftest import FakeConnection


def make_context(user_id, rooms, store, conn_id=None):
    conn = FakeConnection(conn_id or f"conn-{user_id}")
    rooms.add(conn)
    rooms.join(room_for(user_id), conn)
    identity = Identity(user_id=user_id, email=f"user{user_id}@example.com", role=Role.EMPLOYEE)
    return ConnectionContext(identity, conn, rooms, store)


class TestEventRouter:
    """Tests for EventRouter dispatch."""

    def setup_method(self):
        self.router = EventRouter()
        self.context = make_context(1, RoomRouter(), AsyncMock())

    @pytest.mark.asyncio
    async def test_dispatch_calls_handler(self):
        handler = AsyncMock()
        self.router.register("ping", handler)

        handled = await self.router.dispatch(self.context, Event("ping", {"n": 1}))

        assert handled is True
        handler.assert_awaited_once_with(self.context, {"n": 1})

    @pytest.mark.asyncio
    async def test_unknown_event_ignored(self):
        handled = await self.router.dispatch(self.context, Event("launch_missiles", {}))
        assert handled is False

    @pytest.mark.asyncio
    async def test_handler_exception_is_contained(self):
        self.router.register("boom", AsyncMock(side_effect=RuntimeError("boom")))

        handled = await self.router.dispatch(self.context, Event("boom"))

        assert handled is False
        assert self.context.is_active

    def test_register_accepts_enum_and_string(self):
        handler = AsyncMock()
        self.router.register(InboundEventType.TYPING, handler)

        assert self.router.get_handler("typing") is handler
        assert self.router.unregister("typing") is handler
        assert self.router.events == []

    def test_default_router_events(self):
        assert create_default_router().events == ["mark_read", "send_message", "typing"]


class TestSendMessage:
    """Tests for the send_message handler."""

    def setup_method(self):
        self.router = create_default_router()
        self.rooms = RoomRouter()

    @pytest.mark.asyncio
    async def test_delivers_to_recipient_and_confirms(self, store):
        sender = make_context(2, self.rooms, store)
        recipient = make_context(3, self.rooms, store)

        await self.router.dispatch(sender, Event("send_message", {"recipientId": 3, "content": " hello "}))

        [message] = recipient.connection.events("new_message")
        assert message["sender_id"] == 2
        assert message["recipient_id"] == 3
        assert message["content"] == "hello"
        assert message["is_read"] is False
        assert isinstance(message["id"], int)
        assert message["created_at"]

        [confirmation] = sender.connection.events("message_sent")
        assert confirmation["success"] is True
        assert confirmation["recipientId"] == 3
        assert "timestamp" in confirmation
        assert sender.connection.events("new_message") == []

        history = await store.fetch_history(2, 3)
        assert [m["id"] for m in history] == [message["id"]]

    @pytest.mark.asyncio
    async def test_offline_recipient_still_persisted(self, store):
        sender = make_context(2, self.rooms, store)

        await self.router.dispatch(sender, Event("send_message", {"recipientId": 4, "content": "later"}))

        assert len(sender.connection.events("message_sent")) == 1
        assert await store.unread_count(4) == 1

    @pytest.mark.asyncio
    async def test_every_tab_of_recipient_receives(self, store):
        sender = make_context(2, self.rooms, store)
        tab1 = make_context(3, self.rooms, store, conn_id="tab-1")
        tab2 = make_context(3, self.rooms, store, conn_id="tab-2")

        await self.router.dispatch(sender, Event("send_message", {"recipientId": 3, "content": "hi"}))

        assert len(tab1.connection.events("new_message")) == 1
        assert len(tab2.connection.events("new_message")) == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize("payload", [
        {"recipientId": 3, "content": ""},
        {"recipientId": 3, "content": "   "},
        {"recipientId": "3", "content": "hi"},
        {"content": "hi"},
        {"recipientId": 999, "content": "hi"},
        "not an object",
        None,
    ])
    async def test_failures_become_message_error(self, store, payload):
        sender = make_context(2, self.rooms, store)
        recipient = make_context(3, self.rooms, store)

        await self.router.dispatch(sender, Event("send_message", payload))

        assert sender.connection.events("message_error") == [{"error": SEND_FAILED_MESSAGE}]
        assert sender.connection.events("message_sent") == []
        assert recipient.connection.sent == []

    @pytest.mark.asyncio
    async def test_store_failure_becomes_message_error(self):
        failing = AsyncMock()
        failing.find_user_by_id.return_value = {"id": 3}
        failing.insert_message.side_effect = StoreError("disk full")
        sender = make_context(2, self.rooms, failing)
        recipient = make_context(3, self.rooms, failing)

        await self.router.dispatch(sender, Event("send_message", {"recipientId": 3, "content": "hi"}))

        assert sender.connection.events("message_error") == [{"error": SEND_FAILED_MESSAGE}]
        assert recipient.connection.sent == []


class TestTyping:
    """Tests for the typing handler."""

    def setup_method(self):
        self.router = create_default_router()
        self.rooms = RoomRouter()

    @pytest.mark.asyncio
    async def test_typing_forwarded_to_recipient_room(self):
        sender = make_context(2, self.rooms, AsyncMock())
        recipient = make_context(3, self.rooms, AsyncMock())

        await self.router.dispatch(sender, Event("typing", {"recipientId": 3, "isTyping": True}))

        assert recipient.connection.events("user_typing") == [{"userId": 2, "isTyping": True}]
        assert sender.connection.sent == []

    @pytest.mark.asyncio
    async def test_is_typing_passed_through_verbatim(self):
        sender = make_context(2, self.rooms, AsyncMock())
        recipient = make_context(3, self.rooms, AsyncMock())

        await self.router.dispatch(sender, Event("typing", {"recipientId": 3, "isTyping": "yes"}))
        await self.router.dispatch(sender, Event("typing", {"recipientId": 3}))

        assert recipient.connection.events("user_typing") == [
            {"userId": 2, "isTyping": "yes"},
            {"userId": 2, "isTyping": None},
        ]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("recipient_id", ["3", " 3 "])
    async def test_numeric_string_recipient_delivered(self, recipient_id):
        sender = make_context(2, self.rooms, AsyncMock())
        recipient = make_context(3, self.rooms, AsyncMock())

        await self.router.dispatch(sender, Event("typing", {"recipientId": recipient_id, "isTyping": True}))

        assert recipient.connection.events("user_typing") == [{"userId": 2, "isTyping": True}]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("payload", [
        {"isTyping": True},
        {"recipientId": "three"},
        {"recipientId": True},
        {"recipientId": 3.0},
        [],
        None,
    ])
    async def test_unusable_recipient_dropped(self, payload):
        sender = make_context(2, self.rooms, AsyncMock())
        recipient = make_context(3, self.rooms, AsyncMock())

        handled = await self.router.dispatch(sender, Event("typing", payload))

        assert handled is True
        assert recipient.connection.sent == []
        assert sender.connection.sent == []


class TestMarkRead:
    """Tests for the mark_read handler."""

    def setup_method(self):
        self.router = create_default_router()
        self.rooms = RoomRouter()

    @pytest.mark.asyncio
    async def test_persists_and_notifies_sender(self, store):
        await store.insert_message(2, 3, "one")
        await store.insert_message(2, 3, "two")
        reader = make_context(3, self.rooms, store)
        sender = make_context(2, self.rooms, store)

        await self.router.dispatch(reader, Event("mark_read", {"senderId": 2}))

        assert sender.connection.events("messages_read") == [{"userId": 3}]
        assert await store.unread_count(3) == 0

    @pytest.mark.asyncio
    async def test_store_failure_still_notifies(self):
        failing = AsyncMock()
        failing.mark_read.side_effect = StoreError("locked")
        reader = make_context(3, self.rooms, failing)
        sender = make_context(2, self.rooms, failing)

        await self.router.dispatch(reader, Event("mark_read", {"senderId": 2}))

        failing.mark_read.assert_awaited_once_with(3, 2)
        assert sender.connection.events("messages_read") == [{"userId": 3}]

    @pytest.mark.asyncio
    async def test_missing_sender_id_dropped(self):
        store = AsyncMock()
        reader = make_context(3, self.rooms, store)

        await self.router.dispatch(reader, Event("mark_read", {}))

        store.mark_read.assert_not_awaited()
        assert reader.connection.sent == []

    @pytest.mark.asyncio
    async def test_numeric_string_sender_id(self, store):
        await store.insert_message(2, 3, "one")
        reader = make_context(3, self.rooms, store)
        sender = make_context(2, self.rooms, store)

        await self.router.dispatch(reader, Event("mark_read", {"senderId": "2"}))

        assert sender.connection.events("messages_read") == [{"userId": 3}]
        assert await store.unread_count(3) == 0
