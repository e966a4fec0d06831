"""
Event protocol module for PresenceHub.
Defines event names and the JSON frame exchanged over the gateway connection.

Every frame is a JSON object ``{"event": <name>, "data": <payload>}``. The
one exception is the handshake frame ``{"auth": {"token": ...}}`` which a
client sends first, before any event.
"""

import json
from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Any, Union


class EventType(Enum):
    """
    Outbound events emitted by the gateway.
    """
    NEW_MESSAGE = "new_message"  # To the recipient's room
    MESSAGE_SENT = "message_sent"  # Send confirmation, sender only
    MESSAGE_ERROR = "message_error"  # Send failure, sender only
    USER_TYPING = "user_typing"  # Typing indicator, target's room
    MESSAGES_READ = "messages_read"  # Read receipt, target's room
    ONLINE_USERS = "online_users"  # Presence snapshot, every connection
    CONNECTED = "connected"  # Handshake accepted
    CONNECT_ERROR = "connect_error"  # Handshake refused


class InboundEventType(Enum):
    """
    Events a client may emit once admitted.
    """
    SEND_MESSAGE = "send_message"
    TYPING = "typing"
    MARK_READ = "mark_read"


EventName = Union[EventType, InboundEventType, str]


def event_name(event: EventName) -> str:
    """Normalise an enum member or a plain string to the wire name."""
    if isinstance(event, Enum):
        return event.value
    return str(event)


def _json_default(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


@dataclass
class Event:
    """
    A single frame on the gateway connection.

    Attributes:
        name (str): Wire name of the event
        data (Any): JSON-compatible payload
    """
    name: str
    data: Any = None

    @classmethod
    def of(cls, event: EventName, data: Any = None) -> 'Event':
        return cls(event_name(event), data)

    def serialize(self) -> str:
        """
        Serialize the event to a JSON string.

        Returns:
            str: JSON representation of the frame
        """
        return json.dumps({"event": self.name, "data": self.data}, default=_json_default)

    @classmethod
    def deserialize(cls, raw: Union[str, bytes]) -> 'Event':
        """
        Create an Event from a JSON frame.

        Args:
            raw (str | bytes): Frame received from the transport

        Returns:
            Event: Deserialized event

        Raises:
            ValueError: If the frame is not a JSON object with a string "event"
        """
        obj = json.loads(raw)
        if not isinstance(obj, dict) or not isinstance(obj.get("event"), str):
            raise ValueError("Frame is not an event object")
        return cls(name=obj["event"], data=obj.get("data"))
