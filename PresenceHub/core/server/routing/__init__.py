"""
Room addressing and delivery.

Every user owns one logical room, ``user_<id>``. Outbound events are
addressed to rooms, not to connection handles, so zero, one or several live
connections for a user are handled the same way: emitting to an empty room
is a no-op and the durable store stays the source of truth.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional, Set

from PresenceHub.config import config
from PresenceHub.core.message.protocol import Event, EventName
from PresenceHub.core.server.interfaces import TransportConnection

logger = logging.getLogger(__name__)

ROOM_PREFIX = "user_"


def room_for(user_id: int) -> str:
    """
    Room key of a user.

    Pure and collision-free: distinct integer ids give distinct keys.

    Raises:
        TypeError: If ``user_id`` is not an integer
    """
    if isinstance(user_id, bool) or not isinstance(user_id, int):
        raise TypeError(f"user id must be an int, got {type(user_id).__name__}")
    return f"{ROOM_PREFIX}{user_id}"


class RoomRouter:
    """
    Tracks admitted connections and their room membership.

    A connection is added once at admission, joined to its own room, and
    removed from everything when it closes.

    Fan-out sends run concurrently. A connection that has not accepted a
    frame within ``send_timeout`` is left to finish in the background, so
    one slow reader never holds up delivery to the others.
    """

    def __init__(self, send_timeout: Optional[float] = None):
        self._send_timeout = config.SEND_TIMEOUT if send_timeout is None else send_timeout
        # sends still running after their fan-out returned
        self._stragglers: Set[asyncio.Task] = set()
        self._connections: Dict[str, TransportConnection] = {}
        # room -> conn_id -> connection
        self._rooms: Dict[str, Dict[str, TransportConnection]] = {}

    def add(self, connection: TransportConnection) -> None:
        """Start routing broadcasts to the connection."""
        self._connections[connection.conn_id] = connection

    def join(self, room: str, connection: TransportConnection) -> None:
        """Add the connection to a room."""
        self._rooms.setdefault(room, {})[connection.conn_id] = connection
        logger.debug("Connection %s joined %s", connection.conn_id, room)

    def leave_all(self, connection: TransportConnection) -> List[str]:
        """
        Forget the connection entirely.

        Returns:
            Rooms the connection was removed from
        """
        self._connections.pop(connection.conn_id, None)
        left = []
        for room in list(self._rooms):
            members = self._rooms[room]
            if members.pop(connection.conn_id, None) is not None:
                left.append(room)
            if not members:
                del self._rooms[room]
        return left

    def members(self, room: str) -> List[TransportConnection]:
        return list(self._rooms.get(room, {}).values())

    def connections(self) -> List[TransportConnection]:
        return list(self._connections.values())

    async def emit_to_room(self, room: str, event: EventName, data: Any = None) -> int:
        """
        Emit an event to every member of a room.

        Returns:
            Number of connections the frame was delivered to
        """
        return await self._deliver(self.members(room), Event.of(event, data))

    async def emit_to_connection(
        self,
        connection: TransportConnection,
        event: EventName,
        data: Any = None
    ) -> bool:
        """Emit an event to a single connection."""
        return await self._deliver([connection], Event.of(event, data)) == 1

    async def broadcast(
        self,
        event: EventName,
        data: Any = None,
        exclude: Optional[List[str]] = None
    ) -> int:
        """
        Emit an event to every admitted connection.

        Args:
            event: Event to emit
            data: Payload
            exclude: Connection ids to skip

        Returns:
            Number of connections the frame was delivered to
        """
        excluded = set(exclude or [])
        targets = [c for c in self.connections() if c.conn_id not in excluded]
        return await self._deliver(targets, Event.of(event, data))

    async def _deliver(self, targets: List[TransportConnection], event: Event) -> int:
        targets = [c for c in targets if c.is_open()]
        if not targets:
            return 0

        frame = event.serialize()
        tasks = {asyncio.ensure_future(c.send(frame)): c for c in targets}
        done, pending = await asyncio.wait(tasks, timeout=self._send_timeout)

        delivered = 0
        for task in done:
            if task.exception() is None and task.result():
                delivered += 1
            else:
                logger.debug("Dropped %s for connection %s", event.name, tasks[task].conn_id)

        for task in pending:
            logger.warning("Connection %s is slow to accept %s", tasks[task].conn_id, event.name)
            self._stragglers.add(task)
            task.add_done_callback(self._stragglers.discard)
        return delivered


__all__ = [
    'ROOM_PREFIX',
    'room_for',
    'RoomRouter',
]
