"""Presence tracking for PresenceHub.

Maps each online user id to the id of the connection most recently
registered for it. State is in-memory and scoped to a single process.

Known race: the registry is keyed purely by user id. A second connection
from the same user overwrites the entry, and a disconnect removes the entry
unconditionally, so an older tab closing can hide a newer tab's presence
until that tab reconnects.
"""

from __future__ import annotations

import threading
from typing import Dict, List, Optional


class PresenceRegistry:
    """Process-wide userId -> connection id map.

    Mutated only by the gateway's admission and disconnect paths. Every
    other reader goes through ``is_online`` / ``list_user_ids``.
    """

    def __init__(self) -> None:
        self._entries: Dict[int, str] = {}
        self._lock = threading.Lock()

    def register(self, user_id: int, connection_id: str) -> Optional[str]:
        """Insert or overwrite the entry. Returns the superseded connection id."""
        with self._lock:
            previous = self._entries.get(user_id)
            self._entries[user_id] = connection_id
        return previous

    def unregister(self, user_id: int) -> bool:
        """Remove the entry for the user. Returns False if none existed."""
        with self._lock:
            return self._entries.pop(user_id, None) is not None

    def list_user_ids(self) -> List[int]:
        """Snapshot of the online user ids; order is not meaningful."""
        with self._lock:
            return list(self._entries)

    def is_online(self, user_id: int) -> bool:
        with self._lock:
            return user_id in self._entries

    def connection_id_for(self, user_id: int) -> Optional[str]:
        with self._lock:
            return self._entries.get(user_id)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, user_id: object) -> bool:
        with self._lock:
            return user_id in self._entries
