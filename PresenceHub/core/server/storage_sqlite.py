"""SQLite persistence layer for PresenceHub.

Default implementation of the MessageStore protocol: users and direct
messages. Production deployments point the gateway at the application's
relational database instead; this adapter keeps a single process
self-contained.

Design:
  - stdlib sqlite3, one connection guarded by a lock
  - blocking work runs in a worker thread (asyncio.to_thread) so the event
    loop never waits on disk
  - ids and created_at are generated here; the gateway never invents them
"""

from __future__ import annotations

import asyncio
import sqlite3
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional

from PresenceHub.core.server.exceptions import StoreError


SCHEMA_SQL = """
PRAGMA foreign_keys=ON;

CREATE TABLE IF NOT EXISTS users (
  id INTEGER PRIMARY KEY,
  email TEXT UNIQUE NOT NULL,
  full_name TEXT NOT NULL DEFAULT '',
  role TEXT NOT NULL DEFAULT 'employee'
);

CREATE TABLE IF NOT EXISTS messages (
  id INTEGER PRIMARY KEY AUTOINCREMENT,
  sender_id INTEGER NOT NULL,
  recipient_id INTEGER NOT NULL,
  content TEXT NOT NULL,
  is_read INTEGER NOT NULL DEFAULT 0,
  created_at TEXT NOT NULL,
  FOREIGN KEY(sender_id) REFERENCES users(id) ON DELETE CASCADE,
  FOREIGN KEY(recipient_id) REFERENCES users(id) ON DELETE CASCADE
);

CREATE INDEX IF NOT EXISTS idx_messages_pair ON messages(sender_id, recipient_id, created_at);
CREATE INDEX IF NOT EXISTS idx_messages_unread ON messages(recipient_id, is_read);
"""

_MESSAGE_COLUMNS = "id, sender_id, recipient_id, content, is_read, created_at"


def _now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="microseconds")


def _message_row(row: sqlite3.Row) -> Dict[str, Any]:
    out = dict(row)
    out["is_read"] = bool(out["is_read"])
    return out


class SQLiteMessageStore:
    """A tiny SQLite-backed message store."""

    def __init__(self, db_path: str = ":memory:"):
        self.db_path = db_path if db_path == ":memory:" else str(Path(db_path))
        self._lock = threading.RLock()
        self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._init_db()

    def _init_db(self) -> None:
        with self._lock:
            self._conn.executescript(SCHEMA_SQL)
            self._conn.commit()

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    async def _run(self, fn, *args):
        try:
            return await asyncio.to_thread(fn, *args)
        except sqlite3.Error as e:
            raise StoreError(f"{fn.__name__} failed: {e}") from e

    # --------------------------- users ---------------------------
    def add_user(self, user_id: int, email: str, full_name: str = "", role: str = "employee") -> None:
        """Insert or update a user row. Users are owned by the host application."""
        with self._lock:
            self._conn.execute(
                """
                INSERT INTO users(id, email, full_name, role) VALUES(?,?,?,?)
                ON CONFLICT(id) DO UPDATE SET email=excluded.email,
                  full_name=excluded.full_name, role=excluded.role
                """,
                (int(user_id), email, full_name, role),
            )
            self._conn.commit()

    def _find_user_by_id(self, user_id: int) -> Optional[Dict[str, Any]]:
        with self._lock:
            cur = self._conn.execute(
                "SELECT id, email, full_name, role FROM users WHERE id=?", (int(user_id),)
            )
            row = cur.fetchone()
            return None if row is None else dict(row)

    async def find_user_by_id(self, user_id: int) -> Optional[Dict[str, Any]]:
        return await self._run(self._find_user_by_id, user_id)

    # ------------------------- messages --------------------------
    def _insert_message(self, sender_id: int, recipient_id: int, content: str) -> Dict[str, Any]:
        with self._lock:
            cur = self._conn.execute(
                "INSERT INTO messages(sender_id, recipient_id, content, is_read, created_at) VALUES(?,?,?,0,?)",
                (int(sender_id), int(recipient_id), content, _now()),
            )
            message_id = cur.lastrowid
            self._conn.commit()
            row = self._conn.execute(
                f"SELECT {_MESSAGE_COLUMNS} FROM messages WHERE id=?", (message_id,)
            ).fetchone()
            return _message_row(row)

    async def insert_message(self, sender_id: int, recipient_id: int, content: str) -> Dict[str, Any]:
        return await self._run(self._insert_message, sender_id, recipient_id, content)

    def _fetch_history(self, user_id: int, other_user_id: int, limit: int, offset: int) -> List[Dict[str, Any]]:
        with self._lock:
            cur = self._conn.execute(
                f"""
                SELECT {_MESSAGE_COLUMNS} FROM messages
                WHERE (sender_id=? AND recipient_id=?) OR (sender_id=? AND recipient_id=?)
                ORDER BY created_at DESC, id DESC
                LIMIT ? OFFSET ?
                """,
                (int(user_id), int(other_user_id), int(other_user_id), int(user_id),
                 int(limit), int(offset)),
            )
            rows = [_message_row(r) for r in cur.fetchall()]
        rows.reverse()
        return rows

    async def fetch_history(
        self,
        user_id: int,
        other_user_id: int,
        limit: int = 50,
        offset: int = 0
    ) -> List[Dict[str, Any]]:
        return await self._run(self._fetch_history, user_id, other_user_id, limit, offset)

    def _mark_read(self, reader_id: int, sender_id: int) -> int:
        with self._lock:
            cur = self._conn.execute(
                "UPDATE messages SET is_read=1 WHERE recipient_id=? AND sender_id=? AND is_read=0",
                (int(reader_id), int(sender_id)),
            )
            self._conn.commit()
            return cur.rowcount

    async def mark_read(self, reader_id: int, sender_id: int) -> int:
        return await self._run(self._mark_read, reader_id, sender_id)

    def _unread_count(self, user_id: int) -> int:
        with self._lock:
            cur = self._conn.execute(
                "SELECT COUNT(*) FROM messages WHERE recipient_id=? AND is_read=0", (int(user_id),)
            )
            return int(cur.fetchone()[0])

    async def unread_count(self, user_id: int) -> int:
        return await self._run(self._unread_count, user_id)

    def _list_conversations(self, user_id: int) -> List[Dict[str, Any]]:
        uid = int(user_id)
        with self._lock:
            cur = self._conn.execute(
                f"""
                SELECT {_MESSAGE_COLUMNS} FROM messages
                WHERE sender_id=? OR recipient_id=?
                ORDER BY created_at DESC, id DESC
                """,
                (uid, uid),
            )
            rows = cur.fetchall()
            users = {
                r["id"]: dict(r)
                for r in self._conn.execute("SELECT id, email, full_name, role FROM users")
            }

        conversations: Dict[int, Dict[str, Any]] = {}
        for row in rows:
            other = row["recipient_id"] if row["sender_id"] == uid else row["sender_id"]
            conv = conversations.get(other)
            if conv is None:
                # rows are newest first, so the first hit is the last message
                conv = dict(users.get(other, {"id": other}))
                conv.update(
                    last_message=row["content"],
                    last_message_time=row["created_at"],
                    sent_by_me=row["sender_id"] == uid,
                    unread_count=0,
                )
                conversations[other] = conv
            if row["recipient_id"] == uid and not row["is_read"]:
                conv["unread_count"] += 1
        return list(conversations.values())

    async def list_conversations(self, user_id: int) -> List[Dict[str, Any]]:
        return await self._run(self._list_conversations, user_id)
