"""Process-local map of who is online and on which connection.

Presence is a routing shortcut, not a record: losing an entry (disconnect,
restart) only means delivery falls back to the history pull.
"""

import json
import logging
import threading
import uuid
from typing import Any, Optional, Protocol

from fastapi import WebSocket

logger = logging.getLogger(__name__)


class Connection(Protocol):
    id: str

    async def send(self, event: str, data: dict[str, Any]) -> None: ...


class WebSocketConnection:
    """A realtime connection speaking ``{"type", "data"}`` JSON envelopes."""

    def __init__(self, websocket: WebSocket) -> None:
        self.id = uuid.uuid4().hex[:12]
        self.websocket = websocket

    async def send(self, event: str, data: dict[str, Any]) -> None:
        await self.websocket.send_text(
            json.dumps({"type": event, "data": data}, ensure_ascii=False)
        )

    def __repr__(self) -> str:
        return f"<WebSocketConnection {self.id}>"


class PresenceRegistry:
    """user id -> current connection, at most one per user.

    A later ``register`` for the same user supersedes the earlier connection.
    """

    def __init__(self) -> None:
        self._by_user: dict[str, Connection] = {}
        self._by_conn: dict[str, str] = {}  # connection id -> user id
        self._lock = threading.Lock()

    def register(self, user_id: str, conn: Connection) -> Optional[Connection]:
        """Bind *conn* to *user_id*; return the connection it replaced, if any."""
        with self._lock:
            previous = self._by_user.get(user_id)
            if previous is not None and previous.id != conn.id:
                self._by_conn.pop(previous.id, None)
            old_user = self._by_conn.get(conn.id)
            if old_user is not None and old_user != user_id:
                self._by_user.pop(old_user, None)
            self._by_user[user_id] = conn
            self._by_conn[conn.id] = user_id
            online = len(self._by_user)
        logger.info("%s online (%d users)", user_id, online)
        if previous is not None and previous.id != conn.id:
            return previous
        return None

    def unregister(self, conn: Connection) -> Optional[str]:
        """Drop whatever user *conn* is bound to. Safe to call repeatedly."""
        with self._lock:
            user_id = self._by_conn.pop(conn.id, None)
            if user_id is None:
                return None
            current = self._by_user.get(user_id)
            if current is not None and current.id == conn.id:
                del self._by_user[user_id]
            online = len(self._by_user)
        logger.info("%s offline (%d users)", user_id, online)
        return user_id

    def lookup(self, user_id: str) -> Optional[Connection]:
        with self._lock:
            return self._by_user.get(user_id)

    def user_for(self, conn: Connection) -> Optional[str]:
        with self._lock:
            return self._by_conn.get(conn.id)

    @property
    def online_count(self) -> int:
        with self._lock:
            return len(self._by_user)

    async def push(self, user_id: str, event: str, data: dict[str, Any]) -> bool:
        """Send to *user_id* if online. False means offline or a dead socket."""
        conn = self.lookup(user_id)
        if conn is None:
            return False
        try:
            await conn.send(event, data)
        except Exception as e:
            logger.warning("Push %s to %s failed, dropping connection: %s", event, user_id, e)
            self.unregister(conn)
            return False
        return True
