"""Durable, append-only message log.

Messages live in one JSON file (``messages.json``) as a list in insertion
order.  The file is rewritten atomically on every mutation and the
in-memory copy is only updated once the write has landed, so anything a
reader can see is already on disk.
"""

import asyncio
import logging
import uuid
from datetime import datetime, timezone
from pathlib import Path

from ..errors import PersistenceError
from ..jsonfile import load_json, write_json_atomic
from .models import Message

logger = logging.getLogger(__name__)


def _pair_key(a: str, b: str) -> str:
    return "|".join(sorted((a, b)))


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _format_ts(ts: datetime) -> str:
    return ts.isoformat(timespec="microseconds")


class MessageStore:
    def __init__(self, path: Path) -> None:
        self._path = path
        self._lock = asyncio.Lock()
        self._messages: list[Message] = [
            Message(**m) for m in load_json(path, [])
        ]
        # pair key -> positions in self._messages, oldest first
        self._pairs: dict[str, list[int]] = {}
        for i, m in enumerate(self._messages):
            self._pairs.setdefault(_pair_key(m.sender_id, m.receiver_id), []).append(i)
        logger.info("Loaded %d messages from %s", len(self._messages), path.name)

    async def _write(self, messages: list[Message]) -> None:
        data = [m.model_dump() for m in messages]
        try:
            await asyncio.to_thread(write_json_atomic, self._path, data)
        except OSError as e:
            logger.error("Message store write failed: %s", e)
            raise PersistenceError(str(e)) from e

    def _next_timestamp(self, key: str) -> str:
        now = _now()
        positions = self._pairs.get(key)
        if positions:
            last = datetime.fromisoformat(self._messages[positions[-1]].created_at)
            if last > now:
                # Clock stepped backwards, keep the conversation monotonic
                now = last
        return _format_ts(now)

    async def append(
        self,
        sender_id: str,
        receiver_id: str,
        content: str,
        is_ai_response: bool = False,
    ) -> Message:
        """Persist one message and return it with its assigned id and timestamp.

        Raises PersistenceError if the write fails; nothing is recorded then.
        """
        async with self._lock:
            key = _pair_key(sender_id, receiver_id)
            message = Message(
                id=uuid.uuid4().hex,
                sender_id=sender_id,
                receiver_id=receiver_id,
                content=content,
                created_at=self._next_timestamp(key),
                is_ai_response=is_ai_response,
            )
            await self._write(self._messages + [message])
            self._messages.append(message)
            self._pairs.setdefault(key, []).append(len(self._messages) - 1)
            return message.model_copy()

    def conversation(self, a: str, b: str, limit: int = 100) -> list[Message]:
        """Messages between *a* and *b*, oldest first, at most the latest *limit*."""
        positions = self._pairs.get(_pair_key(a, b), [])
        if limit > 0:
            positions = positions[-limit:]
        else:
            positions = []
        return [self._messages[i].model_copy() for i in positions]

    def recent(self, a: str, b: str, n: int) -> list[Message]:
        return self.conversation(a, b, limit=n)

    async def mark_read(self, receiver_id: str, sender_id: str) -> int:
        """Flip read=True on unread messages sender -> receiver; return how many."""
        async with self._lock:
            positions = [
                i for i in self._pairs.get(_pair_key(receiver_id, sender_id), [])
                if self._messages[i].receiver_id == receiver_id
                and self._messages[i].sender_id == sender_id
                and not self._messages[i].read
            ]
            if not positions:
                return 0
            updated = list(self._messages)
            for i in positions:
                updated[i] = updated[i].model_copy(update={"read": True})
            await self._write(updated)
            self._messages = updated
            return len(positions)

    def unread_counts(self, user_id: str) -> dict[str, int]:
        counts: dict[str, int] = {}
        for m in self._messages:
            if m.receiver_id == user_id and not m.read:
                counts[m.sender_id] = counts.get(m.sender_id, 0) + 1
        return counts

    def has_history(self, a: str, b: str) -> bool:
        return bool(self._pairs.get(_pair_key(a, b)))

    def __len__(self) -> int:
        return len(self._messages)
