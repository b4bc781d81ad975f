"""Turns one inbound ``sendMessage`` event into stored messages plus pushes.

Per event the router walks RECEIVED -> VALIDATED -> PERSISTED -> ROUTED ->
ACKED, or stops at REJECTED (bad input, not allowed) or FAILED (the store
could not write).  A message is always persisted before anyone is told
about it; delivery to an offline receiver is simply skipped and left to
the history pull.
"""

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from ..config import ChatConfig
from ..errors import (
    AINotConfiguredError,
    AIUnavailableError,
    AuthorizationError,
    ChatError,
    PersistenceError,
    ValidationError,
)
from ..friends.service import FriendGate
from ..i18n import t
from ..llm.correspondent import AICorrespondent
from .models import Message
from .presence import Connection, PresenceRegistry
from .store import MessageStore

logger = logging.getLogger(__name__)


class SendState(str, Enum):
    RECEIVED = "received"
    VALIDATED = "validated"
    PERSISTED = "persisted"
    ROUTED = "routed"
    ACKED = "acked"
    REJECTED = "rejected"
    FAILED = "failed"


@dataclass
class SendOutcome:
    state: SendState
    messages: list[Message] = field(default_factory=list)
    error: Optional[ChatError] = None
    delivered: bool = False  # live push reached the receiver

    @property
    def ok(self) -> bool:
        return self.state == SendState.ACKED


def strip_mention(content: str, mention: str) -> str:
    """Remove a leading AI addressing token (case-insensitive) and trim."""
    if not mention:
        return content.strip()
    pattern = re.compile(r"^\s*" + re.escape(mention) + r"(?![\w])", re.IGNORECASE)
    return pattern.sub("", content, count=1).strip()


class MessageRouter:
    def __init__(
        self,
        store: MessageStore,
        presence: PresenceRegistry,
        gate: FriendGate,
        correspondent: AICorrespondent,
        chat: ChatConfig,
        lang: str = "en",
    ) -> None:
        self.store = store
        self.presence = presence
        self.gate = gate
        self.correspondent = correspondent
        self.chat = chat
        self.lang = lang

    # ---- helpers ----

    async def _to_origin(
        self,
        sender_id: str,
        origin: Optional[Connection],
        event: str,
        data: dict,
    ) -> None:
        if origin is None:
            await self.presence.push(sender_id, event, data)
            return
        try:
            await origin.send(event, data)
        except Exception as e:
            logger.warning("Could not reach sender %s: %s", sender_id, e)
            self.presence.unregister(origin)

    async def _reject(
        self,
        sender_id: str,
        origin: Optional[Connection],
        error: ChatError,
        state: SendState,
        messages: Optional[list[Message]] = None,
    ) -> SendOutcome:
        if state == SendState.FAILED:
            logger.error("Send from %s failed: %s", sender_id, error.message)
        else:
            logger.info("Send from %s rejected (%s): %s", sender_id, error.code, error.message)
        await self._to_origin(
            sender_id, origin, "error", {"message": error.message, "code": error.code}
        )
        return SendOutcome(state=state, messages=messages or [], error=error)

    def _ack_payload(self, message: Message, client_id: Optional[str]) -> dict:
        data = message.wire()
        if client_id:
            data["clientId"] = client_id
        return data

    def _validate(self, sender_id: str, receiver_id: str, content: str) -> str:
        lang = self.lang
        text = (content or "").strip()
        if not sender_id:
            raise ValidationError(t("not_joined", lang), code="unauthenticated")
        if not text:
            raise ValidationError(t("empty_message", lang), code="empty_message")
        if len(text) > self.chat.max_message_length:
            raise ValidationError(
                t("message_too_long", lang, limit=str(self.chat.max_message_length)),
                code="message_too_long",
            )
        if not receiver_id or not self.gate.may_message(sender_id, receiver_id):
            raise AuthorizationError(t("not_friends", lang))
        return text

    def _degraded_reply(self, error: AIUnavailableError) -> str:
        if isinstance(error, AINotConfiguredError):
            return t("ai_not_configured", self.lang, name=self.chat.ai_persona_name)
        detail = str(error.last_error or "").lower()
        if "404" in detail or "not found" in detail:
            return t("ai_model_unavailable", self.lang)
        return t("ai_trouble", self.lang)

    # ---- entry point ----

    async def handle_send(
        self,
        sender_id: str,
        receiver_id: str,
        content: str,
        origin: Optional[Connection] = None,
        client_id: Optional[str] = None,
    ) -> SendOutcome:
        """Run one send event to completion. Never raises for expected failures."""
        try:
            text = self._validate(sender_id, receiver_id, content)
        except ChatError as e:
            return await self._reject(sender_id, origin, e, SendState.REJECTED)

        if self.gate.is_ai_persona(receiver_id):
            return await self._handle_ai_exchange(sender_id, text, origin, client_id)
        return await self._handle_peer(sender_id, receiver_id, text, origin, client_id)

    async def _handle_peer(
        self,
        sender_id: str,
        receiver_id: str,
        text: str,
        origin: Optional[Connection],
        client_id: Optional[str],
    ) -> SendOutcome:
        try:
            message = await self.store.append(sender_id, receiver_id, text)
        except PersistenceError:
            return await self._reject(
                sender_id, origin, PersistenceError(t("send_failed", self.lang)), SendState.FAILED
            )

        delivered = await self.presence.push(receiver_id, "newMessage", message.wire())
        if not delivered:
            logger.debug("%s offline, message %s left for history", receiver_id, message.id)

        await self._to_origin(
            sender_id, origin, "messageSent", self._ack_payload(message, client_id)
        )
        return SendOutcome(state=SendState.ACKED, messages=[message], delivered=delivered)

    async def _handle_ai_exchange(
        self,
        sender_id: str,
        text: str,
        origin: Optional[Connection],
        client_id: Optional[str],
    ) -> SendOutcome:
        ai_id = self.gate.ai_persona_id
        prompt = strip_mention(text, self.chat.ai_mention)
        if not prompt:
            error = ValidationError(
                t("empty_ai_prompt", self.lang, mention=self.chat.ai_mention),
                code="empty_ai_prompt",
            )
            return await self._reject(sender_id, origin, error, SendState.REJECTED)

        # Context is what came before this question
        history = [
            {
                "role": "assistant" if m.is_ai_response else "user",
                "content": strip_mention(m.content, self.chat.ai_mention) or m.content,
            }
            for m in self.store.recent(sender_id, ai_id, self.chat.ai_context_messages)
        ]

        try:
            question = await self.store.append(sender_id, ai_id, text)
        except PersistenceError:
            return await self._reject(
                sender_id, origin, PersistenceError(t("send_failed", self.lang)), SendState.FAILED
            )

        # The user's half is durable, so the sender can see it right away
        await self._to_origin(
            sender_id, origin, "messageSent", self._ack_payload(question, client_id)
        )

        try:
            reply_text = await self.correspondent.reply(prompt, history)
        except AIUnavailableError as e:
            logger.warning("AI exchange for %s degraded: %s", sender_id, e)
            reply_text = self._degraded_reply(e)

        try:
            answer = await self.store.append(ai_id, sender_id, reply_text, is_ai_response=True)
        except PersistenceError:
            return await self._reject(
                sender_id,
                origin,
                PersistenceError(t("send_failed", self.lang)),
                SendState.FAILED,
                messages=[question],
            )

        delivered = await self.presence.push(sender_id, "newMessage", answer.wire())
        return SendOutcome(
            state=SendState.ACKED, messages=[question, answer], delivered=delivered
        )
