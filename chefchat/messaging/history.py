"""Pull side of the conversation log.

Reads go straight to the same store the router writes through, so anything
the router has pushed is already visible here.
"""

import logging

from ..config import ChatConfig
from ..errors import AuthorizationError
from ..friends.service import FriendGate
from ..i18n import t
from ..identity.models import UserRef
from ..identity.provider import IdentityProvider
from .models import Message, MessageView
from .store import MessageStore

logger = logging.getLogger(__name__)


class HistoryService:
    def __init__(
        self,
        store: MessageStore,
        identity: IdentityProvider,
        gate: FriendGate,
        chat: ChatConfig,
        lang: str = "en",
    ) -> None:
        self.store = store
        self.identity = identity
        self.gate = gate
        self.chat = chat
        self.lang = lang

    def _ref(self, user_id: str) -> UserRef:
        if self.gate.is_ai_persona(user_id):
            return UserRef(id=user_id, name=self.chat.ai_persona_name)
        user = self.identity.get_user(user_id)
        if user is None:
            return UserRef(id=user_id)
        return UserRef(id=user.id, name=user.display_name, email=user.email)

    def project(self, messages: list[Message]) -> list[MessageView]:
        refs: dict[str, UserRef] = {}
        views = []
        for m in messages:
            for uid in (m.sender_id, m.receiver_id):
                if uid not in refs:
                    refs[uid] = self._ref(uid)
            views.append(
                MessageView(
                    id=m.id,
                    senderId=m.sender_id,
                    receiverId=m.receiver_id,
                    sender=refs[m.sender_id],
                    receiver=refs[m.receiver_id],
                    content=m.content,
                    createdAt=m.created_at,
                    read=m.read,
                    isAIResponse=m.is_ai_response,
                )
            )
        return views

    def clamp_limit(self, limit: int) -> int:
        return max(1, min(limit, self.chat.max_history_limit))

    async def get_messages(
        self, user_id: str, peer_id: str, limit: int = 100
    ) -> list[MessageView]:
        """Oldest-first conversation between the two users, as stored before this call.

        The caller's unread messages from *peer_id* are marked read after the
        page is taken, so a repeat fetch is what shows them read.

        Anyone the caller can message, or has already talked to, is a valid
        peer.  Otherwise AuthorizationError.
        """
        if not (
            self.gate.may_message(user_id, peer_id)
            or self.store.has_history(user_id, peer_id)
        ):
            raise AuthorizationError(t("not_friends", self.lang))

        messages = self.store.conversation(user_id, peer_id, self.clamp_limit(limit))
        flipped = await self.store.mark_read(user_id, peer_id)
        if flipped:
            logger.info("Marked %d messages %s -> %s read", flipped, peer_id, user_id)
        return self.project(messages)

    def unread_counts(self, user_id: str) -> dict[str, int]:
        return self.store.unread_counts(user_id)
