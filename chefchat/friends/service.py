"""Friend links and the request/accept protocol that creates them.

Friendship is stored as a symmetric adjacency map in ``friends.json``
alongside every friend request ever made.
"""

import logging
import re
import uuid
from pathlib import Path
from typing import Optional

from ..errors import FriendRequestError, PersistenceError
from ..i18n import t
from ..identity.models import User
from ..identity.provider import UserDirectory
from ..jsonfile import load_json, write_json_atomic
from .models import FriendRequest

logger = logging.getLogger(__name__)

_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


class FriendService:
    def __init__(self, path: Path, users: UserDirectory, lang: str = "en") -> None:
        self._path = path
        self._users = users
        self._lang = lang
        raw = load_json(path, {"links": {}, "requests": []})
        self._links: dict[str, set[str]] = {
            uid: set(peers) for uid, peers in raw.get("links", {}).items()
        }
        self._requests: list[FriendRequest] = [
            FriendRequest(**r) for r in raw.get("requests", [])
        ]

    def _commit(
        self, links: dict[str, set[str]], requests: list[FriendRequest]
    ) -> None:
        """Write the new state, then adopt it. A failed write changes nothing."""
        try:
            write_json_atomic(
                self._path,
                {
                    "links": {uid: sorted(peers) for uid, peers in links.items()},
                    "requests": [r.model_dump() for r in requests],
                },
            )
        except OSError as e:
            logger.error("Failed to save friends: %s", e)
            raise PersistenceError(t("friends_save_failed", self._lang)) from e
        self._links = links
        self._requests = requests

    def _copy_links(self) -> dict[str, set[str]]:
        return {uid: set(peers) for uid, peers in self._links.items()}

    # ---- Queries ----

    def are_friends(self, a: str, b: str) -> bool:
        return b in self._links.get(a, set())

    def list_friends(self, user_id: str) -> list[User]:
        friends = []
        for peer_id in sorted(self._links.get(user_id, set())):
            user = self._users.get_user(peer_id)
            if user:
                friends.append(user)
        return friends

    def get_request(self, request_id: str) -> Optional[FriendRequest]:
        for r in self._requests:
            if r.id == request_id:
                return r
        return None

    def pending_requests(self, user_id: str) -> dict[str, list[FriendRequest]]:
        return {
            "sent": [
                r for r in self._requests
                if r.from_id == user_id and r.status == "pending"
            ],
            "received": [
                r for r in self._requests
                if r.to_id == user_id and r.status == "pending"
            ],
        }

    # ---- Commands ----

    def send_request(self, user: User, email: str) -> tuple[FriendRequest, User]:
        """Create a pending request from *user* to the account owning *email*."""
        lang = self._lang
        friend_email = (email or "").strip().lower()
        if not friend_email:
            raise FriendRequestError(t("friend_email_required", lang))
        if friend_email == user.email:
            raise FriendRequestError(t("friend_self", lang))
        if not _EMAIL_RE.match(friend_email):
            raise FriendRequestError(t("friend_invalid_email", lang))

        friend = self._users.find_by_email(friend_email)
        if not friend:
            raise FriendRequestError(t("friend_not_found", lang), status_code=404)
        if friend.id == user.id:
            raise FriendRequestError(t("friend_self", lang))
        if self.are_friends(user.id, friend.id):
            raise FriendRequestError(t("friend_already", lang))

        for r in self._requests:
            if r.status != "pending":
                continue
            if r.from_id == user.id and r.to_id == friend.id:
                raise FriendRequestError(t("friend_request_pending_sent", lang))
            if r.from_id == friend.id and r.to_id == user.id:
                raise FriendRequestError(t("friend_request_pending_received", lang))

        request = FriendRequest(
            id=uuid.uuid4().hex[:12], from_id=user.id, to_id=friend.id
        )
        self._commit(self._copy_links(), self._requests + [request])
        logger.info("Friend request %s: %s -> %s", request.id, user.id, friend.id)
        return request, friend

    def _respond(self, user: User, request_id: str, status: str) -> FriendRequest:
        lang = self._lang
        request = self.get_request(request_id)
        if not request:
            raise FriendRequestError(t("friend_request_not_found", lang), status_code=404)
        if request.to_id != user.id:
            raise FriendRequestError(t("friend_request_not_yours", lang), status_code=403)
        if request.status != "pending":
            raise FriendRequestError(t("friend_request_processed", lang))

        updated = request.model_copy(update={"status": status})
        links = self._copy_links()
        if status == "accepted":
            links.setdefault(request.from_id, set()).add(request.to_id)
            links.setdefault(request.to_id, set()).add(request.from_id)
        self._commit(
            links, [updated if r.id == request_id else r for r in self._requests]
        )
        logger.info("Friend request %s %s", request_id, status)
        return updated

    def accept(self, user: User, request_id: str) -> FriendRequest:
        return self._respond(user, request_id, "accepted")

    def reject(self, user: User, request_id: str) -> FriendRequest:
        return self._respond(user, request_id, "rejected")

    def remove_friend(self, user_id: str, friend_id: str) -> None:
        if not self.are_friends(user_id, friend_id):
            raise FriendRequestError(t("friend_not_in_list", self._lang), status_code=404)
        links = self._copy_links()
        links[user_id].discard(friend_id)
        links.get(friend_id, set()).discard(user_id)
        self._commit(links, self._requests)
        logger.info("Friend link %s <-> %s removed", user_id, friend_id)


class FriendGate:
    """Decides who may message whom. The AI persona is linked to everyone."""

    def __init__(self, friends: FriendService, ai_persona_id: str) -> None:
        self._friends = friends
        self.ai_persona_id = ai_persona_id

    def is_ai_persona(self, user_id: str) -> bool:
        return user_id == self.ai_persona_id

    def may_message(self, sender_id: str, receiver_id: str) -> bool:
        if self.is_ai_persona(receiver_id):
            return True
        if sender_id == receiver_id:
            return False
        return self._friends.are_friends(sender_id, receiver_id)
