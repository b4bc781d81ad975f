"""Wiring of the long-lived collaborators, built once per process."""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .config import AppConfig, get_data_dir
from .friends.service import FriendGate, FriendService
from .identity.provider import IdentityProvider, UserDirectory
from .llm.correspondent import AICorrespondent
from .messaging.history import HistoryService
from .messaging.presence import PresenceRegistry
from .messaging.router import MessageRouter
from .messaging.store import MessageStore

logger = logging.getLogger(__name__)


@dataclass
class ChatServices:
    config: AppConfig
    identity: IdentityProvider
    friends: FriendService
    gate: FriendGate
    store: MessageStore
    presence: PresenceRegistry
    correspondent: AICorrespondent
    router: MessageRouter
    history: HistoryService


def build_services(
    config: AppConfig,
    data_dir: Optional[Path] = None,
    correspondent: Optional[AICorrespondent] = None,
    identity: Optional[IdentityProvider] = None,
) -> ChatServices:
    data_dir = data_dir or get_data_dir()
    data_dir.mkdir(parents=True, exist_ok=True)
    lang = config.language

    if identity is None:
        identity = IdentityProvider(
            UserDirectory(data_dir / "users.json"),
            token_ttl_seconds=config.auth.token_ttl_seconds,
        )
    friends = FriendService(data_dir / "friends.json", identity.directory, lang=lang)
    gate = FriendGate(friends, config.chat.ai_persona_id)
    store = MessageStore(data_dir / "messages.json")
    presence = PresenceRegistry()
    if correspondent is None:
        correspondent = AICorrespondent(
            models=config.llm.ai_models,
            system_prompt=config.chat.ai_system_prompt,
            timeout_seconds=config.llm.ai_timeout_seconds,
        )
    router = MessageRouter(store, presence, gate, correspondent, config.chat, lang=lang)
    history = HistoryService(store, identity, gate, config.chat, lang=lang)
    logger.info("Chat services ready (data dir %s)", data_dir)
    return ChatServices(
        config=config,
        identity=identity,
        friends=friends,
        gate=gate,
        store=store,
        presence=presence,
        correspondent=correspondent,
        router=router,
        history=history,
    )
