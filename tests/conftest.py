import os
import tempfile

# Keep config, key and data files out of the real home directory
os.environ.setdefault("CHEFCHAT_DATA_DIR", tempfile.mkdtemp(prefix="chefchat-test-"))

import asyncio
from typing import Any, Optional

import pytest
from cryptography.fernet import Fernet

from chefchat.config import AppConfig
from chefchat.identity.provider import IdentityProvider, UserDirectory
from chefchat.llm.base import LLMProvider
from chefchat.llm.correspondent import AICorrespondent
from chefchat.services import build_services

AI_ID = "ai-persona"


class FakeProvider(LLMProvider):
    """Scripted provider: per-model reply text or exception, optional delay."""

    name = "fake"

    def __init__(self, replies: dict[str, Any], delay: float = 0.0) -> None:
        self.replies = replies
        self.delay = delay
        self.calls: list[tuple[str, list[dict]]] = []

    async def complete(self, messages: list[dict], model: str, **kwargs) -> str:
        self.calls.append((model, messages))
        if self.delay:
            await asyncio.sleep(self.delay)
        reply = self.replies.get(model, "")
        if isinstance(reply, BaseException):
            raise reply
        return reply


class FakeConnection:
    """Stands in for a websocket; records every event sent to it."""

    _counter = 0

    def __init__(self, dead: bool = False) -> None:
        FakeConnection._counter += 1
        self.id = f"conn-{FakeConnection._counter}"
        self.dead = dead
        self.events: list[tuple[str, dict]] = []

    async def send(self, event: str, data: dict) -> None:
        if self.dead:
            raise RuntimeError("socket closed")
        self.events.append((event, data))

    def of(self, event: str) -> list[dict]:
        return [d for e, d in self.events if e == event]


def make_correspondent(
    provider: Optional[FakeProvider],
    models: Optional[list[str]] = None,
    timeout: float = 1.0,
) -> AICorrespondent:
    models = models or ["model-a", "model-b"]
    return AICorrespondent(
        models=models,
        system_prompt="You are @bro.",
        timeout_seconds=timeout,
        resolve=lambda m: provider if provider and m in provider.replies else None,
    )


@pytest.fixture
def config() -> AppConfig:
    return AppConfig()


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider({"model-a": "Why did the chef quit? He lost his thyme."})


@pytest.fixture
def identity(tmp_path, config) -> IdentityProvider:
    directory = UserDirectory(tmp_path / "users.json")
    directory.add_user("Alice", "alice@example.com", user_id="u1")
    directory.add_user("Bob", "bob@example.com", user_id="u2")
    directory.add_user("Carol", "carol@example.com", user_id="u3")
    return IdentityProvider(
        directory,
        token_ttl_seconds=config.auth.token_ttl_seconds,
        fernet=Fernet(Fernet.generate_key()),
    )


@pytest.fixture
def services(tmp_path, config, identity, provider):
    svc = build_services(
        config,
        data_dir=tmp_path,
        correspondent=make_correspondent(provider),
        identity=identity,
    )
    # u1 and u2 are friends, u3 is a stranger to both
    alice = identity.get_user("u1")
    bob = identity.get_user("u2")
    request, _ = svc.friends.send_request(alice, bob.email)
    svc.friends.accept(bob, request.id)
    return svc


@pytest.fixture
def online(services):
    """Register a FakeConnection for a user id and return it."""

    def _online(user_id: str) -> FakeConnection:
        conn = FakeConnection()
        services.presence.register(user_id, conn)
        return conn

    return _online
