from datetime import datetime

import pytest

from chefchat.messaging import store as store_module
from chefchat.messaging.router import SendState, strip_mention

from conftest import AI_ID, FakeConnection, FakeProvider, make_correspondent


async def test_peer_message_pushed_and_acked(services, online):
    alice, bob = online("u1"), online("u2")

    outcome = await services.router.handle_send("u1", "u2", "hi", origin=alice)

    assert outcome.state == SendState.ACKED
    assert outcome.delivered is True
    [pushed] = bob.of("newMessage")
    [acked] = alice.of("messageSent")
    assert pushed["content"] == acked["content"] == "hi"
    assert pushed["id"] == acked["id"]
    assert pushed["senderId"] == "u1" and pushed["receiverId"] == "u2"


async def test_offline_receiver_still_in_history(services, online):
    alice = online("u1")

    outcome = await services.router.handle_send("u1", "u2", "hi", origin=alice)

    assert outcome.state == SendState.ACKED
    assert outcome.delivered is False
    assert len(alice.of("messageSent")) == 1
    history = await services.history.get_messages("u1", "u2")
    assert [m.id for m in history] == [outcome.messages[0].id]
    later = await services.history.get_messages("u2", "u1")
    assert [m.content for m in later] == ["hi"]


async def test_ack_carries_client_id(services, online):
    alice = online("u1")
    await services.router.handle_send("u1", "u2", "hi", origin=alice, client_id="tmp-1")
    [acked] = alice.of("messageSent")
    assert acked["clientId"] == "tmp-1"


async def test_sequence_order_matches_history(services, online):
    alice = online("u1")
    for i in range(10):
        await services.router.handle_send("u1", "u2", f"msg {i}", origin=alice)
    history = await services.history.get_messages("u2", "u1")
    assert [m.content for m in history] == [f"msg {i}" for i in range(10)]
    stamps = [datetime.fromisoformat(m.createdAt) for m in history]
    assert stamps == sorted(stamps)


@pytest.mark.parametrize("content", ["", "   ", "\n\t"])
async def test_empty_content_rejected(services, online, content):
    alice = online("u1")
    outcome = await services.router.handle_send("u1", "u2", content, origin=alice)
    assert outcome.state == SendState.REJECTED
    assert alice.of("error")[0]["code"] == "empty_message"
    assert len(services.store) == 0


async def test_non_friend_rejected_with_nothing_stored(services, online):
    alice, carol = online("u1"), online("u3")

    outcome = await services.router.handle_send("u1", "u3", "hello stranger", origin=alice)

    assert outcome.state == SendState.REJECTED
    assert alice.of("error")[0]["code"] == "not_authorized"
    assert carol.events == []
    assert len(services.store) == 0


async def test_message_to_self_rejected(services, online):
    alice = online("u1")
    outcome = await services.router.handle_send("u1", "u1", "me", origin=alice)
    assert outcome.state == SendState.REJECTED
    assert len(services.store) == 0


async def test_persistence_failure_reported_without_push(services, online, monkeypatch):
    alice, bob = online("u1"), online("u2")

    def boom(path, data):
        raise OSError("store unavailable")

    monkeypatch.setattr(store_module, "write_json_atomic", boom)
    outcome = await services.router.handle_send("u1", "u2", "hi", origin=alice)

    assert outcome.state == SendState.FAILED
    assert alice.of("error")[0]["code"] == "persistence_error"
    assert alice.of("messageSent") == []
    assert bob.events == []


async def test_ai_exchange_persists_exactly_two(services, online, provider):
    alice = online("u1")

    outcome = await services.router.handle_send(
        "u1", AI_ID, "@bro tell me a joke", origin=alice
    )

    assert outcome.state == SendState.ACKED
    question, answer = services.store.conversation("u1", AI_ID)
    assert len(services.store) == 2
    assert question.sender_id == "u1" and question.receiver_id == AI_ID
    assert question.content == "@bro tell me a joke"
    assert answer.sender_id == AI_ID and answer.receiver_id == "u1"
    assert answer.is_ai_response is True
    assert answer.content

    # Mention stripped before it reaches the model
    model, messages = provider.calls[0]
    assert messages[-1] == {"role": "user", "content": "tell me a joke"}

    assert alice.of("messageSent")[0]["id"] == question.id
    [reply] = alice.of("newMessage")
    assert reply["id"] == answer.id and reply["isAIResponse"] is True


async def test_ai_empty_prompt_rejected(services, online):
    alice = online("u1")
    outcome = await services.router.handle_send("u1", AI_ID, "@bro", origin=alice)
    assert outcome.state == SendState.REJECTED
    assert alice.of("error")[0]["code"] == "empty_ai_prompt"
    assert len(services.store) == 0


async def test_ai_reachable_without_friendship(services, online):
    carol = online("u3")
    outcome = await services.router.handle_send("u3", AI_ID, "@bro hi", origin=carol)
    assert outcome.ok
    assert len(services.store) == 2


async def test_ai_fallback_exhausted_still_two_records(services, online):
    services.router.correspondent = make_correspondent(
        FakeProvider({"model-a": RuntimeError("quota"), "model-b": RuntimeError("boom")})
    )
    alice = online("u1")

    outcome = await services.router.handle_send("u1", AI_ID, "@bro help", origin=alice)

    assert outcome.state == SendState.ACKED
    question, answer = services.store.conversation("u1", AI_ID)
    assert len(services.store) == 2
    assert answer.is_ai_response is True
    assert "trouble" in answer.content
    assert alice.of("error") == []
    assert alice.of("newMessage")[0]["id"] == answer.id


async def test_ai_not_configured_gets_setup_hint(services, online):
    services.router.correspondent = make_correspondent(None)
    alice = online("u1")

    outcome = await services.router.handle_send("u1", AI_ID, "@bro hello", origin=alice)

    assert outcome.ok
    answer = outcome.messages[1]
    assert "GEMINI_API_KEY" in answer.content


async def test_ai_model_not_found_message(services, online):
    services.router.correspondent = make_correspondent(
        FakeProvider({"model-a": RuntimeError("404 model not found")}), models=["model-a"]
    )
    alice = online("u1")
    outcome = await services.router.handle_send("u1", AI_ID, "@bro hello", origin=alice)
    assert "unavailable" in outcome.messages[1].content


async def test_ai_history_sent_as_context(services, online, provider):
    alice = online("u1")
    await services.router.handle_send("u1", AI_ID, "@bro first", origin=alice)
    await services.router.handle_send("u1", AI_ID, "@bro second", origin=alice)

    _, messages = provider.calls[1]
    assert messages[0]["role"] == "system"
    assert messages[1:] == [
        {"role": "user", "content": "first"},
        {"role": "assistant", "content": provider.replies["model-a"]},
        {"role": "user", "content": "second"},
    ]


async def test_ai_reply_failure_keeps_question(services, online, monkeypatch):
    alice = online("u1")
    original = store_module.write_json_atomic
    writes = []

    def second_write_fails(path, data):
        writes.append(len(data))
        if len(writes) == 2:
            raise OSError("store went away")
        original(path, data)

    monkeypatch.setattr(store_module, "write_json_atomic", second_write_fails)
    outcome = await services.router.handle_send("u1", AI_ID, "@bro hi", origin=alice)

    assert outcome.state == SendState.FAILED
    assert [m.content for m in services.store.conversation("u1", AI_ID)] == ["@bro hi"]
    assert alice.of("error")[0]["code"] == "persistence_error"


async def test_dead_receiver_socket_falls_back_to_history(services, online):
    alice = online("u1")
    services.presence.register("u2", FakeConnection(dead=True))

    outcome = await services.router.handle_send("u1", "u2", "you there?", origin=alice)

    assert outcome.ok and outcome.delivered is False
    assert services.presence.lookup("u2") is None
    assert [m.content for m in await services.history.get_messages("u2", "u1")] == ["you there?"]


def test_strip_mention():
    assert strip_mention("@bro tell me a joke", "@bro") == "tell me a joke"
    assert strip_mention("@BRO   ", "@bro") == ""
    assert strip_mention("  @Bro what's up", "@bro") == "what's up"
    assert strip_mention("tell @bro about @bro", "@bro") == "tell @bro about @bro"
    assert strip_mention("@bro who is @bro?", "@bro") == "who is @bro?"
    assert strip_mention("@brother hi", "@bro") == "@brother hi"
    assert strip_mention("no marker here", "@bro") == "no marker here"


async def test_broken_provider_setup_still_gets_reply(services, online):
    alice = online("u1")

    def resolve(model):
        raise ValueError("corrupt key")

    services.router.correspondent = make_correspondent(None)
    services.router.correspondent._resolve = resolve

    outcome = await services.router.handle_send("u1", AI_ID, "@bro hi", origin=alice)

    assert outcome.state == SendState.ACKED
    question, answer = outcome.messages
    assert answer.is_ai_response
    assert "trouble" in answer.content
    assert alice.of("newMessage")[0]["id"] == answer.id
