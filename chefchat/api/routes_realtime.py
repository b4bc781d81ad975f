"""Realtime chat channel over WebSocket.

Envelopes are ``{"type": <event>, "data": {...}}`` in both directions.  The
socket authenticates with ``?token=`` and must send ``join`` first.
"""

import asyncio
import json
import logging
from typing import Optional

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from pydantic import ValidationError as PydanticValidationError

from ..i18n import t
from ..identity.models import User
from ..messaging.models import SendMessagePayload, WsInbound
from ..messaging.presence import WebSocketConnection
from ..services import ChatServices

logger = logging.getLogger(__name__)

router = APIRouter(tags=["realtime"])

# AI exchanges in flight; they finish even if their socket goes away
_exchanges: set[asyncio.Task] = set()


def _parse(raw: str) -> Optional[WsInbound]:
    try:
        return WsInbound(**json.loads(raw))
    except (json.JSONDecodeError, TypeError, PydanticValidationError):
        return None


async def _error(conn: WebSocketConnection, message: str, code: str) -> None:
    await conn.send("error", {"message": message, "code": code})


async def cancel_exchanges() -> None:
    """Stop AI exchanges still running at shutdown."""
    pending = list(_exchanges)
    for task in pending:
        task.cancel()
    if pending:
        await asyncio.gather(*pending, return_exceptions=True)
        logger.info("Cancelled %d pending AI exchanges", len(pending))


async def _send_message(
    services: ChatServices,
    user: User,
    conn: WebSocketConnection,
    payload: SendMessagePayload,
) -> None:
    try:
        await services.router.handle_send(
            user.id,
            payload.receiverId,
            payload.content,
            origin=conn,
            client_id=payload.clientId,
        )
    except Exception:
        logger.exception("sendMessage from %s failed", user.id)
        try:
            await _error(conn, t("internal_error", services.config.language), "internal_error")
        except Exception as e:
            logger.warning("Could not report failure to %s: %s", user.id, e)


async def _handle_event(
    services: ChatServices,
    user: User,
    conn: WebSocketConnection,
    event: WsInbound,
) -> None:
    lang = services.config.language

    if event.type == "sendMessage":
        try:
            payload = SendMessagePayload(**event.data)
        except PydanticValidationError:
            await _error(conn, t("invalid_event", lang), "invalid_event")
            return
        if payload.senderId and payload.senderId != user.id:
            await _error(conn, t("sender_mismatch", lang), "sender_mismatch")
            return
        if services.gate.is_ai_persona(payload.receiverId):
            # Model calls are slow; keep the socket responsive meanwhile
            task = asyncio.create_task(_send_message(services, user, conn, payload))
            _exchanges.add(task)
            task.add_done_callback(_exchanges.discard)
        else:
            await _send_message(services, user, conn, payload)

    elif event.type == "join":
        # Re-join on the same socket, e.g. after a client-side reset
        services.presence.register(user.id, conn)
        await conn.send("joined", {"userId": user.id})

    elif event.type == "ping":
        await conn.send("pong", {})

    else:
        await _error(conn, t("invalid_event", lang), "invalid_event")


@router.websocket("/ws")
async def ws_endpoint(websocket: WebSocket, token: str = ""):
    await websocket.accept()

    services: ChatServices = websocket.app.state.services
    chat = services.config.chat
    lang = services.config.language

    user = services.identity.resolve_token(token)
    if user is None:
        await websocket.close(code=4003, reason="Token is not valid")
        return

    conn = WebSocketConnection(websocket)

    try:
        # Wait for join
        raw = await asyncio.wait_for(
            websocket.receive_text(), timeout=chat.join_timeout_seconds
        )
        event = _parse(raw)
        claimed = (event.data.get("userId") if event else None) or user.id
        if event is None or event.type != "join" or claimed != user.id:
            await _error(conn, t("invalid_join", lang), "invalid_join")
            await websocket.close(code=4001, reason="Expected join message")
            return

        services.presence.register(user.id, conn)
        await conn.send("joined", {"userId": user.id})

        # Peer sends are handled in arrival order; AI exchanges run alongside
        while True:
            raw = await websocket.receive_text()
            event = _parse(raw)
            if event is None:
                await _error(conn, t("invalid_event", lang), "invalid_event")
                continue
            try:
                await _handle_event(services, user, conn, event)
            except WebSocketDisconnect:
                raise
            except Exception:
                logger.exception("Event %s from %s failed", event.type, user.id)
                await _error(conn, t("internal_error", lang), "internal_error")

    except WebSocketDisconnect:
        pass
    except asyncio.TimeoutError:
        try:
            await websocket.close(code=4002, reason="Join timeout")
        except RuntimeError:
            pass
    except Exception:
        logger.exception("Realtime connection for %s crashed", user.id)
    finally:
        services.presence.unregister(conn)
