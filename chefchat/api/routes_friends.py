import logging

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from ..errors import FriendRequestError, PersistenceError
from ..friends.models import FriendRequest
from ..i18n import t
from ..identity.models import User, UserRef
from ..services import ChatServices
from .deps import get_current_user, get_services

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/friends", tags=["friends"])


class AddFriendRequest(BaseModel):
    email: str = ""


def _ref(user: User) -> dict:
    return UserRef(id=user.id, name=user.display_name, email=user.email).model_dump()


def _friend_list(services: ChatServices, user: User) -> list[dict]:
    chat = services.config.chat
    persona = UserRef(id=chat.ai_persona_id, name=chat.ai_persona_name).model_dump()
    persona["isAI"] = True
    return [persona] + [_ref(f) for f in services.friends.list_friends(user.id)]


async def _notify(
    services: ChatServices, user_id: str, kind: str, request: FriendRequest, other: User
) -> None:
    # Only the affected user hears about it, and only if online
    key = "from" if kind in ("newRequest", "accepted", "rejected") else "to"
    await services.presence.push(
        user_id,
        "friendRequest",
        {"type": kind, "request": {"id": request.id, key: _ref(other)}},
    )


@router.get("")
async def list_friends(
    user: User = Depends(get_current_user),
    services: ChatServices = Depends(get_services),
):
    pending = services.friends.pending_requests(user.id)
    directory = services.identity.directory

    def _side(requests: list[FriendRequest], attr: str) -> list[dict]:
        out = []
        for r in requests:
            other = directory.get_user(getattr(r, attr))
            if other:
                out.append({"id": r.id, "user": _ref(other)})
        return out

    return {
        "friends": _friend_list(services, user),
        "pendingRequests": {
            "sent": _side(pending["sent"], "to_id"),
            "received": _side(pending["received"], "from_id"),
        },
    }


@router.post("")
async def add_friend(
    req: AddFriendRequest,
    user: User = Depends(get_current_user),
    services: ChatServices = Depends(get_services),
):
    try:
        request, friend = services.friends.send_request(user, req.email)
    except FriendRequestError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except PersistenceError as e:
        raise HTTPException(status_code=503, detail=e.message)

    await _notify(services, friend.id, "newRequest", request, user)
    await _notify(services, user.id, "sent", request, friend)
    return {
        "message": t("friend_request_sent", services.config.language),
        "requestId": request.id,
    }


@router.post("/accept/{request_id}")
async def accept_request(
    request_id: str,
    user: User = Depends(get_current_user),
    services: ChatServices = Depends(get_services),
):
    try:
        request = services.friends.accept(user, request_id)
    except FriendRequestError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except PersistenceError as e:
        raise HTTPException(status_code=503, detail=e.message)

    await _notify(services, request.from_id, "accepted", request, user)
    return {
        "message": t("friend_request_accepted", services.config.language),
        "friends": _friend_list(services, user),
    }


@router.post("/reject/{request_id}")
async def reject_request(
    request_id: str,
    user: User = Depends(get_current_user),
    services: ChatServices = Depends(get_services),
):
    try:
        request = services.friends.reject(user, request_id)
    except FriendRequestError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except PersistenceError as e:
        raise HTTPException(status_code=503, detail=e.message)

    await _notify(services, request.from_id, "rejected", request, user)
    return {"message": t("friend_request_rejected", services.config.language)}


@router.delete("/{friend_id}")
async def remove_friend(
    friend_id: str,
    user: User = Depends(get_current_user),
    services: ChatServices = Depends(get_services),
):
    try:
        services.friends.remove_friend(user.id, friend_id)
    except FriendRequestError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    except PersistenceError as e:
        raise HTTPException(status_code=503, detail=e.message)
    return {
        "message": t("friend_removed", services.config.language),
        "friends": _friend_list(services, user),
    }
