from fastapi import APIRouter, Depends, HTTPException, Query

from ..errors import AuthorizationError, PersistenceError
from ..identity.models import User
from ..services import ChatServices
from .deps import get_current_user, get_services

router = APIRouter(prefix="/api/conversations", tags=["conversations"])


@router.get("/unread")
async def unread_counts(
    user: User = Depends(get_current_user),
    services: ChatServices = Depends(get_services),
):
    return {"unread": services.history.unread_counts(user.id)}


@router.get("/{peer_id}/messages")
async def get_messages(
    peer_id: str,
    limit: int = Query(default=100, ge=1),
    user: User = Depends(get_current_user),
    services: ChatServices = Depends(get_services),
):
    try:
        messages = await services.history.get_messages(user.id, peer_id, limit)
    except AuthorizationError as e:
        raise HTTPException(status_code=403, detail=e.message)
    except PersistenceError:
        raise HTTPException(status_code=503, detail="Failed to fetch messages")
    return {"messages": [m.model_dump() for m in messages]}
