from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from ..errors import AIUnavailableError
from ..identity.models import User
from ..llm.registry import get_available_models
from ..services import ChatServices
from .deps import get_current_user, get_services

router = APIRouter(prefix="/api/ai", tags=["ai"])


class HistoryItem(BaseModel):
    role: str  # "user" | "assistant"
    content: str


class ExchangeRequest(BaseModel):
    prompt: str
    history: list[HistoryItem] = []


@router.get("/models")
async def list_models(user: User = Depends(get_current_user)):
    return {"models": get_available_models()}


@router.post("/exchange")
async def ai_exchange(
    req: ExchangeRequest,
    user: User = Depends(get_current_user),
    services: ChatServices = Depends(get_services),
):
    prompt = req.prompt.strip()
    if not prompt:
        raise HTTPException(status_code=400, detail="Prompt cannot be empty")
    try:
        text = await services.correspondent.reply(
            prompt, [h.model_dump() for h in req.history]
        )
    except AIUnavailableError as e:
        raise HTTPException(status_code=503, detail=e.message)
    return {"responseText": text}
