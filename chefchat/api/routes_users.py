from fastapi import APIRouter, Depends

from ..identity.models import User
from .deps import get_current_user

router = APIRouter(prefix="/api/users", tags=["users"])


@router.get("/me")
async def me(user: User = Depends(get_current_user)):
    return {"user": {"id": user.id, "name": user.display_name, "email": user.email}}
