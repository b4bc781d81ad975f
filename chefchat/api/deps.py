from typing import Optional

from fastapi import Depends, Header, HTTPException, Request

from ..identity.models import User
from ..services import ChatServices


def get_services(request: Request) -> ChatServices:
    return request.app.state.services


def _bearer(authorization: Optional[str]) -> str:
    if not authorization:
        return ""
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer":
        return ""
    return token.strip()


def get_current_user(
    authorization: Optional[str] = Header(default=None),
    services: ChatServices = Depends(get_services),
) -> User:
    token = _bearer(authorization)
    if not token:
        raise HTTPException(status_code=401, detail="No token, authorization denied")
    user = services.identity.resolve_token(token)
    if user is None:
        raise HTTPException(status_code=401, detail="Token is not valid")
    return user
