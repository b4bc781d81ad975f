from datetime import datetime, timezone

from pydantic import BaseModel, Field


class User(BaseModel):
    id: str
    display_name: str = ""
    email: str = ""
    created_at: str = Field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )


class UserRef(BaseModel):
    """Joined view of a user as rendered next to a message or friend entry."""

    id: str
    name: str = ""
    email: str = ""
