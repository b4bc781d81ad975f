from datetime import datetime, timezone

from pydantic import BaseModel, Field


class FriendRequest(BaseModel):
    id: str
    from_id: str
    to_id: str
    status: str = "pending"  # "pending" | "accepted" | "rejected"
    created_at: str = Field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )
