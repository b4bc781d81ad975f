from typing import Any, Optional

from pydantic import BaseModel

from ..identity.models import UserRef


class Message(BaseModel):
    """One persisted chat message. Only ``read`` ever changes after creation."""

    id: str
    sender_id: str
    receiver_id: str
    content: str
    created_at: str  # ISO-8601 UTC, non-decreasing within a conversation
    read: bool = False
    is_ai_response: bool = False

    def wire(self) -> dict[str, Any]:
        """camelCase shape used on the realtime channel."""
        return {
            "id": self.id,
            "senderId": self.sender_id,
            "receiverId": self.receiver_id,
            "content": self.content,
            "createdAt": self.created_at,
            "read": self.read,
            "isAIResponse": self.is_ai_response,
        }


class MessageView(BaseModel):
    """History projection: a message with sender/receiver joined in."""

    id: str
    senderId: str
    receiverId: str
    sender: UserRef
    receiver: UserRef
    content: str
    createdAt: str
    read: bool
    isAIResponse: bool


class WsInbound(BaseModel):
    """Client -> server envelope."""

    type: str  # join | sendMessage | ping
    data: dict[str, Any] = {}


class SendMessagePayload(BaseModel):
    receiverId: str
    content: str
    senderId: Optional[str] = None  # ignored beyond a consistency check
    clientId: Optional[str] = None  # echoed back in messageSent
