"""Chat message output schema for the history endpoint."""

from datetime import datetime
from typing import List

from pydantic import BaseModel

from roomchat.models.chat_message import ChatMessage, as_utc


class ChatMessageOut(BaseModel):
    """Public message representation returned by the API."""
    id: str
    roomId: str
    sender: str
    message: str
    timestamp: datetime
    readBy: List[str] = []

    @classmethod
    def from_model(cls, msg: ChatMessage) -> "ChatMessageOut":
        return cls(
            id=msg.id,
            roomId=msg.room_id,
            sender=msg.sender,
            message=msg.message,
            timestamp=as_utc(msg.timestamp),
            readBy=msg.read_by,
        )
