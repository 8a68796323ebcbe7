"""Real-time event Pydantic schemas: one request model per inbound event."""

from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class InboundEvent(BaseModel):
    """Envelope of every frame a client sends: ``{"event": ..., "data": {...}}``."""
    event: str
    data: Dict[str, Any] = Field(default_factory=dict)


class EventRequest(BaseModel):
    """Base for event payloads; wire names are camelCase."""
    model_config = ConfigDict(populate_by_name=True)


class JoinRoom(EventRequest):
    room_id: str = Field(alias="roomId")


class SendMessage(EventRequest):
    room_id: str = Field(alias="roomId")
    sender: str
    message: str
    # Only history replays and tests supply this; live sends use the server clock.
    timestamp: Optional[datetime] = None


class Typing(EventRequest):
    room_id: str = Field(alias="roomId")
    is_typing: bool = Field(alias="isTyping")


class ReadMessage(EventRequest):
    message_id: str = Field(alias="messageId")
    room_id: str = Field(alias="roomId")
