"""
Event dispatcher: routes one inbound WebSocket frame to its handler.

Frames are JSON objects of the form ``{"event": <name>, "data": {...}}``.
The payload is validated against the event's request model before the
handler runs. Every failure is answered with an ``error`` event to the
originating connection only; nothing raised here ends the receive loop.
"""

import json
import logging
from typing import Awaitable, Callable, Dict, Tuple, Type

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from roomchat.errors import ChatError, ValidationError
from roomchat.schemas.events import InboundEvent, JoinRoom, ReadMessage, SendMessage, Typing
from roomchat.services.broadcast import RoomBroadcastEngine
from roomchat.services.presence import TypingRelay
from roomchat.services.receipts import ReadReceiptTracker
from roomchat.services.registry import Connection, ConnectionRegistry

logger = logging.getLogger(__name__)

Handler = Callable[[Connection, BaseModel], Awaitable[None]]

# Error text sent back when an event's payload fails validation
INVALID_PAYLOAD_MESSAGES = {
    "join_room": "Failed to join room",
    "send_message": "Failed to send message",
    "typing": "Failed to update typing status",
    "read_message": "Failed to mark message as read",
}


class EventDispatcher:
    def __init__(
        self,
        registry: ConnectionRegistry,
        engine: RoomBroadcastEngine,
        typing_relay: TypingRelay,
        receipts: ReadReceiptTracker,
    ):
        self.registry = registry
        self.handlers: Dict[str, Tuple[Type[BaseModel], Handler]] = {
            "join_room": (JoinRoom, self._join_room),
            "send_message": (SendMessage, engine.handle_send),
            "typing": (Typing, typing_relay.handle_typing),
            "read_message": (ReadMessage, receipts.handle_read_message),
        }

    async def _join_room(self, connection: Connection, request: JoinRoom) -> None:
        self.registry.join(connection, request.room_id)

    def parse(self, raw: str) -> Tuple[Handler, BaseModel]:
        """Decode a frame into its handler and validated request."""
        try:
            envelope = InboundEvent.model_validate(json.loads(raw))
        except (json.JSONDecodeError, PydanticValidationError) as e:
            raise ValidationError("Malformed event") from e

        entry = self.handlers.get(envelope.event)
        if entry is None:
            raise ValidationError(f"Unknown event: {envelope.event}")

        model, handler = entry
        try:
            request = model.model_validate(envelope.data)
        except PydanticValidationError as e:
            raise ValidationError(INVALID_PAYLOAD_MESSAGES[envelope.event]) from e
        return handler, request

    async def dispatch(self, connection: Connection, raw: str) -> None:
        try:
            handler, request = self.parse(raw)
            await handler(connection, request)
        except ChatError as e:
            logger.info(f"Rejected event from {connection.id}: {e.message}")
            await self.report(connection, e.message)
        except Exception:
            logger.exception(f"Unhandled error while processing event from {connection.id}")
            await self.report(connection, "Internal server error")

    async def report(self, connection: Connection, message: str) -> None:
        try:
            await connection.send("error", {"message": message})
        except Exception as e:
            logger.warning(f"Could not report error to {connection.id}: {e}")
