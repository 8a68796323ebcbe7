"""
Room broadcast engine: the only write path into chat history and the only
fan-out path for new messages.
"""

import logging
from typing import List

from roomchat.errors import StoreUnavailableError
from roomchat.models.chat_message import ChatMessage, as_utc
from roomchat.schemas.events import SendMessage
from roomchat.services.message_store import MessageStore
from roomchat.services.registry import Connection, ConnectionRegistry

logger = logging.getLogger(__name__)

SEND_FAILED = "Failed to send message"


class RoomBroadcastEngine:
    def __init__(self, registry: ConnectionRegistry, store: MessageStore):
        self.registry = registry
        self.store = store

    async def handle_send(self, connection: Connection, request: SendMessage) -> None:
        """Persist the message, then deliver it to every member of the room."""
        try:
            chat_message = await self.store.create(
                room_id=request.room_id,
                sender=request.sender,
                message=request.message,
                timestamp=request.timestamp,
            )
        except StoreUnavailableError:
            await connection.send("error", {"message": SEND_FAILED})
            return

        logger.info(f"Message saved: {chat_message.id} in room {chat_message.room_id}")

        # Members are read now, after the write; late joiners may or may not get it.
        await self.registry.broadcast(
            request.room_id,
            "receive_message",
            {
                "id": chat_message.id,
                "sender": chat_message.sender,
                "message": chat_message.message,
                "timestamp": as_utc(chat_message.timestamp).isoformat(),
            },
        )

    async def handle_history_query(self, room_id: str) -> List[ChatMessage]:
        """Messages for the room in ascending timestamp order. Store errors propagate."""
        return await self.store.find_by_room(room_id)
