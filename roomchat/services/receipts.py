"""Read receipts: record who read a message and tell the rest of the room."""

import logging

from roomchat.errors import NotFoundError, StoreUnavailableError
from roomchat.schemas.events import ReadMessage
from roomchat.services.message_store import MessageStore
from roomchat.services.registry import Connection, ConnectionRegistry

logger = logging.getLogger(__name__)

READ_FAILED = "Failed to mark message as read"


class ReadReceiptTracker:
    def __init__(self, registry: ConnectionRegistry, store: MessageStore):
        self.registry = registry
        self.store = store

    async def handle_read_message(self, connection: Connection, request: ReadMessage) -> None:
        # Same policy as typing: anonymous receipts are dropped, not rejected.
        if connection.identity.is_anonymous:
            return

        user_id = connection.identity.user_id
        try:
            await self.store.add_reader(request.message_id, user_id)
        except (NotFoundError, StoreUnavailableError) as e:
            logger.info(f"Read receipt for {request.message_id} by {user_id} failed: {e.message}")
            await connection.send("error", {"message": READ_FAILED})
            return

        await self.registry.broadcast(
            request.room_id,
            "message_read",
            {"messageId": request.message_id, "userId": user_id},
            exclude=connection,
        )
