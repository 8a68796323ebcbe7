"""Typing indicator relay: never persisted."""

from roomchat.schemas.events import Typing
from roomchat.services.registry import Connection, ConnectionRegistry


class TypingRelay:
    def __init__(self, registry: ConnectionRegistry):
        self.registry = registry

    async def handle_typing(self, connection: Connection, request: Typing) -> None:
        # Anonymous connections have nobody to attribute typing to; drop quietly.
        if connection.identity.is_anonymous:
            return
        await self.registry.broadcast(
            request.room_id,
            "typing",
            {"user": connection.identity.user_id, "isTyping": request.is_typing},
            exclude=connection,
        )
