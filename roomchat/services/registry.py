"""
Connection registry: live WebSocket connections and their room memberships.

The registry is owned by the application (see ``create_app``) and passed to
every handler.
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Set

from roomchat.services.identity import Identity, IdentityResolver

logger = logging.getLogger(__name__)


@dataclass(eq=False)
class Connection:
    """One live session. ``websocket`` only needs an async ``send_json``."""
    websocket: Any
    identity: Identity
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    rooms: Set[str] = field(default_factory=set)

    async def send(self, event: str, data: dict) -> None:
        await self.websocket.send_json({"event": event, "data": data})


class ConnectionRegistry:
    def __init__(self, resolver: IdentityResolver):
        self.resolver = resolver
        # Maps connection id to the live Connection
        self.connections: Dict[str, Connection] = {}
        # Maps room_id to the ids of connections that joined it
        self.rooms: Dict[str, Set[str]] = {}

    def register(self, websocket: Any, credential: Optional[str] = None) -> Connection:
        """
        Admit a new connection.

        Raises ``AuthenticationError`` for a present but invalid credential;
        nothing is recorded in that case.
        """
        identity = self.resolver.resolve(credential)
        connection = Connection(websocket=websocket, identity=identity)
        self.connections[connection.id] = connection
        logger.info(
            f"User connected: {connection.id} "
            f"({identity.user_id if not identity.is_anonymous else 'anonymous'})"
        )
        return connection

    def get(self, connection_id: str) -> Optional[Connection]:
        return self.connections.get(connection_id)

    def join(self, connection: Connection, room_id: str) -> None:
        if connection.id not in self.connections:
            return
        connection.rooms.add(room_id)
        self.rooms.setdefault(room_id, set()).add(connection.id)
        logger.info(f"User {connection.id} joined room: {room_id}")

    def members_of(self, room_id: str) -> Set[Connection]:
        return {
            self.connections[cid]
            for cid in self.rooms.get(room_id, ())
            if cid in self.connections
        }

    def unregister(self, connection: Optional[Connection]) -> None:
        """Drop a connection and all of its memberships. Safe to repeat."""
        if connection is None:
            return
        for room_id in connection.rooms:
            members = self.rooms.get(room_id)
            if members is None:
                continue
            members.discard(connection.id)
            if not members:
                del self.rooms[room_id]
        connection.rooms.clear()
        if self.connections.pop(connection.id, None) is not None:
            logger.info(f"User disconnected: {connection.id}")

    async def broadcast(
        self,
        room_id: str,
        event: str,
        data: dict,
        exclude: Optional[Connection] = None,
    ) -> None:
        """Send one event to every current member of the room, except ``exclude``."""
        targets = [c for c in self.members_of(room_id) if c is not exclude]
        if not targets:
            return
        results = await asyncio.gather(
            *(c.send(event, data) for c in targets), return_exceptions=True
        )
        for connection, result in zip(targets, results):
            if isinstance(result, Exception):
                logger.warning(f"Failed to deliver {event} to {connection.id}: {result}")

    def __len__(self) -> int:
        return len(self.connections)
