"""
Durable chat history backed by the async SQLAlchemy session factory.

All database failures are logged here and re-raised as ``StoreUnavailableError``
so callers never see driver-level details.
"""

import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from roomchat.errors import NotFoundError, StoreUnavailableError
from roomchat.models.chat_message import ChatMessage, MessageRead, as_utc, utcnow

logger = logging.getLogger(__name__)


class MessageStore:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def create(
        self,
        room_id: str,
        sender: str,
        message: str,
        timestamp: Optional[datetime] = None,
    ) -> ChatMessage:
        """Persist a new message; ``timestamp`` defaults to now."""
        now = utcnow()
        chat_message = ChatMessage(
            room_id=room_id,
            sender=sender,
            message=message,
            timestamp=as_utc(timestamp) if timestamp is not None else now,
            created_at=now,
            reads=[],
        )
        try:
            async with self._session_factory() as db:
                db.add(chat_message)
                await db.commit()
        except SQLAlchemyError as e:
            logger.error(f"Failed to save message to room {room_id}: {e}")
            raise StoreUnavailableError() from e
        return chat_message

    async def find_by_room(self, room_id: str) -> List[ChatMessage]:
        """Return the room's messages, oldest first."""
        try:
            async with self._session_factory() as db:
                result = await db.execute(
                    select(ChatMessage)
                    .where(ChatMessage.room_id == room_id)
                    .order_by(ChatMessage.timestamp, ChatMessage.created_at)
                )
                return list(result.scalars().all())
        except SQLAlchemyError as e:
            logger.error(f"Failed to fetch history for room {room_id}: {e}")
            raise StoreUnavailableError() from e

    async def add_reader(self, message_id: str, user_id: str) -> None:
        """Add ``user_id`` to the message's readers. Re-adding is a no-op."""
        try:
            async with self._session_factory() as db:
                chat_message = await db.get(ChatMessage, message_id)
                if chat_message is None:
                    raise NotFoundError()
                if user_id in chat_message.read_by:
                    return

                db.add(MessageRead(message_id=message_id, user_id=user_id))
                try:
                    await db.commit()
                except IntegrityError:
                    # A concurrent read receipt from the same user won the insert.
                    await db.rollback()
        except SQLAlchemyError as e:
            logger.error(f"Failed to mark message {message_id} as read: {e}")
            raise StoreUnavailableError() from e

    async def delete_all(self) -> None:
        """Bulk-delete every message and receipt. Test/maintenance use only."""
        try:
            async with self._session_factory() as db:
                await db.execute(delete(MessageRead))
                await db.execute(delete(ChatMessage))
                await db.commit()
        except SQLAlchemyError as e:
            logger.error(f"Failed to clear message store: {e}")
            raise StoreUnavailableError() from e
