"""Chat message model and its read receipts."""

import uuid
from datetime import datetime, timezone
from typing import List

from sqlalchemy import DateTime, ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from roomchat.database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Normalise a datetime to UTC; naive values are taken to be UTC already."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class ChatMessage(Base):
    """
    A message posted to a room.

    Only ``reads`` ever changes after creation, and only by growing.
    """
    __tablename__ = "chat_messages"

    id: Mapped[str] = mapped_column(
        String(32), primary_key=True, default=lambda: uuid.uuid4().hex
    )
    room_id: Mapped[str] = mapped_column(String(255), index=True, nullable=False)
    sender: Mapped[str] = mapped_column(String(255), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)

    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, index=True, nullable=False
    )
    # Insertion instant; breaks ties between equal timestamps.
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )

    reads: Mapped[List["MessageRead"]] = relationship(
        "MessageRead",
        back_populates="chat_message",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    @property
    def read_by(self) -> List[str]:
        return [r.user_id for r in self.reads]


class MessageRead(Base):
    """One reader of one message; the composite key keeps ``read_by`` a set."""
    __tablename__ = "message_reads"

    message_id: Mapped[str] = mapped_column(
        ForeignKey("chat_messages.id", ondelete="CASCADE"), primary_key=True
    )
    user_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    read_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )

    chat_message: Mapped["ChatMessage"] = relationship(
        "ChatMessage", back_populates="reads"
    )
