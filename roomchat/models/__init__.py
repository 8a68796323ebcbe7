"""
RoomChat – SQLAlchemy ORM models package.

Imports all model classes so the app can discover them
through a single ``from roomchat.models import *`` import.
"""

from roomchat.models.chat_message import ChatMessage, MessageRead  # noqa: F401
