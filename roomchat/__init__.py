"""RoomChat – room-scoped real-time chat backend."""

__version__ = "0.1.0"
