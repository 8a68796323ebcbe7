import json
from types import SimpleNamespace
from typing import Optional

import pytest
from fastapi.testclient import TestClient

from roomchat.config import settings
from roomchat.database import build_engine, build_session_factory, create_tables
from roomchat.errors import StoreUnavailableError
from roomchat.main import create_app
from roomchat.services.broadcast import RoomBroadcastEngine
from roomchat.services.dispatcher import EventDispatcher
from roomchat.services.identity import IdentityResolver, create_access_token
from roomchat.services.message_store import MessageStore
from roomchat.services.presence import TypingRelay
from roomchat.services.receipts import ReadReceiptTracker
from roomchat.services.registry import ConnectionRegistry


class FakeSocket:
    """Stands in for a WebSocket; records every frame sent to it."""

    def __init__(self):
        self.sent = []

    async def send_json(self, payload: dict) -> None:
        self.sent.append(payload)

    def events(self, name: Optional[str] = None):
        return [p for p in self.sent if name is None or p["event"] == name]


class BrokenSocket(FakeSocket):
    async def send_json(self, payload: dict) -> None:
        raise RuntimeError("socket already closed")


class UnavailableStore:
    """A message store whose backend is down."""

    async def create(self, *args, **kwargs):
        raise StoreUnavailableError()

    async def find_by_room(self, room_id):
        raise StoreUnavailableError()

    async def add_reader(self, message_id, user_id):
        raise StoreUnavailableError()


def frame(event: str, **data) -> str:
    return json.dumps({"event": event, "data": data})


def make_token(user_id: str, role: str = "member") -> str:
    return create_access_token({"sub": user_id, "role": role})


def build_core(store) -> SimpleNamespace:
    registry = ConnectionRegistry(IdentityResolver(settings.SECRET_KEY, settings.ALGORITHM))
    engine = RoomBroadcastEngine(registry, store)
    typing_relay = TypingRelay(registry)
    receipts = ReadReceiptTracker(registry, store)
    return SimpleNamespace(
        registry=registry,
        store=store,
        engine=engine,
        typing_relay=typing_relay,
        receipts=receipts,
        dispatcher=EventDispatcher(registry, engine, typing_relay, receipts),
    )


def connect(registry: ConnectionRegistry, user_id: Optional[str] = None, socket=None):
    """Register a fake connection, authenticated when ``user_id`` is given."""
    socket = socket or FakeSocket()
    credential = make_token(user_id) if user_id else None
    return registry.register(socket, credential)


@pytest.fixture
def database_url(tmp_path):
    return f"sqlite+aiosqlite:///{tmp_path / 'roomchat-test.db'}"


@pytest.fixture
async def store(database_url):
    engine = build_engine(database_url)
    await create_tables(engine)
    yield MessageStore(build_session_factory(engine))
    await engine.dispose()


@pytest.fixture
def registry():
    return ConnectionRegistry(IdentityResolver(settings.SECRET_KEY, settings.ALGORITHM))


@pytest.fixture
def core(store):
    return build_core(store)


@pytest.fixture
def client(database_url):
    app = create_app(settings.model_copy(update={"DATABASE_URL": database_url}))
    with TestClient(app) as c:
        yield c
