"""
RoomChat — FastAPI application entry-point.

Run with:
    uvicorn roomchat.main:app --reload
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from uvicorn.middleware.proxy_headers import ProxyHeadersMiddleware

from roomchat.config import Settings, settings as default_settings
from roomchat.database import build_engine, build_session_factory, create_tables

# ── Import routers ──
from roomchat.routers import chat
from roomchat.schemas.token import Token
from roomchat.services.broadcast import RoomBroadcastEngine
from roomchat.services.dispatcher import EventDispatcher
from roomchat.services.identity import IdentityResolver, create_access_token
from roomchat.services.message_store import MessageStore
from roomchat.services.presence import TypingRelay
from roomchat.services.receipts import ReadReceiptTracker
from roomchat.services.registry import ConnectionRegistry

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str) -> None:
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT)


# ── Lifespan: create tables and wire the chat core on startup ──
@asynccontextmanager
async def lifespan(app: FastAPI):
    settings: Settings = app.state.settings

    engine = build_engine(settings.DATABASE_URL, echo=settings.DEBUG)
    await create_tables(engine)

    store = MessageStore(build_session_factory(engine))
    registry = ConnectionRegistry(IdentityResolver(settings.SECRET_KEY, settings.ALGORITHM))
    broadcast_engine = RoomBroadcastEngine(registry, store)

    app.state.message_store = store
    app.state.registry = registry
    app.state.broadcast_engine = broadcast_engine
    app.state.dispatcher = EventDispatcher(
        registry,
        broadcast_engine,
        TypingRelay(registry),
        ReadReceiptTracker(registry, store),
    )
    logger.info(f"{settings.APP_NAME} started ({settings.ENVIRONMENT})")
    yield
    await engine.dispose()


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or default_settings
    configure_logging(settings.LOG_LEVEL)

    app = FastAPI(
        title=settings.APP_NAME,
        description="Room-scoped real-time chat with persisted history and read receipts.",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.settings = settings

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(ProxyHeadersMiddleware, trusted_hosts=("*",))

    # ── Register routers ──
    app.include_router(chat.router)

    @app.get("/")
    async def root():
        return {"message": "Server is running!"}

    if settings.ENVIRONMENT != "production":
        @app.get("/dev/token/{user_id}", response_model=Token)
        async def dev_token(user_id: str, role: Optional[str] = None):
            """Issue an access token without credentials, for local testing."""
            claims = {"sub": user_id}
            if role:
                claims["role"] = role
            return Token(access_token=create_access_token(claims))

    return app


app = create_app()
