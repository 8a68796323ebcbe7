"""
Chat router — WebSocket event stream and room history.
"""

import logging
from typing import List

from fastapi import APIRouter, Depends, Request, WebSocket, WebSocketDisconnect, status
from fastapi.responses import JSONResponse

from roomchat.errors import AuthenticationError, StoreUnavailableError
from roomchat.schemas.chat_message import ChatMessageOut
from roomchat.services.broadcast import RoomBroadcastEngine
from roomchat.services.identity import credential_from_handshake

logger = logging.getLogger(__name__)

router = APIRouter(tags=["chat"])

HISTORY_FAILED = "Failed to fetch chat history"


def get_broadcast_engine(request: Request) -> RoomBroadcastEngine:
    return request.app.state.broadcast_engine


# ==============================================================================
# HTTP Routes (History)
# ==============================================================================

@router.get("/api/chat/{room_id}", response_model=List[ChatMessageOut])
async def get_chat_history(
    room_id: str,
    engine: RoomBroadcastEngine = Depends(get_broadcast_engine),
):
    """Returns every message for the room, oldest first."""
    try:
        messages = await engine.handle_history_query(room_id)
    except StoreUnavailableError:
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": HISTORY_FAILED},
        )
    return [ChatMessageOut.from_model(m) for m in messages]


# ==============================================================================
# WebSocket Endpoint
# ==============================================================================

@router.websocket("/ws")
async def websocket_chat_endpoint(websocket: WebSocket):
    """
    WebSocket endpoint for the room event stream.

    Auth is read from the ``Authorization: Bearer`` header or the ``token``
    query parameter during the handshake. No token means anonymous; a bad
    token closes the socket with a policy violation.
    """
    registry = websocket.app.state.registry
    dispatcher = websocket.app.state.dispatcher

    await websocket.accept()

    connection = None
    try:
        try:
            credential = credential_from_handshake(websocket.headers, websocket.query_params)
            connection = registry.register(websocket, credential)
        except AuthenticationError as e:
            logger.warning(f"Refused WebSocket handshake: {e.message}")
            await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
            return

        # Receive loop
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break
            data = message.get("text")
            if data is None:
                # Binary frames carry no JSON envelope.
                await dispatcher.report(connection, "Malformed event")
                continue
            await dispatcher.dispatch(connection, data)

    except WebSocketDisconnect:
        pass
    finally:
        registry.unregister(connection)
