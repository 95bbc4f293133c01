from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from pydantic import ValidationError
from routers.status import status_router
from backend import create_message_store
from connections import ConnectionRegistry
from matchmaker import ChatService
from schemas.events import CLIENT_EVENTS, ClientFrame
from constants import CORS_ORIGINS
from logging_config import get_logger, setup_logging
import asyncio
import json
import os

# Setup logging
log_level = os.getenv("LOG_LEVEL", "INFO")
log_file = os.getenv("LOG_FILE", None)
setup_logging(log_level=log_level, log_file=log_file)
logger = get_logger(__name__)

app = FastAPI()

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)

app.include_router(status_router)

# Single in-process state owner. Rooms only ever span connections held by this
# instance, so matchmaking does not scale horizontally.
registry = ConnectionRegistry()
chat = ChatService(registry, create_message_store())
app.state.registry = registry
app.state.chat = chat

logger.info("FastAPI application initialized")


def dispatch(connection_id: str, frame: ClientFrame):
    """Route one validated client frame to the matching chat operation."""
    payload = frame.payload()
    event = frame.event

    if event == "find_partner":
        chat.find_partner(connection_id)
    elif event == "message":
        chat.send_message(connection_id, payload.room_id, payload.text)
    elif event == "webrtc_offer":
        chat.relay_offer(connection_id, payload.room_id, payload.offer)
    elif event == "webrtc_answer":
        chat.relay_answer(connection_id, payload.room_id, payload.answer)
    elif event == "webrtc_ice_candidate":
        chat.relay_ice_candidate(connection_id, payload.room_id, payload.candidate)
    elif event == "leave_chat":
        chat.leave(connection_id)
    elif event == "request_user_count":
        chat.send_user_count(connection_id)


def handle_text(connection_id: str, data: str):
    try:
        frame = ClientFrame.model_validate(json.loads(data))
        if frame.event not in CLIENT_EVENTS:
            logger.warning(f"Ignoring unknown event {frame.event!r} from connection {connection_id}")
            return
        dispatch(connection_id, frame)
    except json.JSONDecodeError:
        logger.warning(f"Ignoring non-JSON frame from connection {connection_id}")
    except ValidationError as e:
        logger.warning(f"Ignoring invalid frame from connection {connection_id}: {e.error_count()} errors")


@app.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    await websocket.accept()
    connection_id = registry.register(websocket)
    logger.info(f"User connected: {connection_id}")
    chat.broadcast_user_count()

    try:
        message_count = 0
        while True:
            data = await websocket.receive_text()
            message_count += 1
            logger.debug(f"Received frame #{message_count} from connection {connection_id}")
            handle_text(connection_id, data)
    except WebSocketDisconnect:
        logger.info(f"User disconnected: {connection_id}")
    except Exception as e:
        logger.error(f"Error receiving from connection {connection_id}: {e}", exc_info=True)
    finally:
        # Cleanup on disconnect
        chat.disconnect(connection_id)
        writer_task = registry.unregister(connection_id)
        chat.broadcast_user_count()

        if writer_task:
            try:
                await writer_task
            except asyncio.CancelledError:
                pass

        try:
            await websocket.close()
        except Exception as e:
            logger.debug(f"Error closing WebSocket for connection {connection_id}: {e}")
