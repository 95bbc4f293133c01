from fastapi import APIRouter, Request
from fastapi.responses import PlainTextResponse
from schemas.events import StatsResponse
from logging_config import get_logger

logger = get_logger(__name__)

status_router = APIRouter(tags=["status"])


@status_router.get("/", response_class=PlainTextResponse)
async def health():
    return "PairChat server is running"


@status_router.get("/stats", response_model=StatsResponse)
async def get_stats(request: Request):
    """
    Snapshot of matchmaking state.

    Returns:
    - online_users_count: Live WebSocket connections
    - waiting_count: Connections waiting for a partner
    - paired_count: Connections currently in a room
    - active_rooms: Rooms with a live message history
    """
    stats = request.app.state.chat.stats()
    logger.debug(f"Stats requested: {stats.model_dump()}")
    return stats
