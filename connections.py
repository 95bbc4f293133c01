import asyncio
import json
import uuid
from typing import Any, Dict, Optional, Set

from fastapi import WebSocket

from logging_config import get_logger

logger = get_logger(__name__)


class ConnectionRegistry:
    """Tracks live WebSocket connections and named delivery groups (rooms).

    Delivery never suspends the caller: every frame is put on the target
    connection's outbox and a per-connection writer task drains it onto the
    socket. This keeps matchmaking handlers free of awaits, so each of them
    runs to completion before the next event is processed.
    """

    def __init__(self):
        # Format: {connection_id: websocket}
        self.connections: Dict[str, WebSocket] = {}
        # Format: {connection_id: queue of outgoing text frames}
        self.outboxes: Dict[str, asyncio.Queue] = {}
        # Format: {connection_id: writer task}
        self.writer_tasks: Dict[str, asyncio.Task] = {}
        # Format: {room_id: {connection_id, ...}}
        self.groups: Dict[str, Set[str]] = {}

    def register(self, websocket: WebSocket) -> str:
        connection_id = str(uuid.uuid4())
        self.connections[connection_id] = websocket
        self.outboxes[connection_id] = asyncio.Queue()
        self.writer_tasks[connection_id] = asyncio.create_task(self._writer(connection_id, websocket, self.outboxes[connection_id]))
        logger.debug(f"Registered connection {connection_id} (online: {len(self.connections)})")
        return connection_id

    def unregister(self, connection_id: str) -> Optional[asyncio.Task]:
        """Forget the connection and cancel its writer; the caller may await the returned task."""
        self.connections.pop(connection_id, None)
        self.outboxes.pop(connection_id, None)
        for room_id in list(self.groups):
            self.leave(connection_id, room_id)

        task = self.writer_tasks.pop(connection_id, None)
        if task:
            task.cancel()
        logger.debug(f"Unregistered connection {connection_id} (online: {len(self.connections)})")
        return task

    async def _writer(self, connection_id: str, websocket: WebSocket, queue: asyncio.Queue):
        try:
            while True:
                frame = await queue.get()
                await websocket.send_text(frame)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            # Socket is gone, the receive loop will notice and clean up
            logger.debug(f"Stopped writer for connection {connection_id}: {e}")

    def is_alive(self, connection_id: str) -> bool:
        return connection_id in self.connections

    def count(self) -> int:
        return len(self.connections)

    def emit(self, connection_id: str, event: str, data: Any = None):
        queue = self.outboxes.get(connection_id)
        if queue is None:
            logger.debug(f"Dropping {event} for unknown connection {connection_id}")
            return
        queue.put_nowait(json.dumps({"event": event, "data": data}))

    def emit_to_room(self, room_id: str, event: str, data: Any = None, exclude: Optional[str] = None):
        members = [conn_id for conn_id in self.groups.get(room_id, ()) if conn_id != exclude]
        for conn_id in members:
            self.emit(conn_id, event, data)
        logger.debug(f"Emitted {event} to {len(members)} members of room {room_id}")

    def broadcast(self, event: str, data: Any = None):
        for conn_id in list(self.connections):
            self.emit(conn_id, event, data)

    def join(self, connection_id: str, room_id: str):
        self.groups.setdefault(room_id, set()).add(connection_id)

    def leave(self, connection_id: str, room_id: str):
        members = self.groups.get(room_id)
        if not members:
            return
        members.discard(connection_id)
        if not members:
            del self.groups[room_id]
