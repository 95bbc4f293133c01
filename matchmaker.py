import threading
from datetime import datetime
from typing import Any, Dict, List, Optional

from constants import SENDER_LABEL, WAITING_MESSAGE
from schemas.events import ChatMessage, MatchFoundOut, StatsResponse, WaitingOut
from logging_config import get_logger

logger = get_logger(__name__)


def make_room_id(first: str, second: str) -> str:
    """Both peers derive the same id whatever order they are given in."""
    return "_".join(sorted([first, second]))


class ChatService:
    """Owns the waiting queue, the session table and the message store.

    ``registry`` is the transport collaborator; it must provide ``emit``,
    ``emit_to_room``, ``broadcast``, ``join``, ``leave``, ``is_alive`` and
    ``count``, none of which may block. Every public operation mutates state
    under one lock and returns without awaiting.
    """

    def __init__(self, registry, message_store, sender_label: str = SENDER_LABEL, waiting_message: str = WAITING_MESSAGE):
        self.registry = registry
        self.message_store = message_store
        self.sender_label = sender_label
        self.waiting_message = waiting_message
        self.waiting_queue: List[str] = []
        # Format: {connection_id: room_id}
        self.sessions: Dict[str, str] = {}
        self._lock = threading.RLock()

    # matchmaking

    def find_partner(self, connection_id: str):
        with self._lock:
            self._remove_from_queue(connection_id)
            self._release_room(connection_id)

            partner_id = self._pop_live_candidate()
            if partner_id is None:
                self.waiting_queue.append(connection_id)
                logger.info(f"Connection {connection_id} is waiting (queue length: {len(self.waiting_queue)})")
                self.registry.emit(connection_id, "waiting", WaitingOut(message=self.waiting_message).model_dump())
                return None

            room_id = make_room_id(connection_id, partner_id)
            self.registry.join(connection_id, room_id)
            self.registry.join(partner_id, room_id)
            self.sessions[connection_id] = room_id
            self.sessions[partner_id] = room_id
            history = self.message_store.ensure_room(room_id)

            # The peer that waited longer starts the WebRTC offer
            self.registry.emit(connection_id, "match_found", MatchFoundOut(room_id=room_id, initiator=False).model_dump(by_alias=True))
            self.registry.emit(partner_id, "match_found", MatchFoundOut(room_id=room_id, initiator=True).model_dump(by_alias=True))
            previous = [message.model_dump() for message in history]
            self.registry.emit(connection_id, "previous_messages", previous)
            self.registry.emit(partner_id, "previous_messages", previous)
            logger.info(f"Matched {connection_id} with {partner_id} in room {room_id}")
            return room_id

    def _pop_live_candidate(self) -> Optional[str]:
        while self.waiting_queue:
            candidate = self.waiting_queue.pop(0)
            if self.registry.is_alive(candidate):
                return candidate
            logger.debug(f"Discarding stale waiting entry {candidate}")
        return None

    def _remove_from_queue(self, connection_id: str):
        if connection_id in self.waiting_queue:
            self.waiting_queue.remove(connection_id)

    def _release_room(self, connection_id: str):
        """Drop a previous room when a paired connection asks for a new partner."""
        room_id = self.sessions.pop(connection_id, None)
        if not room_id:
            return
        self.registry.leave(connection_id, room_id)
        if room_id not in self.sessions.values():
            self.message_store.delete_room(room_id)
        logger.debug(f"Connection {connection_id} released room {room_id}")

    # relays

    def send_message(self, connection_id: str, room_id: Optional[str], text: str):
        if not room_id:
            return None
        with self._lock:
            # Only the room the sender is paired into may hold history
            if self.sessions.get(connection_id) != room_id:
                logger.debug(f"Ignoring message from {connection_id} to room {room_id} it is not in")
                return None
            message = ChatMessage(sender=self.sender_label, text=text, time=datetime.now().strftime("%H:%M"))
            self.message_store.append(room_id, message)
            self.registry.emit_to_room(room_id, "message", {**message.model_dump(), "type": "incoming"}, exclude=connection_id)
            return message

    def relay_offer(self, connection_id: str, room_id: Optional[str], offer: Any):
        self._relay(connection_id, room_id, "webrtc_offer", offer)

    def relay_answer(self, connection_id: str, room_id: Optional[str], answer: Any):
        self._relay(connection_id, room_id, "webrtc_answer", answer)

    def relay_ice_candidate(self, connection_id: str, room_id: Optional[str], candidate: Any):
        self._relay(connection_id, room_id, "webrtc_ice_candidate", candidate)

    def _relay(self, connection_id: str, room_id: Optional[str], event: str, payload: Any):
        if not room_id:
            return
        self.registry.emit_to_room(room_id, event, payload, exclude=connection_id)
        logger.debug(f"Relayed {event} from {connection_id} in room {room_id}")

    # lifecycle

    def leave(self, connection_id: str):
        with self._lock:
            room_id = self.sessions.get(connection_id)
            if not room_id:
                return None
            self.registry.emit_to_room(room_id, "partner_disconnected", exclude=connection_id)
            self.registry.leave(connection_id, room_id)
            self._end_session(connection_id, room_id)
            logger.info(f"Connection {connection_id} left room {room_id}")
            return room_id

    def disconnect(self, connection_id: str):
        with self._lock:
            self._remove_from_queue(connection_id)
            room_id = self.sessions.get(connection_id)
            if not room_id:
                return None
            self.registry.emit_to_room(room_id, "partner_disconnected", exclude=connection_id)
            self._end_session(connection_id, room_id)
            logger.info(f"Connection {connection_id} disconnected from room {room_id}")
            return room_id

    def _end_session(self, connection_id: str, room_id: str):
        # The remaining peer keeps its own entry until it leaves or disconnects
        del self.sessions[connection_id]
        self.message_store.delete_room(room_id)

    # user count

    def send_user_count(self, connection_id: str):
        self.registry.emit(connection_id, "user_count", self.registry.count())

    def broadcast_user_count(self):
        self.registry.broadcast("user_count", self.registry.count())

    def stats(self) -> StatsResponse:
        with self._lock:
            return StatsResponse(
                online_users_count=self.registry.count(),
                waiting_count=len(self.waiting_queue),
                paired_count=len(self.sessions),
                active_rooms=self.message_store.room_count(),
            )
