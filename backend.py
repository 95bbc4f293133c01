import json
from typing import Dict, List

import redis

from constants import HISTORY_BACKEND, HISTORY_TTL_SECONDS, REDIS_HOST, REDIS_PORT, REDIS_PASSWORD
from redis_keys import REDIS_HISTORY_KEY
from schemas.events import ChatMessage
from logging_config import get_logger

logger = get_logger(__name__)


class InMemoryMessageStore:
    """Per-room message history kept in process memory."""

    def __init__(self):
        self._rooms: Dict[str, List[ChatMessage]] = {}

    def ensure_room(self, room_id: str) -> List[ChatMessage]:
        history = self._rooms.setdefault(room_id, [])
        return list(history)

    def append(self, room_id: str, message: ChatMessage):
        self._rooms.setdefault(room_id, []).append(message)
        logger.debug(f"Room {room_id} history now has {len(self._rooms[room_id])} messages")

    def get_history(self, room_id: str) -> List[ChatMessage]:
        return list(self._rooms.get(room_id, []))

    def has_room(self, room_id: str) -> bool:
        return room_id in self._rooms

    def delete_room(self, room_id: str):
        removed = self._rooms.pop(room_id, None)
        logger.debug(f"Room {room_id} history deleted: existed={removed is not None}")

    def room_count(self) -> int:
        return len(self._rooms)


class RedisMessageStore:
    """Per-room message history kept in Redis lists, one key per room."""

    def __init__(self, redis_client=None, ttl: int = HISTORY_TTL_SECONDS):
        self.ttl = ttl
        if redis_client is not None:
            self.redis_client = redis_client
            return
        logger.info(f"Initializing RedisMessageStore with connection to {REDIS_HOST}:{REDIS_PORT}")
        try:
            self.redis_client = redis.Redis(host=REDIS_HOST, port=REDIS_PORT, password=REDIS_PASSWORD, decode_responses=True)
            self.redis_client.ping()
            logger.info(f"Redis client connected successfully to {REDIS_HOST}:{REDIS_PORT}")
        except Exception as e:
            logger.error(f"Failed to connect to Redis at {REDIS_HOST}:{REDIS_PORT}: {e}", exc_info=True)
            raise

    def _key(self, room_id: str) -> str:
        return REDIS_HISTORY_KEY.format(slug=room_id)

    def ensure_room(self, room_id: str) -> List[ChatMessage]:
        # An empty Redis list does not exist as a key, so an absent history reads as []
        return self.get_history(room_id)

    def append(self, room_id: str, message: ChatMessage):
        key = self._key(room_id)
        length = self.redis_client.rpush(key, json.dumps(message.model_dump()))
        if self.ttl:
            self.redis_client.expire(key, self.ttl)
        logger.debug(f"Room {room_id} history now has {length} messages")

    def get_history(self, room_id: str) -> List[ChatMessage]:
        raw_messages = self.redis_client.lrange(self._key(room_id), 0, -1)
        history = []
        for raw in raw_messages:
            try:
                history.append(ChatMessage.model_validate(json.loads(raw)))
            except (json.JSONDecodeError, ValueError) as e:
                logger.warning(f"Skipping unreadable history entry in room {room_id}: {e}")
        return history

    def has_room(self, room_id: str) -> bool:
        return bool(self.redis_client.exists(self._key(room_id)))

    def delete_room(self, room_id: str):
        deleted = self.redis_client.delete(self._key(room_id))
        logger.debug(f"Room {room_id} history deleted: existed={bool(deleted)}")

    def room_count(self) -> int:
        return sum(1 for _ in self.redis_client.scan_iter(match=REDIS_HISTORY_KEY.format(slug="*")))


def create_message_store(backend: str = HISTORY_BACKEND):
    if backend == "redis":
        return RedisMessageStore()
    if backend != "memory":
        raise ValueError(f"Unknown HISTORY_BACKEND {backend!r}, expected 'memory' or 'redis'")
    logger.info("Using in-memory message store")
    return InMemoryMessageStore()
