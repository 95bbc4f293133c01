"""Test configuration and fixtures."""
import pytest

from backend import InMemoryMessageStore
from matchmaker import ChatService


class FakeRegistry:
    """Records deliveries instead of writing to sockets."""

    def __init__(self):
        self.alive = set()
        self.groups = {}
        self.sent = []

    def connect(self, *connection_ids):
        self.alive.update(connection_ids)

    def drop(self, connection_id):
        self.alive.discard(connection_id)
        for members in self.groups.values():
            members.discard(connection_id)

    def is_alive(self, connection_id):
        return connection_id in self.alive

    def count(self):
        return len(self.alive)

    def emit(self, connection_id, event, data=None):
        self.sent.append((connection_id, event, data))

    def emit_to_room(self, room_id, event, data=None, exclude=None):
        for member in sorted(self.groups.get(room_id, ())):
            if member != exclude:
                self.emit(member, event, data)

    def broadcast(self, event, data=None):
        for connection_id in sorted(self.alive):
            self.emit(connection_id, event, data)

    def join(self, connection_id, room_id):
        self.groups.setdefault(room_id, set()).add(connection_id)

    def leave(self, connection_id, room_id):
        self.groups.get(room_id, set()).discard(connection_id)

    def events_for(self, connection_id, event=None):
        return [(e, d) for c, e, d in self.sent if c == connection_id and (event is None or e == event)]

    def clear(self):
        self.sent.clear()


@pytest.fixture
def registry():
    registry = FakeRegistry()
    registry.connect("a", "b", "c", "d")
    return registry


@pytest.fixture
def store():
    return InMemoryMessageStore()


@pytest.fixture
def chat(registry, store):
    return ChatService(registry, store, sender_label="Stranger", waiting_message="waiting...")
