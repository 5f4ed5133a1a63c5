"""
Test configuration and fixtures.
Every test gets its own application, relay state and upload directory, so
nothing leaks between tests except the module-level rate limiter, which is
reset here.
"""
from types import SimpleNamespace
from typing import Dict, List, Optional

import pytest
from fastapi.testclient import TestClient

from wealth_relay.config import Settings
from wealth_relay.main import create_app
from wealth_relay.rate_limit import limiter
from wealth_relay.realtime.router import EventRouter
from wealth_relay.services.state import RelayState


class FakeConnectionManager:
    """Stands in for ConnectionManager in router unit tests; records what would be sent."""

    def __init__(self):
        self.sent: Dict[str, List[dict]] = {}

    def add(self, connection_id: str, remote_address: str = "10.0.0.1", user_agent: str = "pytest"):
        self.sent[connection_id] = []
        return SimpleNamespace(id=connection_id, remote_address=remote_address, user_agent=user_agent)

    def drop(self, connection_id: str) -> None:
        self.sent.pop(connection_id, None)

    def connection_ids(self) -> List[str]:
        return list(self.sent.keys())

    def is_connected(self, connection_id: Optional[str]) -> bool:
        return bool(connection_id) and connection_id in self.sent

    def send_personal_message(self, message: dict, connection_id: str) -> bool:
        if connection_id not in self.sent:
            return False
        self.sent[connection_id].append(message)
        return True

    def send_many(self, message: dict, connection_ids) -> int:
        return sum(1 for cid in connection_ids if self.send_personal_message(message, cid))

    def types(self, connection_id: str) -> List[str]:
        return [m["type"] for m in self.sent.get(connection_id, [])]

    def of_type(self, connection_id: str, event_type: str) -> List[dict]:
        return [m for m in self.sent.get(connection_id, []) if m["type"] == event_type]

    def clear(self) -> None:
        for messages in self.sent.values():
            messages.clear()


@pytest.fixture
def relay_state():
    return RelayState()


@pytest.fixture
def fake_manager():
    return FakeConnectionManager()


@pytest.fixture
def event_router(relay_state, fake_manager):
    return EventRouter(relay_state, fake_manager)


@pytest.fixture
def relay_settings(tmp_path):
    return Settings(
        UPLOAD_DIR=str(tmp_path / "uploads"),
        LOG_FORMAT="plain",
        LOG_LEVEL="WARNING",
    )


@pytest.fixture
def app(relay_settings):
    return create_app(settings=relay_settings)


@pytest.fixture(scope="function")
def client(app):
    """Create a test client with a fresh relay state."""
    limiter.reset()
    with TestClient(app) as test_client:
        yield test_client
    limiter.reset()


def _receive_until(websocket, event_type: str, limit: int = 20) -> dict:
    for _ in range(limit):
        frame = websocket.receive_json()
        if frame["type"] == event_type:
            return frame
    raise AssertionError(f"no {event_type} event within {limit} frames")


@pytest.fixture
def receive_until():
    """Read WebSocket frames until one of the given type arrives and return it."""
    return _receive_until
