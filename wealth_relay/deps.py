from starlette.requests import HTTPConnection

from wealth_relay.config import Settings
from wealth_relay.realtime.manager import ConnectionManager
from wealth_relay.realtime.router import EventRouter
from wealth_relay.services.state import RelayState
from wealth_relay.services.storage import LocalDiskStorage


def get_settings(conn: HTTPConnection) -> Settings:
    return conn.app.state.settings


def get_relay_state(conn: HTTPConnection) -> RelayState:
    """Relay state owned by the running application"""
    return conn.app.state.relay


def get_connection_manager(conn: HTTPConnection) -> ConnectionManager:
    return conn.app.state.connections


def get_event_router(conn: HTTPConnection) -> EventRouter:
    return conn.app.state.event_router


def get_storage(conn: HTTPConnection) -> LocalDiskStorage:
    return conn.app.state.storage
