from starlette.requests import HTTPConnection

from .realtime.registry import ConnectionRegistry
from .realtime.relay import EventRelay


def get_registry(connection: HTTPConnection) -> ConnectionRegistry:
    """The registry owned by the application serving this request."""
    return connection.app.state.registry


def get_relay(connection: HTTPConnection) -> EventRelay:
    return connection.app.state.relay
