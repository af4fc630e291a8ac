"""
In-memory registry of open realtime connections and the conversation room
each one is subscribed to.

The registry is owned by a single application instance and is only touched
from the event loop serving it, so it needs no locking.
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import Dict, Hashable, List, Optional, Protocol, Set

from fastapi import WebSocket, status
from starlette.websockets import WebSocketState

logger = logging.getLogger(__name__)


class Connection(Protocol):
    """Anything that can receive a serialized event."""

    async def send(self, data: str) -> None: ...

    def is_open(self) -> bool: ...

    async def close(self) -> None: ...


class WebSocketConnection:
    """Adapts a Starlette WebSocket to the Connection protocol."""

    def __init__(self, websocket: WebSocket) -> None:
        self.websocket = websocket

    async def send(self, data: str) -> None:
        await self.websocket.send_text(data)

    async def close(self) -> None:
        await self.websocket.close(code=status.WS_1011_INTERNAL_ERROR)

    def is_open(self) -> bool:
        return (
            self.websocket.client_state == WebSocketState.CONNECTED
            and self.websocket.application_state == WebSocketState.CONNECTED
        )

    def __repr__(self) -> str:
        client = self.websocket.client
        return f"<WebSocketConnection {client.host}:{client.port}>" if client else "<WebSocketConnection>"


@dataclass
class Subscription:
    room: Optional[str] = None
    user_id: Optional[str] = None


class ConnectionRegistry:
    def __init__(self, send_timeout: float = 5.0) -> None:
        # connection -> its current room and user
        self._subscriptions: Dict[Hashable, Subscription] = {}
        self.send_timeout = send_timeout

    def __len__(self) -> int:
        return len(self._subscriptions)

    def __contains__(self, connection: Connection) -> bool:
        return connection in self._subscriptions

    def connect(self, connection: Connection) -> None:
        """Register a freshly accepted connection that has not joined a room."""
        self._subscriptions.setdefault(connection, Subscription())

    def join(self, connection: Connection, conversation_id: str, user_id: Optional[str] = None) -> Optional[str]:
        """Subscribe a connection to a room, replacing any previous room.

        Returns the room the connection was in before.
        """
        subscription = self._subscriptions.setdefault(connection, Subscription())
        previous = subscription.room
        subscription.room = conversation_id
        if user_id is not None:
            subscription.user_id = user_id
        return previous

    def leave(self, connection: Connection) -> Optional[str]:
        """Forget a connection entirely. Returns the room it was in."""
        subscription = self._subscriptions.pop(connection, None)
        return subscription.room if subscription else None

    def room_of(self, connection: Connection) -> Optional[str]:
        subscription = self._subscriptions.get(connection)
        return subscription.room if subscription else None

    def user_of(self, connection: Connection) -> Optional[str]:
        subscription = self._subscriptions.get(connection)
        return subscription.user_id if subscription else None

    def members_of(self, conversation_id: str) -> Set[Connection]:
        return {
            conn for conn, sub in self._subscriptions.items()
            if sub.room is not None and sub.room == conversation_id
        }

    def online_user_ids(self, conversation_id: str) -> List[str]:
        return sorted({
            sub.user_id for sub in self._subscriptions.values()
            if sub.room == conversation_id and sub.user_id is not None
        })

    async def publish(
        self,
        conversation_id: str,
        data: str,
        exclude_user_id: Optional[str] = None,
        exclude: Optional[Connection] = None,
    ) -> int:
        """Send data to every open connection in a room.

        Best effort: failing or closed connections are dropped and never
        raise. Returns the number of successful deliveries.
        """
        tasks = []
        for conn in list(self.members_of(conversation_id)):
            if conn is exclude:
                continue
            if exclude_user_id is not None and self.user_of(conn) == exclude_user_id:
                continue
            if not conn.is_open():
                self.leave(conn)
                continue
            tasks.append(self._send_with_timeout(conn, data, conversation_id))

        if not tasks:
            return 0
        results = await asyncio.gather(*tasks, return_exceptions=True)
        return sum(1 for delivered in results if delivered is True)

    async def drop(self, connection: Connection) -> Optional[str]:
        """Forget a connection and close its channel so its owner sees it end.

        Returns the room it was in.
        """
        room = self.leave(connection)
        try:
            await asyncio.wait_for(connection.close(), timeout=self.send_timeout)
        except Exception as e:
            logger.debug(f"Closing dropped connection {connection!r} failed: {e}")
        return room

    async def _send_with_timeout(self, connection: Connection, data: str, conversation_id: str) -> bool:
        """Send message with timeout to prevent blocking"""
        try:
            await asyncio.wait_for(connection.send(data), timeout=self.send_timeout)
            return True
        except asyncio.TimeoutError:
            logger.warning(
                f"Realtime send timeout for {connection!r} in room {conversation_id}")
        except Exception as e:
            logger.debug(
                f"Dropping {connection!r} from room {conversation_id}: {e}")
        # Closing ends the owner's receive loop, which reports the departure
        await self.drop(connection)
        return False
