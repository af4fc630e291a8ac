import json
import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect

from ..dependencies import get_registry, get_relay
from ..realtime.registry import ConnectionRegistry, WebSocketConnection
from ..realtime.relay import REALTIME_CONNECTIONS, EventRelay, envelope

logger = logging.getLogger(__name__)

router = APIRouter()


def _parse_frame(message: dict) -> Optional[dict]:
    """Decode an inbound frame into a JSON object, or None if it is not one."""
    raw = message.get("text")
    if raw is None and message.get("bytes") is not None:
        try:
            raw = message["bytes"].decode("utf-8")
        except UnicodeDecodeError:
            return None
    if raw is None:
        return None
    try:
        data = json.loads(raw)
    except ValueError:
        return None
    return data if isinstance(data, dict) else None


def _as_id(value: Any) -> Optional[str]:
    if isinstance(value, str) and value:
        return value
    return None


def envelope_joined(conversation_id: str) -> str:
    return json.dumps({"type": "joined", "conversationId": conversation_id})


async def _handle_join(
    connection: WebSocketConnection,
    data: dict,
    registry: ConnectionRegistry,
    relay: EventRelay,
) -> Optional[str]:
    """Subscribe the connection to a room. Returns the room it ends up in."""
    conversation_id = _as_id(data.get("conversationId"))
    if conversation_id is None:
        # Malformed join: keep whatever room the connection already had
        logger.debug(f"Ignoring join without conversationId from {connection!r}")
        return registry.room_of(connection)

    previous_user = registry.user_of(connection)
    previous = registry.join(connection, conversation_id, _as_id(data.get("userId")))
    await connection.send(envelope_joined(conversation_id))

    # Same room and same user: the online set did not change
    if previous != conversation_id or registry.user_of(connection) != previous_user:
        await relay.presence(conversation_id)
    if previous is not None and previous != conversation_id:
        await relay.presence(previous)
    return conversation_id


async def _handle_typing(
    connection: WebSocketConnection,
    data: dict,
    registry: ConnectionRegistry,
    relay: EventRelay,
) -> None:
    room = registry.room_of(connection)
    user_id = _as_id(data.get("userId"))
    if room is None or user_id is None:
        return
    requested = _as_id(data.get("conversationId"))
    if requested is not None and requested != room:
        logger.debug(f"Ignoring typing for {requested} from {connection!r} joined to {room}")
        return
    username = data.get("username")
    await relay.typing(
        room,
        user_id,
        username if isinstance(username, str) else None,
        sender=connection,
    )


@router.websocket("/")
@router.websocket("/ws")
async def realtime_ws(
    websocket: WebSocket,
    registry: ConnectionRegistry = Depends(get_registry),
    relay: EventRelay = Depends(get_relay),
):
    await websocket.accept()
    connection = WebSocketConnection(websocket)
    registry.connect(connection)
    REALTIME_CONNECTIONS.inc()
    logger.info(f"Realtime connection opened: {connection!r}")
    # Tracked here too: the registry forgets connections it had to close
    room: Optional[str] = None

    try:
        await connection.send(envelope("welcome", "connected"))

        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break

            data = _parse_frame(message)
            if data is None:
                await connection.send(envelope("error", "invalid json"))
                continue

            msg_type = data.get("type")
            if msg_type == "join":
                room = await _handle_join(connection, data, registry, relay) or room
            elif msg_type == "typing":
                await _handle_typing(connection, data, registry, relay)
            elif msg_type == "ping":
                await connection.send(json.dumps({"type": "pong"}))
            else:
                logger.debug(f"Ignoring unknown realtime message type {msg_type!r}")

    except WebSocketDisconnect:
        pass
    except Exception as e:
        # Log error and close connection
        logger.error(f"Realtime connection error on {connection!r}: {e}")
    finally:
        REALTIME_CONNECTIONS.dec()
        registry.leave(connection)
        logger.info(f"Realtime connection closed: {connection!r}")
        if room is not None:
            await relay.presence(room)
