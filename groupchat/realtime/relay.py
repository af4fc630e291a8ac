import json
import logging
from typing import Any, Optional

from prometheus_client import Counter, Gauge

from ..models import Message, MessageReaction
from ..schemas import MessageResponse, ReactionResponse
from .registry import Connection, ConnectionRegistry

logger = logging.getLogger(__name__)

REALTIME_EVENTS = Counter(
    "groupchat_realtime_events_total",
    "Realtime events published to conversation rooms",
    ["type"],
)
REALTIME_CONNECTIONS = Gauge(
    "groupchat_realtime_connections",
    "Open realtime connections",
)


def envelope(event_type: str, payload: Any = None) -> str:
    return json.dumps({"type": event_type, "payload": payload})


def message_payload(message: Message) -> dict:
    return MessageResponse.model_validate(message).model_dump(mode="json", by_alias=True)


class EventRelay:
    """Turns domain events into room broadcasts."""

    def __init__(self, registry: ConnectionRegistry) -> None:
        self.registry = registry

    async def publish(
        self,
        conversation_id: str,
        event_type: str,
        payload: Any,
        exclude_user_id: Optional[str] = None,
        exclude: Optional[Connection] = None,
    ) -> int:
        REALTIME_EVENTS.labels(type=event_type).inc()
        delivered = await self.registry.publish(
            conversation_id,
            envelope(event_type, payload),
            exclude_user_id=exclude_user_id,
            exclude=exclude,
        )
        logger.debug(
            f"{event_type} delivered to {delivered} connection(s) in room {conversation_id}")
        return delivered

    async def message_created(self, message: Message) -> int:
        return await self.publish(message.conversation_id, "message:new", message_payload(message))

    async def message_updated(self, message: Message) -> int:
        return await self.publish(message.conversation_id, "message:updated", message_payload(message))

    async def message_deleted(self, message_id: str, conversation_id: str) -> int:
        return await self.publish(
            conversation_id,
            "message:deleted",
            {"id": message_id, "conversationId": conversation_id},
        )

    async def reaction_added(self, message: Message, reaction: MessageReaction) -> int:
        return await self.publish(
            message.conversation_id,
            "reaction:added",
            {
                "messageId": message.id,
                "reaction": ReactionResponse.model_validate(reaction).model_dump(mode="json", by_alias=True),
                "message": message_payload(message),
            },
        )

    async def reaction_removed(self, message: Message, user_id: str, emoji: str) -> int:
        return await self.publish(
            message.conversation_id,
            "reaction:removed",
            {
                "messageId": message.id,
                "userId": user_id,
                "emoji": emoji,
                "message": message_payload(message),
            },
        )

    async def typing(
        self,
        conversation_id: str,
        user_id: str,
        username: Optional[str],
        sender: Optional[Connection] = None,
    ) -> int:
        """Relay a typing signal to everyone in the room but the typist."""
        return await self.publish(
            conversation_id,
            "typing",
            {"userId": user_id, "username": username, "conversationId": conversation_id},
            exclude_user_id=user_id,
            exclude=sender,
        )

    async def presence(self, conversation_id: str) -> int:
        return await self.publish(
            conversation_id,
            "users:online",
            {
                "conversationId": conversation_id,
                "userIds": self.registry.online_user_ids(conversation_id),
            },
        )
