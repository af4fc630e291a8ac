import logging
from datetime import datetime, timezone
from typing import List

from fastapi import APIRouter, Body, Depends, Query, status
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ..database import get_db
from ..dependencies import get_relay
from ..exceptions import MessageNotFoundError, NotMessageAuthorError, PersistenceError
from ..models import Message, MessageReaction
from ..realtime.relay import EventRelay
from ..schemas import (
    MessageCreate,
    MessageDelete,
    MessageDeletedResponse,
    MessageResponse,
    MessageUpdate,
    ReactionToggle,
)

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/messages",
    tags=["messages"],
)


def _with_details():
    return (selectinload(Message.author), selectinload(Message.reactions))


async def _load_message(db: AsyncSession, message_id: str) -> Message | None:
    """Fetch a message with its author and reactions, bypassing stale identity-map state."""
    res = await db.execute(
        select(Message)
        .where(Message.id == message_id)
        .options(*_with_details())
        .execution_options(populate_existing=True)
    )
    return res.scalar_one_or_none()


@router.post("", response_model=MessageResponse, status_code=status.HTTP_201_CREATED)
async def create_message(
    payload: MessageCreate,
    db: AsyncSession = Depends(get_db),
    relay: EventRelay = Depends(get_relay),
):
    """
    Post a message and broadcast `message:new` to the conversation room.
    """
    try:
        message = Message(
            conversation_id=payload.conversation_id,
            author_id=payload.author_id,
            text=payload.text,
        )
        db.add(message)
        await db.commit()
        message = await _load_message(db, message.id)
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error(f"Error creating message in {payload.conversation_id}: {e}")
        raise PersistenceError(e, "failed to create message")

    response = MessageResponse.model_validate(message)
    await relay.message_created(message)
    return response


@router.get("", response_model=List[MessageResponse])
async def list_messages(
    conversation_id: str = Query(..., alias="conversationId", min_length=1),
    db: AsyncSession = Depends(get_db),
):
    """
    Conversation history, oldest first.
    """
    try:
        result = await db.execute(
            select(Message)
            .where(Message.conversation_id == conversation_id)
            .options(*_with_details())
            .order_by(Message.created_at)
        )
        return result.scalars().all()
    except SQLAlchemyError as e:
        raise PersistenceError(e, "failed to list messages")


@router.patch("/{message_id}", response_model=MessageResponse)
async def update_message(
    message_id: str,
    payload: MessageUpdate,
    db: AsyncSession = Depends(get_db),
    relay: EventRelay = Depends(get_relay),
):
    """
    Edit a message's text. Only its author may do this.
    """
    try:
        message = await _load_message(db, message_id)
        if not message:
            raise MessageNotFoundError()
        if message.author_id != payload.author_id:
            raise NotMessageAuthorError()

        message.text = payload.text
        message.updated_at = datetime.now(timezone.utc)
        await db.commit()
        message = await _load_message(db, message_id)
        if not message:
            # Deleted while the edit was in flight
            raise MessageNotFoundError()
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error(f"Error updating message {message_id}: {e}")
        raise PersistenceError(e, "failed to update message")

    response = MessageResponse.model_validate(message)
    await relay.message_updated(message)
    return response


@router.delete("/{message_id}", response_model=MessageDeletedResponse)
async def delete_message(
    message_id: str,
    payload: MessageDelete = Body(...),
    db: AsyncSession = Depends(get_db),
    relay: EventRelay = Depends(get_relay),
):
    """
    Delete a message and its reactions. Only its author may do this.
    """
    try:
        message = await _load_message(db, message_id)
        if not message:
            raise MessageNotFoundError()
        if message.author_id != payload.author_id:
            raise NotMessageAuthorError()

        conversation_id = message.conversation_id
        await db.delete(message)
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error(f"Error deleting message {message_id}: {e}")
        raise PersistenceError(e, "failed to delete message")

    await relay.message_deleted(message_id, conversation_id)
    return MessageDeletedResponse(success=True, id=message_id)


@router.post("/{message_id}/reactions", response_model=MessageResponse)
async def toggle_reaction(
    message_id: str,
    payload: ReactionToggle,
    db: AsyncSession = Depends(get_db),
    relay: EventRelay = Depends(get_relay),
):
    """
    Add the reaction if the user has not reacted with this emoji yet,
    otherwise remove it.
    """
    try:
        message = await _load_message(db, message_id)
        if not message:
            raise MessageNotFoundError()

        res = await db.execute(select(MessageReaction).where(
            MessageReaction.message_id == message_id,
            MessageReaction.user_id == payload.user_id,
            MessageReaction.emoji == payload.emoji,
        ))
        existing = res.scalar_one_or_none()

        if existing:
            await db.delete(existing)
            reaction = None
        else:
            reaction = MessageReaction(
                message_id=message_id,
                user_id=payload.user_id,
                emoji=payload.emoji,
            )
            db.add(reaction)
        await db.commit()

        # Re-read after the write so a concurrent delete is not broadcast as a reaction
        message = await _load_message(db, message_id)
        if not message:
            raise MessageNotFoundError()
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error(f"Error toggling reaction on message {message_id}: {e}")
        raise PersistenceError(e, "failed to toggle reaction")

    response = MessageResponse.model_validate(message)
    if reaction is not None:
        await relay.reaction_added(message, reaction)
    else:
        await relay.reaction_removed(message, payload.user_id, payload.emoji)
    return response
