import logging
from typing import List

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import select, desc
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..dependencies import get_registry
from ..exceptions import PersistenceError
from ..models import Conversation, Membership
from ..realtime.registry import ConnectionRegistry
from ..schemas import ConversationCreate, ConversationResponse, OnlineUsersResponse

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/conversations",
    tags=["conversations"],
)


@router.post("", response_model=ConversationResponse, status_code=status.HTTP_201_CREATED)
async def create_conversation(payload: ConversationCreate, db: AsyncSession = Depends(get_db)):
    """
    Create a conversation and its initial member list in one transaction.
    """
    try:
        conversation = Conversation(title=payload.title)
        db.add(conversation)
        await db.flush()  # Get the ID

        # dict.fromkeys keeps the caller's order while dropping duplicates
        for user_id in dict.fromkeys(payload.member_user_ids or []):
            db.add(Membership(user_id=user_id, conversation_id=conversation.id))

        await db.commit()
        await db.refresh(conversation)
        return conversation

    except SQLAlchemyError as e:
        await db.rollback()
        logger.error(f"Error creating conversation {payload.title!r}: {e}")
        raise PersistenceError(e, "failed to create conversation")


@router.get("", response_model=List[ConversationResponse])
async def list_conversations(
    user_id: str = Query(..., alias="userId", min_length=1),
    db: AsyncSession = Depends(get_db),
):
    """
    Conversations the user is a member of, newest first.
    """
    try:
        query = select(Conversation).join(Membership).where(
            Membership.user_id == user_id
        ).order_by(desc(Conversation.created_at))
        result = await db.execute(query)
        return result.scalars().all()
    except SQLAlchemyError as e:
        raise PersistenceError(e, "failed to list conversations")


@router.get("/{conversation_id}/online", response_model=OnlineUsersResponse)
async def online_users(
    conversation_id: str,
    registry: ConnectionRegistry = Depends(get_registry),
):
    """
    User ids currently connected to the conversation room.
    """
    return OnlineUsersResponse(
        conversation_id=conversation_id,
        user_ids=registry.online_user_ids(conversation_id),
    )
