from pydantic import BaseModel, Field, ConfigDict
from pydantic.alias_generators import to_camel
from typing import Optional, List
from datetime import datetime


class CamelModel(BaseModel):
    """Wire models use camelCase keys; attribute access stays snake_case."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class ErrorDetail(BaseModel):
    code: str
    message: str


class ErrorResponse(BaseModel):
    error: ErrorDetail
    request_id: Optional[str] = None


class HealthResponse(BaseModel):
    status: str


# Users

class UserCreate(CamelModel):
    username: str = Field(..., min_length=1, examples=["alice"])


class UserResponse(CamelModel):
    id: str
    username: str
    created_at: datetime


# Conversations

class ConversationCreate(CamelModel):
    title: str = Field(..., min_length=1, examples=["General"])
    member_user_ids: Optional[List[str]] = None


class ConversationResponse(CamelModel):
    id: str
    title: str
    created_at: datetime


class OnlineUsersResponse(CamelModel):
    conversation_id: str
    user_ids: List[str]


# Messages

class MessageCreate(CamelModel):
    conversation_id: str = Field(..., min_length=1)
    author_id: str = Field(..., min_length=1)
    text: str = Field(..., min_length=1, examples=["hi"])


class MessageUpdate(CamelModel):
    text: str = Field(..., min_length=1)
    author_id: str = Field(..., min_length=1)


class MessageDelete(CamelModel):
    author_id: str = Field(..., min_length=1)


class MessageDeletedResponse(CamelModel):
    success: bool
    id: str


class ReactionToggle(CamelModel):
    user_id: str = Field(..., min_length=1)
    emoji: str = Field(..., min_length=1, max_length=32, examples=["👍"])


class ReactionResponse(CamelModel):
    id: str
    message_id: str
    user_id: str
    emoji: str
    created_at: datetime


class MessageResponse(CamelModel):
    id: str
    conversation_id: str
    author_id: str
    text: str
    created_at: datetime
    updated_at: Optional[datetime] = None
    author: UserResponse
    reactions: List[ReactionResponse] = []
