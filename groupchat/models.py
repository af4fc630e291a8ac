import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, String, DateTime, ForeignKey, Text, UniqueConstraint
from sqlalchemy.orm import declarative_base
from sqlalchemy.orm import relationship

Base = declarative_base()


def _new_id() -> str:
    return uuid.uuid4().hex


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class User(Base):
    __tablename__ = "users"

    id = Column(String(32), primary_key=True, default=_new_id)
    username = Column(String, unique=True, index=True, nullable=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)

    memberships = relationship("Membership", back_populates="user")
    messages = relationship("Message", back_populates="author")


class Conversation(Base):
    __tablename__ = "conversations"

    id = Column(String(32), primary_key=True, default=_new_id)
    title = Column(String, nullable=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow,
                        nullable=False, index=True)

    memberships = relationship(
        "Membership", back_populates="conversation", cascade="all, delete-orphan")
    messages = relationship(
        "Message", back_populates="conversation", cascade="all, delete-orphan")


class Membership(Base):
    __tablename__ = "memberships"

    user_id = Column(String(32), ForeignKey(
        "users.id", ondelete="CASCADE"), primary_key=True)
    conversation_id = Column(String(32), ForeignKey(
        "conversations.id", ondelete="CASCADE"), primary_key=True, index=True)

    user = relationship("User", back_populates="memberships")
    conversation = relationship("Conversation", back_populates="memberships")


class Message(Base):
    __tablename__ = "messages"

    id = Column(String(32), primary_key=True, default=_new_id)
    conversation_id = Column(String(32), ForeignKey(
        "conversations.id", ondelete="CASCADE"), nullable=False, index=True)
    author_id = Column(String(32), ForeignKey(
        "users.id", ondelete="CASCADE"), nullable=False, index=True)
    text = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow,
                        nullable=False, index=True)
    # Only set once the author edits the message
    updated_at = Column(DateTime(timezone=True), nullable=True)

    conversation = relationship("Conversation", back_populates="messages")
    author = relationship("User", back_populates="messages")
    reactions = relationship(
        "MessageReaction",
        back_populates="message",
        cascade="all, delete-orphan",
        order_by="MessageReaction.created_at",
    )


class MessageReaction(Base):
    __tablename__ = "message_reactions"

    id = Column(String(32), primary_key=True, default=_new_id)
    message_id = Column(String(32), ForeignKey(
        "messages.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String(32), ForeignKey(
        "users.id", ondelete="CASCADE"), nullable=False)
    emoji = Column(String(32), nullable=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)

    message = relationship("Message", back_populates="reactions")

    # One user can only react with each emoji once per message
    __table_args__ = (
        UniqueConstraint("message_id", "user_id", "emoji",
                         name="uq_message_user_emoji"),
    )
