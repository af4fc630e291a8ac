"""initial chat schema

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-18 12:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '001_initial_schema'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        'users',
        sa.Column('id', sa.String(length=32), primary_key=True),
        sa.Column('username', sa.String(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_users_username', 'users', ['username'], unique=True)

    op.create_table(
        'conversations',
        sa.Column('id', sa.String(length=32), primary_key=True),
        sa.Column('title', sa.String(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index('ix_conversations_created_at', 'conversations', ['created_at'])

    op.create_table(
        'memberships',
        sa.Column('user_id', sa.String(length=32), sa.ForeignKey('users.id', ondelete='CASCADE'), primary_key=True),
        sa.Column('conversation_id', sa.String(length=32), sa.ForeignKey('conversations.id', ondelete='CASCADE'), primary_key=True),
    )
    op.create_index('ix_memberships_conversation_id', 'memberships', ['conversation_id'])

    op.create_table(
        'messages',
        sa.Column('id', sa.String(length=32), primary_key=True),
        sa.Column('conversation_id', sa.String(length=32), sa.ForeignKey('conversations.id', ondelete='CASCADE'), nullable=False),
        sa.Column('author_id', sa.String(length=32), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('text', sa.Text(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index('ix_messages_conversation_id', 'messages', ['conversation_id'])
    op.create_index('ix_messages_author_id', 'messages', ['author_id'])
    op.create_index('ix_messages_created_at', 'messages', ['created_at'])

    op.create_table(
        'message_reactions',
        sa.Column('id', sa.String(length=32), primary_key=True),
        sa.Column('message_id', sa.String(length=32), sa.ForeignKey('messages.id', ondelete='CASCADE'), nullable=False),
        sa.Column('user_id', sa.String(length=32), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('emoji', sa.String(length=32), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint('message_id', 'user_id', 'emoji', name='uq_message_user_emoji'),
    )
    op.create_index('ix_message_reactions_message_id', 'message_reactions', ['message_id'])


def downgrade() -> None:
    op.drop_index('ix_message_reactions_message_id', table_name='message_reactions')
    op.drop_table('message_reactions')
    op.drop_index('ix_messages_created_at', table_name='messages')
    op.drop_index('ix_messages_author_id', table_name='messages')
    op.drop_index('ix_messages_conversation_id', table_name='messages')
    op.drop_table('messages')
    op.drop_index('ix_memberships_conversation_id', table_name='memberships')
    op.drop_table('memberships')
    op.drop_index('ix_conversations_created_at', table_name='conversations')
    op.drop_table('conversations')
    op.drop_index('ix_users_username', table_name='users')
    op.drop_table('users')
