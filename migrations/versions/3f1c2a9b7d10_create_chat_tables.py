"""Create chat tables

Revision ID: 3f1c2a9b7d10
Revises:
Create Date: 2026-10-19 10:12:41.508113

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '3f1c2a9b7d10'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

user_type = sa.Enum('USER', 'TAX_ACCOUNTANT', name='user_type')
room_status = sa.Enum('ACTIVE', 'CLOSED', name='chat_room_status')
message_type = sa.Enum('TEXT', 'IMAGE', 'FILE', 'SYSTEM', name='chat_message_type')
participant_role = sa.Enum('USER', 'TAX_ACCOUNTANT', name='chat_participant_role')


def upgrade() -> None:
    # Create users table
    op.create_table(
        'users',
        sa.Column('id', sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('username', sa.String(length=100), nullable=True),
        sa.Column('name', sa.String(length=100), nullable=True),
        sa.Column('user_type', user_type, nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('email'),
    )

    # Create chat_rooms table
    op.create_table(
        'chat_rooms',
        sa.Column('id', sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('status', room_status, nullable=False),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.Column('updated_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.Column('last_message_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.Column('closed_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_chat_rooms_last_message_at', 'chat_rooms', ['last_message_at'])

    # Create chat_messages table
    op.create_table(
        'chat_messages',
        sa.Column('id', sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column('room_id', sa.BigInteger(), nullable=False),
        sa.Column('sender_id', sa.BigInteger(), nullable=False),
        sa.Column('type', message_type, nullable=False),
        sa.Column('content', sa.Text(), server_default='', nullable=False),
        sa.Column('file_url', sa.String(length=500), nullable=True),
        sa.Column('file_name', sa.String(length=255), nullable=True),
        sa.Column('file_mime', sa.String(length=100), nullable=True),
        sa.Column('file_size', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.CheckConstraint(
            "type NOT IN ('IMAGE', 'FILE') OR file_url IS NOT NULL",
            name='ck_chat_messages_attachment_url',
        ),
        sa.ForeignKeyConstraint(['room_id'], ['chat_rooms.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['sender_id'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_chat_messages_room_id', 'chat_messages', ['room_id'])
    # Backward pagination scans (room_id, id DESC)
    op.create_index('idx_chat_messages_room_id_id', 'chat_messages', ['room_id', 'id'])

    # Create chat_participants table
    op.create_table(
        'chat_participants',
        sa.Column('id', sa.BigInteger(), autoincrement=True, nullable=False),
        sa.Column('room_id', sa.BigInteger(), nullable=False),
        sa.Column('user_id', sa.BigInteger(), nullable=False),
        sa.Column('role', participant_role, nullable=False),
        sa.Column('last_read_message_id', sa.BigInteger(), nullable=True),
        sa.Column('last_read_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), server_default=sa.text('now()'), nullable=False),
        sa.ForeignKeyConstraint(['room_id'], ['chat_rooms.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.ForeignKeyConstraint(['last_read_message_id'], ['chat_messages.id'], ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('room_id', 'user_id', name='uq_chat_participants_room_user'),
        sa.UniqueConstraint('room_id', 'role', name='uq_chat_participants_room_role'),
    )
    op.create_index('ix_chat_participants_room_id', 'chat_participants', ['room_id'])
    op.create_index('ix_chat_participants_user_id', 'chat_participants', ['user_id'])


def downgrade() -> None:
    op.drop_index('ix_chat_participants_user_id', table_name='chat_participants')
    op.drop_index('ix_chat_participants_room_id', table_name='chat_participants')
    op.drop_table('chat_participants')

    op.drop_index('idx_chat_messages_room_id_id', table_name='chat_messages')
    op.drop_index('ix_chat_messages_room_id', table_name='chat_messages')
    op.drop_table('chat_messages')

    op.drop_index('ix_chat_rooms_last_message_at', table_name='chat_rooms')
    op.drop_table('chat_rooms')

    op.drop_table('users')

    # Drop enums
    participant_role.drop(op.get_bind(), checkfirst=True)
    message_type.drop(op.get_bind(), checkfirst=True)
    room_status.drop(op.get_bind(), checkfirst=True)
    user_type.drop(op.get_bind(), checkfirst=True)
