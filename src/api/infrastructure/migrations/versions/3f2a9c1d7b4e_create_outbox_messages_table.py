"""create_outbox_messages_table

Create the outbox table for the transactional outbox pattern and the
dead letter archive. Integration events are appended to outbox_messages
in the same transaction as the state change that produced them and are
relayed to the message bus asynchronously.

Revision ID: 3f2a9c1d7b4e
Revises:
Create Date: 2026-10-19 09:00:00.000000

"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op


# revision identifiers, used by Alembic.
revision: str = "3f2a9c1d7b4e"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        "outbox_messages",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column(
            "event_tag", sa.String(length=255), nullable=False
        ),  # e.g., "iam.user_registered.v1"
        sa.Column("topic", sa.String(length=255), nullable=False),
        sa.Column("payload", sa.Text(), nullable=False),  # Serialized event JSON
        sa.Column("occurred_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column(
            "processed_at", sa.DateTime(timezone=True), nullable=True
        ),  # NULL while pending
        sa.Column(
            "attempt_count",
            sa.Integer(),
            nullable=False,
            server_default="0",
        ),
        sa.Column("last_error", sa.Text(), nullable=True),
        sa.Column(
            "dead_lettered_at", sa.DateTime(timezone=True), nullable=True
        ),  # Set together with processed_at
        sa.PrimaryKeyConstraint("id"),
    )
    # Claiming pending records in occurrence order
    op.create_index(
        "idx_outbox_messages_pending",
        "outbox_messages",
        ["occurred_at"],
        unique=False,
        postgresql_where=sa.text("processed_at IS NULL"),
    )
    # Retention sweep over terminal records
    op.create_index(
        "idx_outbox_messages_terminal",
        "outbox_messages",
        ["processed_at"],
        unique=False,
        postgresql_where=sa.text("processed_at IS NOT NULL"),
    )
    # Monitoring dead letters
    op.create_index(
        "idx_outbox_messages_dead_lettered",
        "outbox_messages",
        ["dead_lettered_at"],
        unique=False,
        postgresql_where=sa.text("dead_lettered_at IS NOT NULL"),
    )

    op.create_table(
        "dead_letter_messages",
        sa.Column("id", sa.Uuid(), nullable=False),  # Original outbox record id
        sa.Column("event_tag", sa.String(length=255), nullable=False),
        sa.Column("topic", sa.String(length=255), nullable=False),
        sa.Column("payload", sa.Text(), nullable=False),
        sa.Column("last_error", sa.Text(), nullable=True),
        sa.Column("attempt_count", sa.Integer(), nullable=False),
        sa.Column("occurred_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("archived_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("replayed_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_table("dead_letter_messages")
    op.drop_index("idx_outbox_messages_dead_lettered", table_name="outbox_messages")
    op.drop_index("idx_outbox_messages_terminal", table_name="outbox_messages")
    op.drop_index("idx_outbox_messages_pending", table_name="outbox_messages")
    op.drop_table("outbox_messages")
