"""create learning record tables

Revision ID: 3b7e1c9a5d20
Revises:
Create Date: 2026-10-18 00:00:00.000000

"""

from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "3b7e1c9a5d20"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "xapi_statements",
        sa.Column("id", sa.String(length=255), primary_key=True),
        sa.Column("partition_key", sa.String(length=64), nullable=False),
        sa.Column("actor_key", sa.Text(), nullable=False),
        sa.Column("verb_id", sa.Text(), nullable=False),
        sa.Column("activity_id", sa.Text(), nullable=False),
        sa.Column("registration", sa.String(length=64), nullable=True),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
        sa.Column("stored", sa.DateTime(timezone=True), nullable=False),
        sa.Column("fingerprint", sa.String(length=64), nullable=False),
        sa.Column("payload", postgresql.JSONB(), nullable=False),
    )
    op.create_index(
        "ix_xapi_statements_partition_ts",
        "xapi_statements",
        ["partition_key", "timestamp", "id"],
    )
    op.create_index("ix_xapi_statements_verb_id", "xapi_statements", ["verb_id"])
    op.create_index("ix_xapi_statements_activity_id", "xapi_statements", ["activity_id"])

    op.create_table(
        "course_progress",
        sa.Column("actor_key", sa.Text(), primary_key=True),
        sa.Column("course_id", sa.String(length=128), primary_key=True),
        sa.Column(
            "completion_status",
            sa.String(length=32),
            nullable=False,
            server_default="not_started",
        ),
        sa.Column("score", sa.Integer(), nullable=True),
        sa.Column("time_spent_seconds", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("progress_percent", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("statement_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_activity_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completion_verb_id", sa.Text(), nullable=True),
        sa.Column("completion_statement_id", sa.String(length=255), nullable=True),
        sa.Column("success", sa.Boolean(), nullable=True),
    )

    op.create_table(
        "verb_configurations",
        sa.Column("verb_id", sa.Text(), primary_key=True),
        sa.Column("category", sa.String(length=32), nullable=False),
        sa.Column("action", sa.String(length=32), nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
    )

    op.create_table(
        "courses",
        sa.Column("course_id", sa.String(length=128), primary_key=True),
        sa.Column("activity_id", sa.Text(), nullable=False, unique=True),
        sa.Column("title", sa.String(length=500), nullable=False, server_default=""),
        sa.Column("expected_interactions", sa.Integer(), nullable=True),
    )


def downgrade() -> None:
    op.drop_table("courses")
    op.drop_table("verb_configurations")
    op.drop_table("course_progress")
    op.drop_index("ix_xapi_statements_activity_id", table_name="xapi_statements")
    op.drop_index("ix_xapi_statements_verb_id", table_name="xapi_statements")
    op.drop_index("ix_xapi_statements_partition_ts", table_name="xapi_statements")
    op.drop_table("xapi_statements")
