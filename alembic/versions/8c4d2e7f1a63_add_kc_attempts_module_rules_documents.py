"""add kc attempts, module rules and xapi documents

Revision ID: 8c4d2e7f1a63
Revises: 3b7e1c9a5d20
Create Date: 2026-10-18 12:00:00.000000

"""

from collections.abc import Sequence

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "8c4d2e7f1a63"
down_revision: str | Sequence[str] | None = "3b7e1c9a5d20"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "kc_attempts",
        sa.Column("statement_id", sa.String(length=255), primary_key=True),
        sa.Column("actor_key", sa.Text(), nullable=False),
        sa.Column("course_id", sa.String(length=128), nullable=False),
        sa.Column("assessment_id", sa.Text(), nullable=False),
        sa.Column("assessment_name", sa.Text(), nullable=True),
        sa.Column("verb_id", sa.Text(), nullable=False),
        sa.Column("registration", sa.String(length=64), nullable=True),
        sa.Column("success", sa.Boolean(), nullable=True),
        sa.Column("score_scaled", sa.Float(), nullable=True),
        sa.Column("score_raw", sa.Float(), nullable=True),
        sa.Column("score_max", sa.Float(), nullable=True),
        sa.Column("response", sa.Text(), nullable=True),
        sa.Column("interaction_type", sa.String(length=64), nullable=True),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_kc_attempts_actor_ts", "kc_attempts", ["actor_key", "timestamp"])
    op.create_index("ix_kc_attempts_course_ts", "kc_attempts", ["course_id", "timestamp"])

    op.create_table(
        "module_rules",
        sa.Column("course_id", sa.String(length=128), primary_key=True),
        sa.Column("rules", postgresql.JSONB(), nullable=False),
        sa.Column("updated", sa.DateTime(timezone=True), nullable=False),
    )

    op.create_table(
        "xapi_documents",
        sa.Column("kind", sa.String(length=32), nullable=False),
        sa.Column("activity_id", sa.Text(), nullable=False),
        sa.Column("actor_key", sa.Text(), nullable=False),
        sa.Column("registration", sa.String(length=64), nullable=False),
        sa.Column("document_id", sa.Text(), nullable=False),
        sa.Column("content", sa.LargeBinary(), nullable=False),
        sa.Column("content_type", sa.String(length=255), nullable=False),
        sa.Column("updated", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint(
            "kind", "activity_id", "actor_key", "registration", "document_id"
        ),
    )


def downgrade() -> None:
    op.drop_table("xapi_documents")
    op.drop_table("module_rules")
    op.drop_index("ix_kc_attempts_course_ts", table_name="kc_attempts")
    op.drop_index("ix_kc_attempts_actor_ts", table_name="kc_attempts")
    op.drop_table("kc_attempts")
