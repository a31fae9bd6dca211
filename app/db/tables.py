"""SQLAlchemy table definitions.

These map to the frozen dataclass domain models in app/models/.
Repos convert between SQLAlchemy rows and domain dataclasses.
"""

from __future__ import annotations

import datetime
from typing import Any

from sqlalchemy import Boolean, DateTime, Float, Index, Integer, LargeBinary, String, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from app.db.engine import Base

# --- Learning records (written by ingestion only, never updated) ---


class StatementRow(Base):
    __tablename__ = "xapi_statements"

    # Row key
    id: Mapped[str] = mapped_column(String(255), primary_key=True)
    # Bounded, sanitized prefix of actor_key; queries filter on both columns
    partition_key: Mapped[str] = mapped_column(String(64), nullable=False)
    actor_key: Mapped[str] = mapped_column(Text, nullable=False)
    verb_id: Mapped[str] = mapped_column(Text, nullable=False)
    activity_id: Mapped[str] = mapped_column(Text, nullable=False)
    registration: Mapped[str | None] = mapped_column(String(64), nullable=True)
    timestamp: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    stored: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
    fingerprint: Mapped[str] = mapped_column(String(64), nullable=False)
    payload: Mapped[dict[str, Any]] = mapped_column(JSONB, nullable=False)

    __table_args__ = (
        Index("ix_xapi_statements_partition_ts", "partition_key", "timestamp", "id"),
        Index("ix_xapi_statements_verb_id", "verb_id"),
        Index("ix_xapi_statements_activity_id", "activity_id"),
    )


# --- Derived state (recomputable from the statement store) ---


class CourseProgressRow(Base):
    __tablename__ = "course_progress"

    actor_key: Mapped[str] = mapped_column(Text, primary_key=True)
    course_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    completion_status: Mapped[str] = mapped_column(
        String(32), nullable=False, default="not_started"
    )
    score: Mapped[int | None] = mapped_column(Integer, nullable=True)
    time_spent_seconds: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    progress_percent: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    started_at: Mapped[datetime.datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    completed_at: Mapped[datetime.datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    statement_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_activity_at: Mapped[datetime.datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    completion_verb_id: Mapped[str | None] = mapped_column(Text, nullable=True)
    completion_statement_id: Mapped[str | None] = mapped_column(
        String(255), nullable=True
    )
    success: Mapped[bool | None] = mapped_column(Boolean, nullable=True)


class KcAttemptRow(Base):
    __tablename__ = "kc_attempts"

    # One attempt per source statement; re-recording overwrites
    statement_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    actor_key: Mapped[str] = mapped_column(Text, nullable=False)
    course_id: Mapped[str] = mapped_column(String(128), nullable=False)
    assessment_id: Mapped[str] = mapped_column(Text, nullable=False)
    assessment_name: Mapped[str | None] = mapped_column(Text, nullable=True)
    verb_id: Mapped[str] = mapped_column(Text, nullable=False)
    registration: Mapped[str | None] = mapped_column(String(64), nullable=True)
    success: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    score_scaled: Mapped[float | None] = mapped_column(Float, nullable=True)
    score_raw: Mapped[float | None] = mapped_column(Float, nullable=True)
    score_max: Mapped[float | None] = mapped_column(Float, nullable=True)
    response: Mapped[str | None] = mapped_column(Text, nullable=True)
    interaction_type: Mapped[str | None] = mapped_column(String(64), nullable=True)
    timestamp: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )

    __table_args__ = (
        Index("ix_kc_attempts_actor_ts", "actor_key", "timestamp"),
        Index("ix_kc_attempts_course_ts", "course_id", "timestamp"),
    )


# --- Admin-managed verb classification overrides ---


class VerbConfigurationRow(Base):
    __tablename__ = "verb_configurations"

    verb_id: Mapped[str] = mapped_column(Text, primary_key=True)
    category: Mapped[str] = mapped_column(String(32), nullable=False)
    action: Mapped[str] = mapped_column(String(32), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")


# --- Course directory (owned by the catalog; read-only here) ---


class CourseRow(Base):
    __tablename__ = "courses"

    course_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    activity_id: Mapped[str] = mapped_column(Text, unique=True, nullable=False)
    title: Mapped[str] = mapped_column(String(500), nullable=False, default="")
    expected_interactions: Mapped[int | None] = mapped_column(Integer, nullable=True)


# --- Admin-managed module completion rules, one row per course ---


class ModuleRulesRow(Base):
    __tablename__ = "module_rules"

    course_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    rules: Mapped[list[dict[str, Any]]] = mapped_column(JSONB, nullable=False)
    updated: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )


# --- xAPI State, Activity Profile and Agent Profile documents ---


class XapiDocumentRow(Base):
    __tablename__ = "xapi_documents"

    # Unused key parts are stored as "" so they can take part in the primary key
    kind: Mapped[str] = mapped_column(String(32), primary_key=True)
    activity_id: Mapped[str] = mapped_column(Text, primary_key=True)
    actor_key: Mapped[str] = mapped_column(Text, primary_key=True)
    registration: Mapped[str] = mapped_column(String(64), primary_key=True)
    document_id: Mapped[str] = mapped_column(Text, primary_key=True)
    content: Mapped[bytes] = mapped_column(LargeBinary, nullable=False)
    content_type: Mapped[str] = mapped_column(String(255), nullable=False)
    updated: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
