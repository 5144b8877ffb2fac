# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Initial Academy schema.

Revision ID: 001_initial
Revises: None
Create Date: 2025-01-15
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

revision: str = "001_initial"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

Money = sa.Numeric(12, 2)


def _id() -> sa.Column:
    return sa.Column("id", sa.String(36), primary_key=True)


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    ]


def _fk(name: str, target: str, ondelete: str | None = None, index: bool = True) -> sa.Column:
    return sa.Column(name, sa.String(36), sa.ForeignKey(target, ondelete=ondelete), nullable=False, index=index)


def upgrade() -> None:
    """Create all Academy tables."""
    # =========================================================================
    # USERS AND CATALOG
    # =========================================================================

    op.create_table(
        "users",
        _id(),
        sa.Column("email", sa.String(255), nullable=False, unique=True, index=True),
        sa.Column("full_name", sa.String(200), nullable=False),
        sa.Column("password_hash", sa.String(255), nullable=True),
        sa.Column("role", sa.String(20), nullable=False, server_default="student"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("login_attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("lock_until", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_login_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("password_changed_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )

    op.create_table(
        "courses",
        _id(),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("category", sa.String(100), nullable=True),
        sa.Column("fee", Money, nullable=False),
        sa.Column("emi_amount", Money, nullable=True),
        sa.Column("duration_weeks", sa.Integer(), nullable=False, server_default="12"),
        sa.Column("is_published", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
    )

    op.create_table(
        "batches",
        _id(),
        _fk("course_id", "courses.id", ondelete="CASCADE"),
        _fk("instructor_id", "users.id"),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("start_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("end_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("max_students", sa.Integer(), nullable=False, server_default="30"),
        sa.Column("current_students", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
    )

    # =========================================================================
    # ENROLLMENT AND PAYMENTS
    # =========================================================================

    op.create_table(
        "enrollments",
        _id(),
        _fk("student_id", "users.id", ondelete="CASCADE"),
        _fk("batch_id", "batches.id", ondelete="CASCADE"),
        _fk("course_id", "courses.id", ondelete="CASCADE"),
        sa.Column("payment_method", sa.String(10), nullable=False, server_default="full"),
        sa.Column("total_amount", Money, nullable=False),
        sa.Column("emi_amount", Money, nullable=True),
        sa.Column("emi_months", sa.Integer(), nullable=True),
        sa.Column("paid_amount", Money, nullable=False, server_default="0"),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("payment_status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("next_payment_due", sa.DateTime(timezone=True), nullable=True),
        sa.Column("access_revoked", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("enrolled_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("student_id", "batch_id", name="uq_enrollments_student_batch"),
    )

    op.create_table(
        "payments",
        _id(),
        _fk("enrollment_id", "enrollments.id", ondelete="CASCADE"),
        _fk("student_id", "users.id"),
        _fk("batch_id", "batches.id"),
        _fk("course_id", "courses.id"),
        sa.Column("amount", Money, nullable=False),
        sa.Column("currency", sa.String(3), nullable=False, server_default="INR"),
        sa.Column("payment_type", sa.String(10), nullable=False),
        sa.Column("emi_number", sa.Integer(), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("gateway_order_id", sa.String(100), nullable=False, unique=True),
        sa.Column("gateway_payment_id", sa.String(100), nullable=True),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True, index=True),
        *_timestamps(),
    )

    # =========================================================================
    # LEARNING CONTENT
    # =========================================================================

    op.create_table(
        "learning_materials",
        _id(),
        _fk("batch_id", "batches.id", ondelete="CASCADE"),
        _fk("course_id", "courses.id", index=False),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("material_type", sa.String(20), nullable=False, server_default="document"),
        sa.Column("is_published", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
    )

    op.create_table(
        "live_sessions",
        _id(),
        _fk("batch_id", "batches.id", ondelete="CASCADE"),
        _fk("course_id", "courses.id", index=False),
        _fk("instructor_id", "users.id", index=False),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("scheduled_start", sa.DateTime(timezone=True), nullable=False, index=True),
        sa.Column("scheduled_end", sa.DateTime(timezone=True), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="scheduled"),
        sa.Column("provider", sa.String(20), nullable=False, server_default="inhouse"),
        sa.Column("meeting_id", sa.String(100), nullable=True),
        sa.Column("join_url", sa.String(500), nullable=True),
        sa.Column("start_url", sa.String(500), nullable=True),
        *_timestamps(),
    )

    op.create_table(
        "session_attendees",
        _id(),
        _fk("session_id", "live_sessions.id", ondelete="CASCADE"),
        _fk("student_id", "users.id"),
        sa.Column("joined_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("duration_minutes", sa.Integer(), nullable=False, server_default="0"),
        sa.UniqueConstraint("session_id", "student_id", name="uq_session_attendees_session_student"),
    )

    op.create_table(
        "assignments",
        _id(),
        _fk("batch_id", "batches.id", ondelete="CASCADE"),
        _fk("course_id", "courses.id", index=False),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("max_marks", sa.Integer(), nullable=False, server_default="100"),
        sa.Column("deadline", sa.DateTime(timezone=True), nullable=False, index=True),
        sa.Column("is_published", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
    )

    op.create_table(
        "submissions",
        _id(),
        _fk("assignment_id", "assignments.id", ondelete="CASCADE"),
        _fk("batch_id", "batches.id"),
        _fk("course_id", "courses.id", index=False),
        _fk("student_id", "users.id"),
        sa.Column("status", sa.String(20), nullable=False, server_default="submitted"),
        sa.Column("submitted_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("is_graded", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("marks_obtained", sa.Float(), nullable=True),
        sa.Column("percentage", sa.Float(), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("assignment_id", "student_id", name="uq_submissions_assignment_student"),
    )

    op.create_table(
        "doubts",
        _id(),
        _fk("student_id", "users.id"),
        _fk("batch_id", "batches.id", ondelete="CASCADE"),
        _fk("course_id", "courses.id", index=False),
        sa.Column("title", sa.String(300), nullable=False),
        sa.Column("body", sa.Text(), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="open", index=True),
        sa.Column("reply_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("instructor_reply_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )

    # =========================================================================
    # PROGRESS
    # =========================================================================

    op.create_table(
        "progress",
        _id(),
        _fk("student_id", "users.id", ondelete="CASCADE"),
        _fk("batch_id", "batches.id", ondelete="CASCADE"),
        _fk("course_id", "courses.id", index=False),
        sa.Column("material_progress", sa.JSON(), nullable=False),
        sa.Column("session_attendance", sa.JSON(), nullable=False),
        sa.Column("assignment_progress", sa.JSON(), nullable=False),
        sa.Column("total_materials", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("completed_materials", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_sessions", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("attended_sessions", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("total_assignments", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("submitted_assignments", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("graded_assignments", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("average_score", sa.Float(), nullable=False, server_default="0"),
        sa.Column("total_time_spent", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("material_completion_percentage", sa.Float(), nullable=False, server_default="0"),
        sa.Column("attendance_percentage", sa.Float(), nullable=False, server_default="0"),
        sa.Column("assignment_completion_percentage", sa.Float(), nullable=False, server_default="0"),
        sa.Column("overall_progress", sa.Float(), nullable=False, server_default="0", index=True),
        sa.Column("risk_factors", sa.JSON(), nullable=False),
        sa.Column("is_at_risk", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("last_risk_assessment", sa.DateTime(timezone=True), nullable=True),
        sa.Column("current_streak", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("longest_streak", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("streak_updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_active", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_calculated", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("student_id", "batch_id", name="uq_progress_student_batch"),
    )

    # =========================================================================
    # TOKENS AND CACHE
    # =========================================================================

    op.create_table(
        "refresh_tokens",
        _id(),
        _fk("user_id", "users.id", ondelete="CASCADE", index=False),
        sa.Column("token_hash", sa.String(64), nullable=False, index=True),
        sa.Column("device_id", sa.String(64), nullable=False),
        sa.Column("device_name", sa.String(200), nullable=False),
        sa.Column("browser", sa.String(100), nullable=False),
        sa.Column("os", sa.String(100), nullable=False),
        sa.Column("ip_address", sa.String(45), nullable=False),
        sa.Column("user_agent", sa.String(500), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False, index=True),
        sa.Column("last_used_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("revoked_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("revoked_reason", sa.String(30), nullable=True),
    )
    op.create_index("ix_refresh_tokens_user_active", "refresh_tokens", ["user_id", "is_active"])
    op.create_index("ix_refresh_tokens_user_device", "refresh_tokens", ["user_id", "device_id"])

    op.create_table(
        "token_blacklist",
        _id(),
        sa.Column("token_hash", sa.String(64), nullable=False, unique=True),
        sa.Column("user_id", sa.String(36), nullable=True, index=True),
        sa.Column("reason", sa.String(30), nullable=False, server_default="logout"),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False, index=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )

    op.create_table(
        "analytics_cache",
        _id(),
        sa.Column("key", sa.String(255), nullable=False, unique=True),
        sa.Column("data", sa.JSON(), nullable=False),
        sa.Column("cache_type", sa.String(20), nullable=False, server_default="realtime"),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False, index=True),
        *_timestamps(),
    )


def downgrade() -> None:
    """Drop all Academy tables."""
    # Drop in reverse order to handle foreign keys
    op.drop_table("analytics_cache")
    op.drop_table("token_blacklist")
    op.drop_index("ix_refresh_tokens_user_device", table_name="refresh_tokens")
    op.drop_index("ix_refresh_tokens_user_active", table_name="refresh_tokens")
    op.drop_table("refresh_tokens")
    op.drop_table("progress")
    op.drop_table("doubts")
    op.drop_table("submissions")
    op.drop_table("assignments")
    op.drop_table("session_attendees")
    op.drop_table("live_sessions")
    op.drop_table("learning_materials")
    op.drop_table("payments")
    op.drop_table("enrollments")
    op.drop_table("batches")
    op.drop_table("courses")
    op.drop_table("users")
