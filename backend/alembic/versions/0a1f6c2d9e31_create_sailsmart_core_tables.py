"""create sailsmart core tables

Revision ID: 0a1f6c2d9e31
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""

from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "0a1f6c2d9e31"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _session_columns() -> list[sa.Column]:
    return [
        sa.Column("session_id", sa.String(length=64), primary_key=True),
        sa.Column("user_id", sa.String(length=64), nullable=True),
        sa.Column("email", sa.String(length=320), nullable=True),
        sa.Column("onboarding_state", sa.String(length=32), nullable=False, server_default="signup_pending"),
        sa.Column("conversation", sa.JSON(), nullable=False, server_default="[]"),
        sa.Column("gathered_preferences", sa.JSON(), nullable=False, server_default="{}"),
        sa.Column("profile_completion_triggered_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("last_active_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
    ]


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    ]


def upgrade() -> None:
    """Create onboarding session, profile, journey, requirement, registration and notification tables."""
    for table in ("owner_sessions", "prospect_sessions"):
        extra = [sa.Column("viewed_legs", sa.JSON(), nullable=False, server_default="[]")] if table == "prospect_sessions" else []
        op.create_table(table, *_session_columns(), *extra)
        op.create_index(f"ix_{table}_user_id", table, ["user_id"])
        op.create_index(f"ix_{table}_email", table, ["email"])

    op.create_table(
        "profiles",
        sa.Column("id", sa.String(length=64), primary_key=True),
        sa.Column("full_name", sa.String(length=255), nullable=True),
        sa.Column("username", sa.String(length=255), nullable=True),
        sa.Column("email", sa.String(length=320), nullable=True),
        sa.Column("roles", sa.JSON(), nullable=False, server_default="[]"),
        sa.Column("experience_level", sa.Integer(), nullable=True),
        sa.Column("risk_levels", sa.JSON(), nullable=False, server_default="[]"),
        sa.Column("skills", sa.JSON(), nullable=False, server_default="[]"),
        sa.Column("ai_processing_consent", sa.Boolean(), nullable=False, server_default=sa.false()),
        *_timestamps(),
    )

    op.create_table(
        "journeys",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("owner_id", sa.String(length=64), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("state", sa.String(length=32), nullable=False, server_default="In planning"),
        sa.Column("skills", sa.JSON(), nullable=False, server_default="[]"),
        sa.Column("auto_approval_enabled", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("auto_approval_threshold", sa.Integer(), nullable=False, server_default="80"),
        *_timestamps(),
    )
    op.create_index("ix_journeys_owner_id", "journeys", ["owner_id"])

    op.create_table(
        "legs",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("journey_id", sa.String(length=36), sa.ForeignKey("journeys.id", ondelete="CASCADE"), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("min_experience_level", sa.Integer(), nullable=True),
        sa.Column("risk_level", sa.String(length=32), nullable=True),
        sa.Column("skills", sa.JSON(), nullable=False, server_default="[]"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_legs_journey_id", "legs", ["journey_id"])

    op.create_table(
        "journey_requirements",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("journey_id", sa.String(length=36), sa.ForeignKey("journeys.id", ondelete="CASCADE"), nullable=False),
        sa.Column("requirement_type", sa.String(length=32), nullable=False),
        sa.Column("question_text", sa.Text(), nullable=True),
        sa.Column("skill_name", sa.String(length=255), nullable=True),
        sa.Column("qualification_criteria", sa.Text(), nullable=True),
        sa.Column("weight", sa.Integer(), nullable=False, server_default="5"),
        sa.Column("require_photo_validation", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("pass_confidence_score", sa.Integer(), nullable=False, server_default="7"),
        sa.Column("is_required", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("order", sa.Integer(), nullable=False, server_default="0"),
        *_timestamps(),
    )
    op.create_index("ix_journey_requirements_journey_id", "journey_requirements", ["journey_id"])

    op.create_table(
        "registrations",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("leg_id", sa.String(length=36), sa.ForeignKey("legs.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column("status", sa.String(length=32), nullable=False, server_default="Pending approval"),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("auto_approved", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("ai_match_score", sa.Integer(), nullable=True),
        sa.Column("ai_match_reasoning", sa.Text(), nullable=True),
        sa.Column("passes_required", sa.Boolean(), nullable=True),
        sa.Column("assessment_decision", sa.String(length=16), nullable=True),
        sa.Column("assessment_fingerprint", sa.String(length=64), nullable=True),
        sa.Column("assessed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("notified_decision", sa.String(length=16), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("leg_id", "user_id", name="uq_registrations_leg_user"),
    )
    op.create_index("ix_registrations_leg_id", "registrations", ["leg_id"])
    op.create_index("ix_registrations_user_id", "registrations", ["user_id"])

    op.create_table(
        "registration_answers",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column(
            "registration_id", sa.String(length=36), sa.ForeignKey("registrations.id", ondelete="CASCADE"), nullable=False
        ),
        sa.Column(
            "requirement_id",
            sa.String(length=36),
            sa.ForeignKey("journey_requirements.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("answer_text", sa.Text(), nullable=True),
        sa.Column("answer_json", sa.JSON(), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("registration_id", "requirement_id", name="uq_registration_answers_requirement"),
    )
    op.create_index("ix_registration_answers_registration_id", "registration_answers", ["registration_id"])
    op.create_index("ix_registration_answers_requirement_id", "registration_answers", ["requirement_id"])

    op.create_table(
        "identity_documents",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column("document_type", sa.String(length=32), nullable=False, server_default="passport"),
        sa.Column("is_verified", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("photo_verification_passed", sa.Boolean(), nullable=True),
        sa.Column("photo_confidence_score", sa.Float(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_identity_documents_user_id", "identity_documents", ["user_id"])

    op.create_table(
        "notifications",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("delivery_id", sa.String(length=36), nullable=False, unique=True),
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column("type", sa.String(length=64), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("link", sa.String(length=500), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=False, server_default="{}"),
        sa.Column("read", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_notifications_user_id", "notifications", ["user_id"])

    op.create_table(
        "ai_conversations",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("messages", sa.JSON(), nullable=False, server_default="[]"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_ai_conversations_user_id", "ai_conversations", ["user_id"])


def downgrade() -> None:
    """Drop all core tables in reverse dependency order."""
    for table in (
        "ai_conversations",
        "notifications",
        "identity_documents",
        "registration_answers",
        "registrations",
        "journey_requirements",
        "legs",
        "journeys",
        "profiles",
        "prospect_sessions",
        "owner_sessions",
    ):
        op.drop_table(table)
