# This project was developed with assistance from AI tools.
"""initial casework schema

Revision ID: 0a1c3e5b7d90
Revises:
Create Date: 2026-10-19 09:12:44.318204

"""

import sqlalchemy as sa
from alembic import op

revision = "0a1c3e5b7d90"
down_revision = None
branch_labels = None
depends_on = None


def _created_at() -> sa.Column:
    return sa.Column(
        "created_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False,
    )


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("external_id", sa.String(255), nullable=True),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("first_name", sa.String(100), nullable=False),
        sa.Column("last_name", sa.String(100), nullable=False),
        sa.Column("role", sa.String(50), nullable=False),
        _created_at(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("external_id"),
        sa.UniqueConstraint("email"),
    )
    op.create_index("ix_users_external_id", "users", ["external_id"])
    op.create_index("ix_users_email", "users", ["email"])

    op.create_table(
        "blobs",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("key", sa.String(500), nullable=False),
        sa.Column("filename", sa.String(255), nullable=False),
        sa.Column("content_type", sa.String(100), nullable=False),
        sa.Column("byte_size", sa.Integer(), nullable=False),
        sa.Column("checksum", sa.String(64), nullable=False),
        _created_at(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("key"),
    )

    op.create_table(
        "applications",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("managing_guardian_id", sa.Integer(), nullable=True),
        sa.Column("status", sa.String(50), nullable=False, server_default="DRAFT"),
        sa.Column("submission_method", sa.String(50), nullable=False, server_default="ONLINE"),
        sa.Column("application_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("last_visited_step", sa.String(100), nullable=True),
        sa.Column("income_proof_status", sa.String(50), nullable=False, server_default="NOT_REVIEWED"),
        sa.Column(
            "residency_proof_status", sa.String(50), nullable=False, server_default="NOT_REVIEWED",
        ),
        sa.Column("income_proof_blob_id", sa.Integer(), nullable=True),
        sa.Column("residency_proof_blob_id", sa.Integer(), nullable=True),
        sa.Column("total_rejections", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("needs_review_since", sa.DateTime(timezone=True), nullable=True),
        sa.Column("medical_provider_name", sa.String(255), nullable=True),
        sa.Column("medical_provider_email", sa.String(255), nullable=True),
        sa.Column(
            "medical_certification_status",
            sa.String(50),
            nullable=False,
            server_default="NOT_REQUESTED",
        ),
        sa.Column("medical_certification_blob_id", sa.Integer(), nullable=True),
        sa.Column("medical_certification_requested_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "medical_certification_request_count", sa.Integer(), nullable=False, server_default="0",
        ),
        sa.Column("medical_certification_verified_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("medical_certification_verified_by_id", sa.Integer(), nullable=True),
        sa.Column("medical_certification_rejection_reason", sa.Text(), nullable=True),
        _created_at(),
        sa.Column(
            "updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False,
        ),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.ForeignKeyConstraint(["managing_guardian_id"], ["users.id"]),
        sa.ForeignKeyConstraint(["income_proof_blob_id"], ["blobs.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(["residency_proof_blob_id"], ["blobs.id"], ondelete="SET NULL"),
        sa.ForeignKeyConstraint(
            ["medical_certification_blob_id"], ["blobs.id"], ondelete="SET NULL",
        ),
        sa.ForeignKeyConstraint(["medical_certification_verified_by_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_applications_user_id", "applications", ["user_id"])
    op.create_index("ix_applications_managing_guardian_id", "applications", ["managing_guardian_id"])

    op.create_table(
        "proof_submission_audits",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("application_id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=True),
        sa.Column("proof_type", sa.String(50), nullable=False),
        sa.Column("submission_method", sa.String(50), nullable=False),
        sa.Column("audit_data", sa.JSON(), nullable=True),
        _created_at(),
        sa.ForeignKeyConstraint(["application_id"], ["applications.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_proof_submission_audits_application_id", "proof_submission_audits", ["application_id"],
    )

    op.create_table(
        "proof_reviews",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("application_id", sa.Integer(), nullable=False),
        sa.Column("admin_id", sa.Integer(), nullable=True),
        sa.Column("proof_type", sa.String(50), nullable=False),
        sa.Column("status", sa.String(50), nullable=False),
        sa.Column("submission_method", sa.String(50), nullable=False, server_default="WEB"),
        sa.Column("rejection_reason", sa.String(255), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("reviewed_at", sa.DateTime(timezone=True), nullable=False),
        _created_at(),
        sa.ForeignKeyConstraint(["application_id"], ["applications.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["admin_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_proof_reviews_application_id", "proof_reviews", ["application_id"])

    op.create_table(
        "application_status_changes",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("application_id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=True),
        sa.Column("from_status", sa.String(50), nullable=True),
        sa.Column("to_status", sa.String(50), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("change_data", sa.JSON(), nullable=True),
        _created_at(),
        sa.ForeignKeyConstraint(["application_id"], ["applications.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_application_status_changes_application_id",
        "application_status_changes",
        ["application_id"],
    )

    op.create_table(
        "events",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        _created_at(),
        sa.Column("prev_hash", sa.String(64), nullable=True),
        sa.Column("user_id", sa.Integer(), nullable=True),
        sa.Column("action", sa.String(100), nullable=False),
        sa.Column("application_id", sa.Integer(), nullable=True),
        sa.Column("auditable_type", sa.String(50), nullable=True),
        sa.Column("auditable_id", sa.Integer(), nullable=True),
        sa.Column("event_data", sa.JSON(), nullable=True),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_events_action", "events", ["action"])
    op.create_index("ix_events_application_id", "events", ["application_id"])

    # The event trail is append-only.
    op.execute(
        """
        CREATE OR REPLACE FUNCTION events_append_only() RETURNS trigger AS $$
        BEGIN
            RAISE EXCEPTION 'events is append-only: % not allowed', TG_OP;
        END;
        $$ LANGUAGE plpgsql;
        """
    )
    op.execute(
        """
        CREATE TRIGGER events_no_update_delete
        BEFORE UPDATE OR DELETE ON events
        FOR EACH ROW EXECUTE FUNCTION events_append_only();
        """
    )

    op.create_table(
        "notifications",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("recipient_id", sa.Integer(), nullable=False),
        sa.Column("actor_id", sa.Integer(), nullable=True),
        sa.Column("action", sa.String(100), nullable=False),
        sa.Column("notifiable_type", sa.String(50), nullable=True),
        sa.Column("notifiable_id", sa.Integer(), nullable=True),
        sa.Column("message", sa.Text(), nullable=True),
        sa.Column("delivery_status", sa.String(50), nullable=False, server_default="PENDING"),
        sa.Column("message_id", sa.String(255), nullable=True),
        sa.Column("notification_data", sa.JSON(), nullable=True),
        sa.Column("read_at", sa.DateTime(timezone=True), nullable=True),
        _created_at(),
        sa.ForeignKeyConstraint(["recipient_id"], ["users.id"]),
        sa.ForeignKeyConstraint(["actor_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_notifications_recipient_id", "notifications", ["recipient_id"])
    op.create_index("ix_notifications_action", "notifications", ["action"])
    op.create_index("ix_notifications_notifiable_id", "notifications", ["notifiable_id"])

    op.create_table(
        "vouchers",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("application_id", sa.Integer(), nullable=False),
        sa.Column("code", sa.String(12), nullable=False),
        sa.Column("status", sa.String(50), nullable=False, server_default="ACTIVE"),
        sa.Column("initial_value", sa.Numeric(10, 2), nullable=False),
        sa.Column("remaining_value", sa.Numeric(10, 2), nullable=False),
        sa.Column("issued_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        _created_at(),
        sa.ForeignKeyConstraint(["application_id"], ["applications.id"], ondelete="RESTRICT"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("application_id"),
        sa.UniqueConstraint("code"),
    )

    op.create_table(
        "evaluations",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("application_id", sa.Integer(), nullable=False),
        sa.Column("evaluator_id", sa.Integer(), nullable=False),
        sa.Column("constituent_id", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(50), nullable=False, server_default="REQUESTED"),
        _created_at(),
        sa.ForeignKeyConstraint(["application_id"], ["applications.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["evaluator_id"], ["users.id"]),
        sa.ForeignKeyConstraint(["constituent_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_evaluations_application_id", "evaluations", ["application_id"])
    op.create_index("ix_evaluations_evaluator_id", "evaluations", ["evaluator_id"])

    op.create_table(
        "training_sessions",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("application_id", sa.Integer(), nullable=False),
        sa.Column("trainer_id", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(50), nullable=False, server_default="REQUESTED"),
        _created_at(),
        sa.ForeignKeyConstraint(["application_id"], ["applications.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["trainer_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_training_sessions_application_id", "training_sessions", ["application_id"])
    op.create_index("ix_training_sessions_trainer_id", "training_sessions", ["trainer_id"])

    op.create_table(
        "policies",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("key", sa.String(100), nullable=False),
        sa.Column("value", sa.Integer(), nullable=False),
        sa.Column(
            "updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False,
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("key"),
    )

    op.create_table(
        "email_templates",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("subject", sa.String(255), nullable=False),
        sa.Column("body", sa.Text(), nullable=False),
        sa.Column(
            "updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()"), nullable=False,
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("name"),
    )

    op.create_table(
        "jobs",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("job_type", sa.String(100), nullable=False),
        sa.Column("payload", sa.JSON(), nullable=False),
        sa.Column("status", sa.String(50), nullable=False, server_default="PENDING"),
        sa.Column("run_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("attempts", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("max_attempts", sa.Integer(), nullable=False, server_default="3"),
        sa.Column("last_error", sa.Text(), nullable=True),
        sa.Column("idempotency_key", sa.String(255), nullable=True),
        _created_at(),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("idempotency_key"),
    )
    op.create_index("ix_jobs_job_type", "jobs", ["job_type"])
    op.create_index("ix_jobs_run_at", "jobs", ["run_at"])


def downgrade() -> None:
    op.drop_table("jobs")
    op.drop_table("email_templates")
    op.drop_table("policies")
    op.drop_table("training_sessions")
    op.drop_table("evaluations")
    op.drop_table("vouchers")
    op.drop_table("notifications")
    op.execute("DROP TRIGGER IF EXISTS events_no_update_delete ON events")
    op.execute("DROP FUNCTION IF EXISTS events_append_only()")
    op.drop_table("events")
    op.drop_table("application_status_changes")
    op.drop_table("proof_reviews")
    op.drop_table("proof_submission_audits")
    op.drop_table("applications")
    op.drop_table("blobs")
    op.drop_table("users")
