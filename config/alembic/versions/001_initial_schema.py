"""Initial schema: requests, students, selections, reviews, audit log.

Revision ID: 001_initial
Revises:
Create Date: 2026-10-17
"""

from alembic import op
import sqlalchemy as sa

revision = "001_initial"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "students",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("email", sa.String(), nullable=False, unique=True),
        sa.Column("average_rating", sa.Float(), nullable=True),
        sa.Column("completion_rate", sa.Float(), nullable=True),
        sa.Column("reliability_badge", sa.String(), nullable=True),
        sa.Column("trips_hosted", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("no_show_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("metrics_updated_at", sa.DateTime(), nullable=True),
        sa.Column("created_at", sa.DateTime(), server_default=sa.text("CURRENT_TIMESTAMP")),
    )
    op.create_index(
        "ix_students_badge_rating", "students", ["reliability_badge", "average_rating"]
    )

    op.create_table(
        "tourist_requests",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("email", sa.String(), nullable=False),
        sa.Column("city", sa.String(), nullable=False),
        sa.Column("dates", sa.JSON(), nullable=True),
        sa.Column("status", sa.String(), nullable=False, server_default="open"),
        sa.Column(
            "assigned_student_id", sa.String(36), sa.ForeignKey("students.id"), nullable=True
        ),
        sa.Column("created_at", sa.DateTime(), server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.Column("expires_at", sa.DateTime(), nullable=True),
        sa.CheckConstraint(
            "status IN ('open', 'matched', 'closed')", name="valid_request_status"
        ),
    )

    op.create_table(
        "selections",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "request_id", sa.String(36), sa.ForeignKey("tourist_requests.id"), nullable=False
        ),
        sa.Column("student_id", sa.String(36), sa.ForeignKey("students.id"), nullable=False),
        sa.Column("status", sa.String(), nullable=False, server_default="pending"),
        sa.Column("created_at", sa.DateTime(), server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.Column("responded_at", sa.DateTime(), nullable=True),
        sa.UniqueConstraint("request_id", "student_id", name="uq_selections_request_student"),
        sa.CheckConstraint(
            "status IN ('pending', 'accepted', 'declined', 'expired')",
            name="valid_selection_status",
        ),
    )
    op.create_index("ix_selections_request_id", "selections", ["request_id"])
    # At most one accepted selection per request, enforced by the database
    op.create_index(
        "uq_selections_one_accepted",
        "selections",
        ["request_id"],
        unique=True,
        postgresql_where=sa.text("status = 'accepted'"),
        sqlite_where=sa.text("status = 'accepted'"),
    )

    op.create_table(
        "reviews",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "request_id",
            sa.String(36),
            sa.ForeignKey("tourist_requests.id"),
            nullable=False,
            unique=True,
        ),
        sa.Column("student_id", sa.String(36), sa.ForeignKey("students.id"), nullable=False),
        sa.Column("rating", sa.Integer(), nullable=False),
        sa.Column("text", sa.String(500), nullable=True),
        sa.Column("attributes", sa.JSON(), nullable=False),
        sa.Column("no_show", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("price_paid", sa.Float(), nullable=True),
        sa.Column("is_anonymous", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(), server_default=sa.text("CURRENT_TIMESTAMP")),
        sa.CheckConstraint("rating BETWEEN 1 AND 5", name="valid_rating"),
    )
    op.create_index("ix_reviews_student_id", "reviews", ["student_id"])

    op.create_table(
        "audit_log",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("action_type", sa.String(), nullable=False),
        sa.Column("request_id", sa.String(36), nullable=True),
        sa.Column("selection_id", sa.String(36), nullable=True),
        sa.Column("student_id", sa.String(36), nullable=True),
        sa.Column("details", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(), server_default=sa.text("CURRENT_TIMESTAMP")),
    )
    op.create_index("ix_audit_log_request_id", "audit_log", ["request_id"])


def downgrade() -> None:
    op.drop_index("ix_audit_log_request_id")
    op.drop_table("audit_log")
    op.drop_index("ix_reviews_student_id")
    op.drop_table("reviews")
    op.drop_index("uq_selections_one_accepted")
    op.drop_index("ix_selections_request_id")
    op.drop_table("selections")
    op.drop_table("tourist_requests")
    op.drop_index("ix_students_badge_rating")
    op.drop_table("students")
