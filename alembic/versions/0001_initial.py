"""initial schema

Revision ID: 0001_initial
Revises:
Create Date: 2026-10-18 00:00:00.000000

"""

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None

GRADER_ROLES = ("self", "appr1", "appr2", "appr3", "mgr", "gm")
AUDIT_PREFIXES = ("appr1", "appr2", "appr3", "mgr", "gm")


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "employees",
        sa.Column("emp_code", sa.String(length=32), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=True),
        sa.Column("level", sa.String(length=64), nullable=True),
        sa.Column("department", sa.String(length=255), nullable=True),
        sa.Column("approver1_code", sa.String(length=32), nullable=True),
        sa.Column("approver2_code", sa.String(length=32), nullable=True),
        sa.Column("approver3_code", sa.String(length=32), nullable=True),
        sa.Column("manager_code", sa.String(length=32), nullable=True),
        sa.Column("gm_code", sa.String(length=32), nullable=True),
        sa.Column("warning_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.PrimaryKeyConstraint("emp_code"),
        sa.CheckConstraint("warning_count >= 0", name="ck_employee_warning_count"),
    )

    op.create_table(
        "questions",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("title", sa.String(length=500), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("category", sa.String(length=64), nullable=True),
        sa.Column("weight", sa.Float(), nullable=False),
        sa.Column("max_score", sa.Integer(), nullable=False, server_default="5"),
        sa.Column("applicable_level", sa.String(length=64), nullable=False),
        sa.Column("display_order", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("weight >= 0 AND weight <= 100", name="ck_question_weight_range"),
        sa.CheckConstraint("max_score >= 1", name="ck_question_max_score"),
    )
    op.create_index(
        "ix_questions_applicable_level", "questions", ["applicable_level"], unique=False
    )

    audit_columns: list[sa.Column] = []
    for prefix in AUDIT_PREFIXES:
        audit_columns += [
            sa.Column(f"{prefix}_status", sa.String(length=16), nullable=True),
            sa.Column(f"{prefix}_date", sa.DateTime(), nullable=True),
            sa.Column(f"{prefix}_note", sa.Text(), nullable=True),
        ]

    op.create_table(
        "assessments",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("period", sa.String(length=64), nullable=True),
        sa.Column("employee_id", sa.String(length=32), nullable=True),
        sa.Column("target_level", sa.String(length=64), nullable=False),
        sa.Column("status", sa.String(length=32), nullable=False, server_default="DRAFT"),
        sa.Column("current_stage", sa.String(length=32), nullable=True),
        *audit_columns,
        sa.Column("rejection_stage", sa.String(length=16), nullable=True),
        sa.Column("rejection_reason", sa.Text(), nullable=True),
        sa.Column("score", sa.Float(), nullable=True),
        sa.Column("final_score", sa.Float(), nullable=True),
        sa.Column("rank", sa.String(length=1), nullable=True),
        sa.Column("submitted_at", sa.DateTime(), nullable=True),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
        sa.Column("approved_at", sa.DateTime(), nullable=True),
        *_timestamps(),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(["employee_id"], ["employees.emp_code"], ondelete="RESTRICT"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_assessments_employee_id", "assessments", ["employee_id"], unique=False)
    op.create_index("ix_assessments_status", "assessments", ["status"], unique=False)
    op.create_index(
        "ix_assessments_current_stage", "assessments", ["current_stage"], unique=False
    )

    score_columns: list[sa.Column] = []
    for role in GRADER_ROLES:
        score_columns.append(sa.Column(f"score_{role}", sa.Float(), nullable=True))
    for role in GRADER_ROLES:
        score_columns.append(sa.Column(f"comment_{role}", sa.Text(), nullable=True))

    op.create_table(
        "assessment_responses",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("assessment_id", sa.Integer(), nullable=False),
        sa.Column("question_id", sa.Integer(), nullable=False),
        sa.Column("question_weight", sa.Float(), nullable=False),
        sa.Column("question_max_score", sa.Integer(), nullable=False),
        *score_columns,
        *_timestamps(),
        sa.ForeignKeyConstraint(["assessment_id"], ["assessments.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["question_id"], ["questions.id"], ondelete="RESTRICT"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "assessment_id", "question_id", name="uq_response_assessment_question"
        ),
        sa.CheckConstraint(
            " AND ".join(f"(score_{r} IS NULL OR score_{r} >= 0)" for r in GRADER_ROLES),
            name="ck_response_scores",
        ),
    )
    op.create_index(
        "ix_assessment_responses_assessment_id",
        "assessment_responses",
        ["assessment_id"],
        unique=False,
    )
    op.create_index(
        "ix_assessment_responses_question_id",
        "assessment_responses",
        ["question_id"],
        unique=False,
    )

    op.create_table(
        "notifications",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("user_id", sa.String(length=32), nullable=False),
        sa.Column("kind", sa.String(length=32), nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("message", sa.Text(), nullable=False),
        sa.Column("assessment_id", sa.Integer(), nullable=True),
        sa.Column("is_read", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_notifications_user_id", "notifications", ["user_id"], unique=False)
    op.create_index(
        "ix_notifications_assessment_id", "notifications", ["assessment_id"], unique=False
    )


def downgrade() -> None:
    op.drop_index("ix_notifications_assessment_id", table_name="notifications")
    op.drop_index("ix_notifications_user_id", table_name="notifications")
    op.drop_table("notifications")
    op.drop_index("ix_assessment_responses_question_id", table_name="assessment_responses")
    op.drop_index("ix_assessment_responses_assessment_id", table_name="assessment_responses")
    op.drop_table("assessment_responses")
    op.drop_index("ix_assessments_current_stage", table_name="assessments")
    op.drop_index("ix_assessments_status", table_name="assessments")
    op.drop_index("ix_assessments_employee_id", table_name="assessments")
    op.drop_table("assessments")
    op.drop_index("ix_questions_applicable_level", table_name="questions")
    op.drop_table("questions")
    op.drop_table("employees")
