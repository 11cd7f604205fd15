from __future__ import annotations

from datetime import datetime

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def utcnow() -> datetime:
    return datetime.utcnow()


class Base(DeclarativeBase):
    pass


class EmployeeORM(Base):
    __tablename__ = "employees"
    emp_code: Mapped[str] = mapped_column(String(32), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    level: Mapped[str | None] = mapped_column(String(64), nullable=True)
    department: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Sparse approval chain, in order. Empty slots are NULL (or a marker such as "-").
    approver1_code: Mapped[str | None] = mapped_column(String(32), nullable=True)
    approver2_code: Mapped[str | None] = mapped_column(String(32), nullable=True)
    approver3_code: Mapped[str | None] = mapped_column(String(32), nullable=True)
    manager_code: Mapped[str | None] = mapped_column(String(32), nullable=True)
    gm_code: Mapped[str | None] = mapped_column(String(32), nullable=True)

    warning_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=False), default=utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=False), default=utcnow, onupdate=utcnow, nullable=False
    )

    __table_args__ = (CheckConstraint("warning_count >= 0", name="ck_employee_warning_count"),)


class QuestionORM(Base):
    __tablename__ = "questions"
    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    category: Mapped[str | None] = mapped_column(String(64), nullable=True)
    weight: Mapped[float] = mapped_column(Float, nullable=False)
    max_score: Mapped[int] = mapped_column(Integer, default=5, nullable=False)
    applicable_level: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    order: Mapped[int] = mapped_column("display_order", Integer, default=0, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=False), default=utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=False), default=utcnow, onupdate=utcnow, nullable=False
    )

    __table_args__ = (
        CheckConstraint("weight >= 0 AND weight <= 100", name="ck_question_weight_range"),
        CheckConstraint("max_score >= 1", name="ck_question_max_score"),
    )


class AssessmentORM(Base):
    __tablename__ = "assessments"
    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    period: Mapped[str | None] = mapped_column(String(64), nullable=True)
    employee_id: Mapped[str | None] = mapped_column(
        ForeignKey("employees.emp_code", ondelete="RESTRICT"), nullable=True, index=True
    )
    target_level: Mapped[str] = mapped_column(String(64), nullable=False)

    status: Mapped[str] = mapped_column(String(32), default="DRAFT", nullable=False, index=True)
    current_stage: Mapped[str | None] = mapped_column(String(32), nullable=True, index=True)

    # Per-slot audit tuples
    appr1_status: Mapped[str | None] = mapped_column(String(16), nullable=True)
    appr1_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    appr1_note: Mapped[str | None] = mapped_column(Text, nullable=True)
    appr2_status: Mapped[str | None] = mapped_column(String(16), nullable=True)
    appr2_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    appr2_note: Mapped[str | None] = mapped_column(Text, nullable=True)
    appr3_status: Mapped[str | None] = mapped_column(String(16), nullable=True)
    appr3_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    appr3_note: Mapped[str | None] = mapped_column(Text, nullable=True)
    mgr_status: Mapped[str | None] = mapped_column(String(16), nullable=True)
    mgr_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    mgr_note: Mapped[str | None] = mapped_column(Text, nullable=True)
    gm_status: Mapped[str | None] = mapped_column(String(16), nullable=True)
    gm_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    gm_note: Mapped[str | None] = mapped_column(Text, nullable=True)

    rejection_stage: Mapped[str | None] = mapped_column(String(16), nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Derived values, refreshed on completion
    score: Mapped[float | None] = mapped_column(Float, nullable=True)
    final_score: Mapped[float | None] = mapped_column(Float, nullable=True)
    rank: Mapped[str | None] = mapped_column(String(1), nullable=True)

    submitted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=False), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=False), default=utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=False), default=utcnow, onupdate=utcnow, nullable=False
    )

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    responses: Mapped[list[ResponseORM]] = relationship(
        back_populates="assessment", cascade="all, delete-orphan"
    )


class ResponseORM(Base):
    __tablename__ = "assessment_responses"
    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    assessment_id: Mapped[int] = mapped_column(
        ForeignKey("assessments.id", ondelete="CASCADE"), nullable=False, index=True
    )
    question_id: Mapped[int] = mapped_column(
        ForeignKey("questions.id", ondelete="RESTRICT"), nullable=False, index=True
    )

    # Catalog values frozen when the response row is first written
    question_weight: Mapped[float] = mapped_column(Float, nullable=False)
    question_max_score: Mapped[int] = mapped_column(Integer, nullable=False)

    score_self: Mapped[float | None] = mapped_column(Float, nullable=True)
    score_appr1: Mapped[float | None] = mapped_column(Float, nullable=True)
    score_appr2: Mapped[float | None] = mapped_column(Float, nullable=True)
    score_appr3: Mapped[float | None] = mapped_column(Float, nullable=True)
    score_mgr: Mapped[float | None] = mapped_column(Float, nullable=True)
    score_gm: Mapped[float | None] = mapped_column(Float, nullable=True)
    comment_self: Mapped[str | None] = mapped_column(Text, nullable=True)
    comment_appr1: Mapped[str | None] = mapped_column(Text, nullable=True)
    comment_appr2: Mapped[str | None] = mapped_column(Text, nullable=True)
    comment_appr3: Mapped[str | None] = mapped_column(Text, nullable=True)
    comment_mgr: Mapped[str | None] = mapped_column(Text, nullable=True)
    comment_gm: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=False), default=utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=False), default=utcnow, onupdate=utcnow, nullable=False
    )

    __table_args__ = (
        UniqueConstraint("assessment_id", "question_id", name="uq_response_assessment_question"),
        CheckConstraint(
            "(score_self IS NULL OR score_self >= 0) "
            "AND (score_appr1 IS NULL OR score_appr1 >= 0) "
            "AND (score_appr2 IS NULL OR score_appr2 >= 0) "
            "AND (score_appr3 IS NULL OR score_appr3 >= 0) "
            "AND (score_mgr IS NULL OR score_mgr >= 0) "
            "AND (score_gm IS NULL OR score_gm >= 0)",
            name="ck_response_scores",
        ),
    )

    assessment: Mapped[AssessmentORM] = relationship(back_populates="responses")
    question: Mapped[QuestionORM] = relationship()


class NotificationORM(Base):
    __tablename__ = "notifications"
    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    kind: Mapped[str] = mapped_column(String(32), nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    assessment_id: Mapped[int | None] = mapped_column(Integer, nullable=True, index=True)
    is_read: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=False), default=utcnow, nullable=False
    )
