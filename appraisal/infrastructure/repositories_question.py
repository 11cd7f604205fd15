# appraisal/infrastructure/repositories_question.py
from __future__ import annotations

from typing import Any

from sqlalchemy import or_
from sqlalchemy.exc import SQLAlchemyError

from ..domain.models import Question
from .exceptions import ValidationError
from .logging import log_database_operation as log_op
from .models import QuestionORM
from .repositories_base import BaseRepository

ALL_LEVELS = "All"


def to_domain_question(row: QuestionORM) -> Question:
    return Question(
        id=row.id,
        weight=row.weight,
        max_score=row.max_score,
        applicable_level=row.applicable_level,
        order=row.order,
        title=row.title,
    )


class QuestionRepo(BaseRepository[QuestionORM]):
    """Question/weight catalog."""

    model = QuestionORM
    resource_name = "Question"

    @log_op("list_applicable_questions")
    def list_applicable(self, level: str) -> list[QuestionORM]:
        """Active questions for ``level`` plus the ones marked for all levels."""
        if not level or not level.strip():
            raise ValidationError("target_level", "Target level must not be empty")
        try:
            return (
                self.s.query(QuestionORM)
                .filter(
                    QuestionORM.is_active.is_(True),
                    or_(
                        QuestionORM.applicable_level == level.strip(),
                        QuestionORM.applicable_level == ALL_LEVELS,
                    ),
                )
                .order_by(QuestionORM.order, QuestionORM.id)
                .all()
            )
        except SQLAlchemyError as e:
            self._handle_error(e, "list_applicable_questions")

    @log_op("upsert_question")
    def upsert_by_title(self, title: str, applicable_level: str, **fields: Any) -> QuestionORM:
        """Match on (title, level) so reseeding the catalog does not duplicate questions."""
        try:
            row = (
                self.s.query(QuestionORM)
                .filter_by(title=title, applicable_level=applicable_level)
                .one_or_none()
            )
            if row is None:
                row = QuestionORM(title=title, applicable_level=applicable_level)
                self.s.add(row)
            for key, value in fields.items():
                setattr(row, key, value)
            self.s.flush()
            return row
        except SQLAlchemyError as e:
            self._handle_error(e, "upsert_question")
