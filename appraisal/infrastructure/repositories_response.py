# appraisal/infrastructure/repositories_response.py
from __future__ import annotations

from collections.abc import Iterable

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError as SQLIntegrityError, SQLAlchemyError

from ..domain.models import GraderRole, Question, ResponseScores
from .exceptions import ValidationError
from .logging import log_database_operation as log_op
from .models import QuestionORM, ResponseORM
from .repositories_base import BaseRepository


def to_domain_response(row: ResponseORM) -> ResponseScores:
    return ResponseScores(
        question_id=row.question_id,
        scores={role.value: getattr(row, role.score_field) for role in GraderRole},
        comments={role.value: getattr(row, role.comment_field) for role in GraderRole},
        question_weight=row.question_weight,
        question_max_score=row.question_max_score,
    )


class ResponseRepo(BaseRepository[ResponseORM]):
    """
    Per-question responses, one row per (assessment, question).

    Writes go through :meth:`upsert_grader_scores`, which touches only the
    acting grader's score/comment pair. The catalog weight and scale are
    copied onto the row the first time it is written and never refreshed.
    """

    model = ResponseORM
    resource_name = "Response"

    @log_op("upsert_grader_scores")
    def upsert_grader_scores(
        self,
        assessment_id: int,
        question: QuestionORM | Question,
        role: GraderRole | str,
        score: float | None,
        comment: str | None = None,
    ) -> ResponseORM:
        role = GraderRole(role)
        try:
            row = (
                self.s.query(ResponseORM)
                .filter_by(assessment_id=assessment_id, question_id=question.id)
                .one_or_none()
            )
            if row is None:
                row = ResponseORM(
                    assessment_id=assessment_id,
                    question_id=question.id,
                    question_weight=question.weight,
                    question_max_score=question.max_score,
                )
                self.s.add(row)

            if score is not None:
                if score < 0:
                    raise ValidationError("score", "Score must not be negative", score)
                if score > row.question_max_score:
                    raise ValidationError(
                        "score",
                        f"Score exceeds the question maximum of {row.question_max_score}",
                        score,
                        details={"question_id": question.id, "max_score": row.question_max_score},
                    )

            setattr(row, role.score_field, score)
            setattr(row, role.comment_field, comment)
            self.s.flush()
            return row
        except SQLIntegrityError as e:
            self._handle_error(e, "upsert_grader_scores")
        except SQLAlchemyError as e:
            self._handle_error(e, "upsert_grader_scores")

    @log_op("snapshot_question_set")
    def snapshot_question_set(
        self, assessment_id: int, questions: Iterable[QuestionORM]
    ) -> list[ResponseORM]:
        """
        Make the assessment's rows match ``questions`` exactly.

        Each missing question gets an empty row carrying its current weight and
        scale. Rows for questions outside the set, i.e. drafts written against a
        question retired before submission, are removed.
        """
        try:
            wanted = {q.id: q for q in questions}
            existing = {r.question_id: r for r in self.list_for_assessment(assessment_id)}
            for question_id, row in existing.items():
                if question_id not in wanted:
                    self.s.delete(row)
            for question_id, question in wanted.items():
                if question_id not in existing:
                    self.s.add(
                        ResponseORM(
                            assessment_id=assessment_id,
                            question_id=question_id,
                            question_weight=question.weight,
                            question_max_score=question.max_score,
                        )
                    )
            self.s.flush()
        except SQLAlchemyError as e:
            self._handle_error(e, "snapshot_question_set")
        return self.list_for_assessment(assessment_id)

    @log_op("list_responses_for_assessment")
    def list_for_assessment(self, assessment_id: int) -> list[ResponseORM]:
        try:
            return (
                self.s.query(ResponseORM)
                .filter_by(assessment_id=assessment_id)
                .order_by(ResponseORM.question_id)
                .all()
            )
        except SQLAlchemyError as e:
            self._handle_error(e, "list_responses_for_assessment")

    def scores_for_assessment(self, assessment_id: int) -> list[ResponseScores]:
        return [to_domain_response(r) for r in self.list_for_assessment(assessment_id)]

    @log_op("has_recorded_scores")
    def has_any_score(self, assessment_id: int) -> bool:
        """True once any grader has recorded a score on the assessment."""
        scored = [getattr(ResponseORM, role.score_field).isnot(None) for role in GraderRole]
        q = self.s.query(ResponseORM).filter(ResponseORM.assessment_id == assessment_id)
        return bool(self.s.query(q.filter(or_(*scored)).exists()).scalar())
