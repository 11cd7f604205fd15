from __future__ import annotations

import logging
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..infrastructure.config import ScoringConfig
from ..infrastructure.models import AssessmentORM, QuestionORM, ResponseORM
from ..infrastructure.repositories import (
    EmployeeRepo,
    QuestionRepo,
    ResponseRepo,
    to_domain_question,
    to_domain_response,
)
from .models import GraderRole, Question, ResponseScores, ScoreResult
from .scoring import grader_scores, grand_result, round_score


class ScoringService:
    """
    Loads an assessment's questions and responses and runs the pure scoring
    functions over them.

    Until the assessment is first submitted its question set is the catalog's
    applicable questions for the target level. Submission copies that set onto
    the response rows, and from then on the rows alone define it, at their
    frozen weight and scale: catalog edits made later neither add questions
    nor drop or reweigh existing ones.
    """

    def __init__(
        self,
        s: Session,
        config: ScoringConfig | None = None,
        logger: logging.Logger | None = None,
    ):
        self.s = s
        self.config = config or ScoringConfig()
        self.logger = logger or logging.getLogger(__name__)

    def applicable_questions(self, assessment: AssessmentORM) -> list[QuestionORM]:
        return QuestionRepo(self.s).list_applicable(assessment.target_level)

    def responses_for(self, assessment: AssessmentORM) -> list[ResponseORM]:
        # Query rather than assessment.responses so rows upserted in this
        # session are included.
        return ResponseRepo(self.s).list_for_assessment(assessment.id)

    def is_frozen(self, assessment: AssessmentORM) -> bool:
        return assessment.submitted_at is not None

    def question_set(self, assessment: AssessmentORM) -> list[Question]:
        if not self.is_frozen(assessment):
            return [to_domain_question(q) for q in self.applicable_questions(assessment)]
        return [
            Question(id=r.question_id, weight=r.question_weight, max_score=r.question_max_score)
            for r in self.responses_for(assessment)
        ]

    def freeze_question_set(self, assessment: AssessmentORM) -> int:
        """Copy the applicable catalog onto the response rows; returns the set size."""
        rows = ResponseRepo(self.s).snapshot_question_set(
            assessment.id, self.applicable_questions(assessment)
        )
        self.logger.debug("Froze %d question(s) for assessment %s", len(rows), assessment.id)
        return len(rows)

    def scoring_inputs(
        self, assessment: AssessmentORM
    ) -> tuple[list[Question], dict[int, ResponseScores]]:
        try:
            questions = self.question_set(assessment)
            responses = {
                r.question_id: to_domain_response(r) for r in self.responses_for(assessment)
            }
        except SQLAlchemyError:
            self.logger.exception(
                "Database error loading scoring inputs for assessment %s", assessment.id
            )
            raise
        return questions, responses

    def missing_scores(self, assessment: AssessmentORM, role: GraderRole) -> list[int]:
        """Question ids in the assessment's set that have no score from ``role`` yet."""
        questions, responses = self.scoring_inputs(assessment)
        missing = []
        for question in questions:
            response = responses.get(question.id)
            if response is None or response.score_for(role) is None:
                missing.append(question.id)
        return missing

    def progress(self, assessment: AssessmentORM, role: GraderRole) -> dict[str, Any]:
        """How far ``role`` has got through the question set."""
        questions, responses = self.scoring_inputs(assessment)
        scores = [
            responses[q.id].score_for(role)
            for q in questions
            if q.id in responses and responses[q.id].score_for(role) is not None
        ]
        total, completed = len(questions), len(scores)
        places = self.config.decimal_places
        return {
            "total_questions": total,
            "completed": completed,
            "pending": total - completed,
            "completion_rate": round_score(completed * 100 / total, places) if total else 0.0,
            "average_score": round_score(sum(scores) / completed, places) if completed else None,
        }

    def compute_grader_scores(self, assessment: AssessmentORM) -> dict[str, float | None]:
        questions, responses = self.scoring_inputs(assessment)
        return grader_scores(questions, responses, places=self.config.decimal_places)

    def compute_result(self, assessment: AssessmentORM) -> ScoreResult | None:
        """Grand result for the assessment's subject, or ``None`` before any approver scored."""
        if assessment.employee_id is None:
            return None
        employee = EmployeeRepo(self.s).get_chain(assessment.employee_id)
        questions, responses = self.scoring_inputs(assessment)
        result = grand_result(
            questions,
            responses,
            employee.warning_count,
            penalty_per_warning=self.config.warning_penalty,
            thresholds=self.config.rank_thresholds(),
            places=self.config.decimal_places,
        )
        self.logger.debug(
            "Computed result for assessment %s: %s",
            assessment.id,
            None if result is None else (result.net_score, result.rank),
        )
        return result

    def store_result(self, assessment: AssessmentORM) -> ScoreResult | None:
        """Refresh the derived score columns on the assessment row."""
        result = self.compute_result(assessment)
        if result is None:
            assessment.score = None
            assessment.final_score = None
            assessment.rank = None
        else:
            assessment.score = result.total_score
            assessment.final_score = result.net_score
            assessment.rank = result.rank
        return result
