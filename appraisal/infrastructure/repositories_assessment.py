# appraisal/infrastructure/repositories_assessment.py
from __future__ import annotations

from sqlalchemy.exc import SQLAlchemyError

from .exceptions import AssessmentNotFoundError, ValidationError
from .logging import log_database_operation as log_op
from .models import AssessmentORM
from .repositories_base import BaseRepository


class AssessmentRepo(BaseRepository[AssessmentORM]):
    """
    Repository for assessment records.

    Status, stage and audit columns are only ever written by the workflow
    module; this class loads and stores rows.
    """

    model = AssessmentORM
    resource_name = "Assessment"

    @log_op("get_assessment")
    def get_required(self, assessment_id: int, for_update: bool = False) -> AssessmentORM:
        """
        Load an assessment by id.

        ``for_update`` takes a row lock on backends that support it; the
        version column still catches concurrent writers everywhere else.
        """
        if assessment_id is None or assessment_id <= 0:
            raise ValidationError("assessment_id", "Assessment ID must be positive")
        try:
            q = self.s.query(AssessmentORM).filter(AssessmentORM.id == assessment_id)
            if for_update:
                q = q.with_for_update()
            row = q.one_or_none()
        except SQLAlchemyError as e:
            self._handle_error(e, "get_assessment")
        if row is None:
            raise AssessmentNotFoundError(assessment_id)
        return row

    @log_op("create_assessment")
    def create_assessment(
        self,
        title: str,
        target_level: str,
        status: str,
        employee_id: str | None = None,
        current_stage: str | None = None,
        period: str | None = None,
    ) -> AssessmentORM:
        try:
            return self.create(
                title=title,
                target_level=target_level,
                status=status,
                employee_id=employee_id,
                current_stage=current_stage,
                period=period,
            )
        except SQLAlchemyError as e:
            self._handle_error(e, "create_assessment")

    @log_op("list_awaiting_actor")
    def list_awaiting(self, emp_code: str) -> list[AssessmentORM]:
        """Assessments whose next action belongs to ``emp_code``."""
        return self.list(
            AssessmentORM.current_stage == emp_code,
            order_by=[AssessmentORM.updated_at.desc(), AssessmentORM.id.desc()],
        )

    @log_op("delete_assessment")
    def delete_assessment(self, row: AssessmentORM) -> None:
        try:
            self.delete(row)
        except SQLAlchemyError as e:
            self._handle_error(e, "delete_assessment")
