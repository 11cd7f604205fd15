"""
Assessment state machine.

Every transition runs against one SQLAlchemy session supplied by the caller
and is applied as a whole or not at all: authorization and completeness are
checked before any status change, and the caller's unit of work rolls back
response upserts if a later check fails. Notification events are returned,
not sent; the application layer dispatches them after commit.

The approval chain is read from the directory at each transition, so an
approver edited mid-flight changes the remaining path from the next step on.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import asdict
from datetime import datetime
from typing import Any, TypeVar

from pydantic import BaseModel
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from ..infrastructure.config import Settings, get_settings
from ..infrastructure.exceptions import (
    AuthorizationError,
    ConflictError,
    IncompleteScoresError,
    InvalidStateError,
    MultipleValidationError,
    QuestionNotFoundError,
    ValidationError,
)
from ..infrastructure.logging import get_logger
from ..infrastructure.models import AssessmentORM, utcnow
from ..infrastructure.repositories import (
    AssessmentRepo,
    EmployeeRepo,
    ResponseRepo,
)
from .chain import next_populated_slot, slot_occupant
from .models import (
    CHAIN_SLOTS,
    AssessmentStatus,
    ChainSlot,
    Employee,
    GraderRole,
    NotificationEvent,
    NotificationKind,
    Phase,
    ScoreResult,
    Stage,
    StageAudit,
    StageDecision,
    TransitionResult,
    WorkflowState,
)
from .schemas import AssessmentCreationInput, ResponseInput, validate_input
from .services import ScoringService

logger = get_logger(__name__)

SELF_ACTION_STATUSES = frozenset(
    {AssessmentStatus.ASSIGNED, AssessmentStatus.IN_PROGRESS, AssessmentStatus.REJECTED}
)
DELETABLE_STATUSES = frozenset({AssessmentStatus.DRAFT, AssessmentStatus.ASSIGNED})

ResponseLike = ResponseInput | Mapping[str, Any]

M = TypeVar("M", bound=BaseModel)


def audit_field(slot: ChainSlot, name: str) -> str:
    """Column name of a slot's audit value, e.g. ``appr1_status``."""
    return f"{slot.role.value}_{name}"


def parse_input(schema: type[M], data: dict[str, Any]) -> M:
    """Validate ``data`` against ``schema`` and raise application errors on failure."""
    result = validate_input(schema, data)
    if not result.success:
        errors = [ValidationError(e.field, e.message, e.value) for e in result.errors]
        if len(errors) == 1:
            raise errors[0]
        raise MultipleValidationError(errors)
    return schema.model_validate(result.data)


def audit_trail(row: AssessmentORM) -> list[StageAudit]:
    return [
        StageAudit(
            slot=slot,
            status=getattr(row, audit_field(slot, "status")),
            date=getattr(row, audit_field(slot, "date")),
            note=getattr(row, audit_field(slot, "note")),
        )
        for slot in CHAIN_SLOTS
    ]


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


class AssessmentWorkflow:
    """
    Applies lifecycle transitions to assessments.

    Example:
        >>> with uow.begin() as s:
        ...     result = AssessmentWorkflow(s).approve(12, actor="X", role="appr1")
        >>> result.status
        <AssessmentStatus.SUBMITTED_MGR: 'SUBMITTED_MGR'>
    """

    def __init__(self, s: Session, settings: Settings | None = None):
        self.s = s
        self.settings = settings or get_settings()
        self.assessments = AssessmentRepo(s)
        self.employees = EmployeeRepo(s)
        self.responses = ResponseRepo(s)
        self.scoring = ScoringService(s, self.settings.scoring)
        self.empty_markers = frozenset(self.settings.workflow.empty_slot_markers)

    # ------------------- Helpers -------------------

    def _load(
        self, assessment_id: int, expected_version: int | None = None
    ) -> tuple[AssessmentORM, WorkflowState]:
        row = self.assessments.get_required(assessment_id, for_update=True)
        if expected_version is not None and row.version != expected_version:
            raise ConflictError(
                f"Assessment {assessment_id} is at version {row.version}, "
                f"caller expected {expected_version}",
                assessment_id=assessment_id,
                details={
                    "assessment_id": assessment_id,
                    "expected_version": expected_version,
                    "actual_version": row.version,
                },
            )
        return row, WorkflowState.from_status(row.status)

    def _flush(self, row: AssessmentORM) -> None:
        try:
            self.s.flush()
        except StaleDataError as e:
            raise ConflictError(
                f"Assessment {row.id} was modified by a concurrent transition",
                assessment_id=row.id,
            ) from e

    def _result(
        self, row: AssessmentORM, events: list[NotificationEvent] | None = None
    ) -> TransitionResult:
        return TransitionResult(
            assessment_id=row.id,
            status=AssessmentStatus(row.status),
            current_stage=row.current_stage,
            version=row.version,
            events=list(events or []),
        )

    def _enter(self, row: AssessmentORM, state: WorkflowState, stage: str | None) -> None:
        previous = row.status
        row.status = state.status.value
        row.current_stage = stage
        logger.info(
            f"Assessment {row.id}: {previous} -> {row.status} (next actor: {stage or 'none'})"
        )

    def _check_text(self, field: str, value: str | None, limit: int) -> None:
        if value is not None and len(value) > limit:
            raise ValidationError(field, f"Must be at most {limit} characters", len(value))

    def _stale(self, row: AssessmentORM, message: str, **details: Any) -> ConflictError:
        return ConflictError(
            f"Assessment {row.id}: {message}",
            assessment_id=row.id,
            details={"assessment_id": row.id, "status": row.status, **details},
        )

    def _authorize_self(self, row: AssessmentORM, actor: str, action: str) -> None:
        if AssessmentStatus(row.status) not in SELF_ACTION_STATUSES:
            if actor == row.employee_id and row.submitted_at is not None:
                # The employee is acting on a round that has already been submitted.
                raise self._stale(row, "already submitted", action=action, actor=actor)
            raise InvalidStateError(row.status, action, actor)
        if actor != row.employee_id:
            raise AuthorizationError(
                f"Only the assessed employee may {action} assessment {row.id}",
                actor=actor,
                details={"actor": actor, "assessment_id": row.id, "action": action},
            )

    def _authorize_slot(
        self,
        row: AssessmentORM,
        state: WorkflowState,
        slot: ChainSlot,
        actor: str,
        action: str,
    ) -> None:
        if state.slot is not slot:
            decided = getattr(row, audit_field(slot, "status"))
            if decided is not None:
                # This slot already approved or rejected the current round.
                raise self._stale(
                    row,
                    f"the {slot.value} stage was already {decided.lower()}",
                    slot=slot.value,
                    decision=decided,
                    action=action,
                )
            raise InvalidStateError(row.status, action, actor)
        if actor != row.current_stage:
            raise AuthorizationError(
                f"{actor} is not the pending {slot.value} on assessment {row.id}",
                actor=actor,
                details={"actor": actor, "assessment_id": row.id, "action": action},
            )

    def _write_responses(
        self, row: AssessmentORM, role: GraderRole, responses: Iterable[ResponseLike] | None
    ) -> int:
        items = [
            r if isinstance(r, ResponseInput) else parse_input(ResponseInput, dict(r))
            for r in (responses or ())
        ]
        if not items:
            return 0

        catalog = {q.id: q for q in self.scoring.question_set(row)}
        limit = self.settings.workflow.max_comment_length
        for item in items:
            question = catalog.get(item.question_id)
            if question is None:
                raise QuestionNotFoundError(item.question_id)
            self._check_text("comment", item.comment, limit)
            self.responses.upsert_grader_scores(
                row.id, question, role, item.score, item.comment
            )
        logger.debug(f"Saved {len(items)} {role.value} response(s) on assessment {row.id}")
        return len(items)

    def _require_complete(self, row: AssessmentORM, role: GraderRole) -> None:
        missing = self.scoring.missing_scores(row, role)
        if missing:
            raise IncompleteScoresError(role.value, missing)

    def _record_decision(
        self,
        row: AssessmentORM,
        slot: ChainSlot,
        decision: StageDecision,
        when: datetime,
        note: str | None,
    ) -> None:
        setattr(row, audit_field(slot, "status"), decision.value)
        setattr(row, audit_field(slot, "date"), when)
        setattr(row, audit_field(slot, "note"), note)

    def _start_new_round(self, row: AssessmentORM) -> None:
        for slot in CHAIN_SLOTS:
            for name in ("status", "date", "note"):
                setattr(row, audit_field(slot, name), None)

    def _advance(
        self,
        row: AssessmentORM,
        employee: Employee,
        after: ChainSlot | None,
        when: datetime,
    ) -> list[NotificationEvent]:
        """Move to the next populated slot after ``after``, or complete."""
        slot = next_populated_slot(employee, after, self.empty_markers)
        if slot is None:
            self._enter(row, WorkflowState.completed(), None)
            row.completed_at = when
            self.scoring.store_result(row)
            return [NotificationEvent(row.employee_id, NotificationKind.APPROVED, row.id)]

        occupant = slot_occupant(employee, slot)
        self._enter(row, WorkflowState.pending(slot), occupant)
        return [NotificationEvent(occupant, NotificationKind.APPROVAL_REQUIRED, row.id)]

    # ------------------- Lifecycle -------------------

    def create_assessment(
        self,
        title: str,
        target_level: str,
        employee_id: str | None = None,
        period: str | None = None,
    ) -> TransitionResult:
        """Create a DRAFT template, or an ASSIGNED assessment when an employee is given."""
        data = parse_input(
            AssessmentCreationInput,
            {
                "title": title,
                "target_level": target_level,
                "employee_id": employee_id,
                "period": period,
            },
        )
        if data.employee_id is not None:
            self.employees.get_required(data.employee_id)
            state = WorkflowState(Stage.SELF, Phase.ASSIGNED)
        else:
            state = WorkflowState(Stage.SELF, Phase.DRAFT)

        row = self.assessments.create_assessment(
            title=data.title,
            target_level=data.target_level,
            status=state.status.value,
            employee_id=data.employee_id,
            current_stage=data.employee_id,
            period=data.period,
        )
        logger.info(f"Created assessment {row.id} in {row.status}")
        return self._result(row)

    def assign(
        self, assessment_id: int, employee_id: str, expected_version: int | None = None
    ) -> TransitionResult:
        row, state = self._load(assessment_id, expected_version)
        if state.phase is not Phase.DRAFT:
            raise InvalidStateError(row.status, "assign")
        employee = self.employees.get_required(employee_id)

        row.employee_id = employee.emp_code
        self._enter(row, WorkflowState(Stage.SELF, Phase.ASSIGNED), employee.emp_code)
        self._flush(row)
        return self._result(row)

    def save_responses(
        self,
        assessment_id: int,
        actor: str,
        role: GraderRole | str,
        responses: Iterable[ResponseLike],
    ) -> TransitionResult:
        """
        Save a draft of the acting grader's scores without advancing the stage.

        The employee may save while ASSIGNED, IN_PROGRESS or REJECTED; the first
        save moves the assessment to IN_PROGRESS. An approver may save only
        while their own slot is pending.
        """
        role = GraderRole(role)
        row, state = self._load(assessment_id)

        if role is GraderRole.SELF:
            self._authorize_self(row, actor, "save")
            self._write_responses(row, role, responses)
            if state.phase in (Phase.ASSIGNED, Phase.REJECTED):
                self._enter(row, WorkflowState(Stage.SELF, Phase.IN_PROGRESS), row.employee_id)
        else:
            self._authorize_slot(row, state, ChainSlot.for_role(role), actor, "save")
            self._write_responses(row, role, responses)

        self._flush(row)
        return self._result(row)

    def submit(
        self,
        assessment_id: int,
        actor: str,
        responses: Iterable[ResponseLike] | None = None,
    ) -> TransitionResult:
        """
        Employee submission: upsert self scores, require every question in
        the set to be self-scored, then route to the first populated slot.
        The first submission fixes the question set for the assessment's life.

        An employee without any approver goes straight to COMPLETED.
        """
        row, _ = self._load(assessment_id)
        self._authorize_self(row, actor, "submit")
        self._write_responses(row, GraderRole.SELF, responses)
        if not self.scoring.is_frozen(row):
            self.scoring.freeze_question_set(row)
        self._require_complete(row, GraderRole.SELF)

        employee = self.employees.get_chain(row.employee_id)
        now = utcnow()
        self._start_new_round(row)
        row.submitted_at = now
        events = self._advance(row, employee, None, now)
        self._flush(row)
        return self._result(row, events)

    def approve(
        self,
        assessment_id: int,
        actor: str,
        role: GraderRole | str,
        responses: Iterable[ResponseLike] | None = None,
        note: str | None = None,
        expected_version: int | None = None,
    ) -> TransitionResult:
        role = GraderRole(role)
        if role is GraderRole.SELF:
            raise ValidationError(
                "role", "The employee cannot approve their own assessment", role.value
            )
        slot = ChainSlot.for_role(role)
        self._check_text("note", note, self.settings.workflow.max_note_length)

        row, state = self._load(assessment_id, expected_version)
        self._authorize_slot(row, state, slot, actor, "approve")
        self._write_responses(row, role, responses)
        if not slot.is_reviewer or self.settings.workflow.reviewers_must_score:
            self._require_complete(row, role)

        now = utcnow()
        self._record_decision(row, slot, StageDecision.APPROVED, now, note)
        row.approved_at = now
        employee = self.employees.get_chain(row.employee_id)
        events = self._advance(row, employee, slot, now)
        self._flush(row)
        return self._result(row, events)

    def reject(
        self,
        assessment_id: int,
        actor: str,
        role: GraderRole | str,
        reason: str,
        expected_version: int | None = None,
    ) -> TransitionResult:
        """Return a pending assessment to its employee with a reason."""
        role = GraderRole(role)
        if role is GraderRole.SELF:
            raise ValidationError(
                "role", "The employee cannot reject their own assessment", role.value
            )
        if reason is None or not reason.strip():
            raise ValidationError("reason", "A rejection reason is required", reason)
        reason = reason.strip()
        self._check_text("reason", reason, self.settings.workflow.max_reason_length)
        slot = ChainSlot.for_role(role)

        row, state = self._load(assessment_id, expected_version)
        self._authorize_slot(row, state, slot, actor, "reject")

        now = utcnow()
        self._record_decision(row, slot, StageDecision.REJECTED, now, reason)
        row.rejection_stage = role.value
        row.rejection_reason = reason
        self._enter(row, WorkflowState(Stage.SELF, Phase.REJECTED), row.employee_id)
        self._flush(row)
        return self._result(
            row, [NotificationEvent(row.employee_id, NotificationKind.REJECTED, row.id)]
        )

    def delete_draft(self, assessment_id: int) -> None:
        """Delete a template or an assigned assessment that nobody has started."""
        row, _ = self._load(assessment_id)
        status = AssessmentStatus(row.status)
        if status not in DELETABLE_STATUSES or self.responses.has_any_score(row.id):
            raise InvalidStateError(row.status, "delete")
        self.assessments.delete_assessment(row)
        logger.info(f"Deleted assessment {assessment_id}")

    # ------------------- Queries -------------------

    def calculate_result(self, assessment_id: int) -> ScoreResult | None:
        """Grand result; refreshes the stored score columns once the assessment is complete."""
        row, state = self._load(assessment_id)
        if state.is_terminal:
            result = self.scoring.store_result(row)
            self._flush(row)
            return result
        return self.scoring.compute_result(row)

    def view(self, assessment_id: int) -> dict[str, Any]:
        row, state = self._load(assessment_id)
        result = self.scoring.compute_result(row)
        return {
            "id": row.id,
            "title": row.title,
            "period": row.period,
            "employee_id": row.employee_id,
            "target_level": row.target_level,
            "status": row.status,
            "current_stage": row.current_stage,
            "version": row.version,
            "workflow_state": {"stage": state.stage.value, "phase": state.phase.value},
            "audit": [
                {
                    "slot": entry.slot.value,
                    "status": entry.status,
                    "date": _iso(entry.date),
                    "note": entry.note,
                }
                for entry in audit_trail(row)
            ],
            "rejection": {"stage": row.rejection_stage, "reason": row.rejection_reason},
            "grader_scores": self.scoring.compute_grader_scores(row),
            "progress": {role.value: self.scoring.progress(row, role) for role in GraderRole},
            "result": asdict(result) if result is not None else None,
            "submitted_at": _iso(row.submitted_at),
            "completed_at": _iso(row.completed_at),
            "approved_at": _iso(row.approved_at),
            "created_at": _iso(row.created_at),
            "updated_at": _iso(row.updated_at),
        }
