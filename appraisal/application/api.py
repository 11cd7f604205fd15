"""
Application API layer for the appraisal workflow.

Every transition runs in its own unit of work. Known failures surface as
``AppraisalError`` subclasses with stable codes; anything unexpected is
wrapped into an ``AppraisalError`` (``INTERNAL_ERROR``) so nothing escapes
the boundary as a raw fault. Notification events are dispatched only after
the transaction commits, and delivery failures are reported back in
``TransitionResult.undelivered`` instead of failing the call.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from typing import Any, TypeVar

import pandas as pd
from sqlalchemy.orm import Session, sessionmaker

from ..domain.models import (
    GraderRole,
    NotificationEvent,
    ScoreResult,
    TransitionResult,
)
from ..domain.schemas import ApproveInput, RejectInput, SaveResponsesInput, SubmitInput
from ..domain.workflow import AssessmentWorkflow, ResponseLike, parse_input
from ..infrastructure.exceptions import (
    AppraisalError,
    create_user_friendly_error_message,
    log_error_details,
)
from ..infrastructure.logging import LogContext, get_logger, log_operation
from ..infrastructure.models import QuestionORM, ResponseORM
from ..infrastructure.notifications import NotificationEmitter, dispatch_notifications
from ..infrastructure.repositories import AssessmentRepo, NotificationRepo
from ..infrastructure.uow import UnitOfWork

logger = get_logger(__name__)

R = TypeVar("R")

RESPONSE_TABLE_COLUMNS = [
    "QuestionID",
    "Question",
    "Weight",
    "MaxScore",
    *[f"Score_{role.value}" for role in GraderRole],
    *[f"Comment_{role.value}" for role in GraderRole],
]


def _wrap_unexpected(e: Exception, operation: str, context: dict[str, Any]) -> AppraisalError:
    error_details = log_error_details(e, context)
    logger.error(f"Unexpected failure during {operation}", extra=error_details)
    return AppraisalError(
        f"Failed to {operation.replace('_', ' ')}: {e}",
        details={"operation": operation, **context},
        user_message=create_user_friendly_error_message(e),
    )


def _run_in_transaction(
    SessionLocal: sessionmaker,
    operation: str,
    work: Callable[[Session], R],
    **context: Any,
) -> R:
    with LogContext(**context):
        try:
            with UnitOfWork(SessionLocal).begin() as s:
                return work(s)
        except AppraisalError as e:
            logger.warning(
                f"{operation} rejected: {e.message}", extra=log_error_details(e, context)
            )
            raise
        except Exception as e:
            raise _wrap_unexpected(e, operation, context) from e


def _notify(
    result: TransitionResult, emitter: NotificationEmitter | None
) -> TransitionResult:
    if emitter is not None and result.events:
        result.undelivered = dispatch_notifications(emitter, result.events)
        if result.undelivered:
            logger.warning(
                f"{len(result.undelivered)} notification(s) for assessment "
                f"{result.assessment_id} were not delivered"
            )
    return result


# ------------------- Transitions -------------------


@log_operation("create_assessment")
def create_assessment(
    SessionLocal: sessionmaker,
    title: str,
    target_level: str,
    employee_id: str | None = None,
    period: str | None = None,
) -> TransitionResult:
    """
    Create a DRAFT assessment template, or an ASSIGNED one for ``employee_id``.

    Example:
        >>> result = create_assessment(SessionLocal, "FY26 review", "Staff", "E001")
        >>> result.status
        <AssessmentStatus.ASSIGNED: 'ASSIGNED'>
    """
    return _run_in_transaction(
        SessionLocal,
        "create_assessment",
        lambda s: AssessmentWorkflow(s).create_assessment(
            title, target_level, employee_id=employee_id, period=period
        ),
        actor=employee_id,
    )


@log_operation("assign_assessment")
def assign_assessment(
    SessionLocal: sessionmaker,
    assessment_id: int,
    employee_id: str,
    expected_version: int | None = None,
) -> TransitionResult:
    return _run_in_transaction(
        SessionLocal,
        "assign_assessment",
        lambda s: AssessmentWorkflow(s).assign(assessment_id, employee_id, expected_version),
        assessment_id=assessment_id,
    )


@log_operation("save_responses")
def save_responses(
    SessionLocal: sessionmaker,
    assessment_id: int,
    actor: str,
    role: GraderRole | str,
    responses: Iterable[ResponseLike],
) -> TransitionResult:
    """Save a draft of one grader's scores without moving the assessment forward."""
    data = parse_input(
        SaveResponsesInput, {"actor": actor, "role": role, "responses": _as_dicts(responses)}
    )
    return _run_in_transaction(
        SessionLocal,
        "save_responses",
        lambda s: AssessmentWorkflow(s).save_responses(
            assessment_id, data.actor, data.role, data.responses
        ),
        assessment_id=assessment_id,
        actor=data.actor,
        role=data.role.value,
    )


@log_operation("submit_self_assessment")
def submit_self_assessment(
    SessionLocal: sessionmaker,
    assessment_id: int,
    actor: str,
    responses: Iterable[ResponseLike] | None = None,
    emitter: NotificationEmitter | None = None,
) -> TransitionResult:
    """
    Submit the employee's self-assessment and route it to the first approver.

    Raises:
        IncompleteScoresError: if any applicable question lacks a self score
        AuthorizationError: if ``actor`` is not the assessed employee
    """
    data = parse_input(SubmitInput, {"actor": actor, "responses": _as_dicts(responses)})
    result = _run_in_transaction(
        SessionLocal,
        "submit_self_assessment",
        lambda s: AssessmentWorkflow(s).submit(assessment_id, data.actor, data.responses),
        assessment_id=assessment_id,
        actor=data.actor,
        role=GraderRole.SELF.value,
    )
    return _notify(result, emitter)


@log_operation("approve_assessment")
def approve(
    SessionLocal: sessionmaker,
    assessment_id: int,
    actor: str,
    role: GraderRole | str,
    responses: Iterable[ResponseLike] | None = None,
    note: str | None = None,
    expected_version: int | None = None,
    emitter: NotificationEmitter | None = None,
) -> TransitionResult:
    data = parse_input(
        ApproveInput,
        {
            "actor": actor,
            "role": role,
            "responses": _as_dicts(responses),
            "note": note,
            "expected_version": expected_version,
        },
    )
    result = _run_in_transaction(
        SessionLocal,
        "approve_assessment",
        lambda s: AssessmentWorkflow(s).approve(
            assessment_id,
            data.actor,
            data.role,
            responses=data.responses,
            note=data.note,
            expected_version=data.expected_version,
        ),
        assessment_id=assessment_id,
        actor=data.actor,
        role=data.role.value,
    )
    return _notify(result, emitter)


@log_operation("reject_assessment")
def reject(
    SessionLocal: sessionmaker,
    assessment_id: int,
    actor: str,
    role: GraderRole | str,
    reason: str,
    expected_version: int | None = None,
    emitter: NotificationEmitter | None = None,
) -> TransitionResult:
    data = parse_input(
        RejectInput,
        {"actor": actor, "role": role, "reason": reason, "expected_version": expected_version},
    )
    result = _run_in_transaction(
        SessionLocal,
        "reject_assessment",
        lambda s: AssessmentWorkflow(s).reject(
            assessment_id, data.actor, data.role, data.reason, data.expected_version
        ),
        assessment_id=assessment_id,
        actor=data.actor,
        role=data.role.value,
    )
    return _notify(result, emitter)


@log_operation("delete_assessment")
def delete_draft(SessionLocal: sessionmaker, assessment_id: int) -> None:
    _run_in_transaction(
        SessionLocal,
        "delete_assessment",
        lambda s: AssessmentWorkflow(s).delete_draft(assessment_id),
        assessment_id=assessment_id,
    )


@log_operation("calculate_result")
def calculate_result(SessionLocal: sessionmaker, assessment_id: int) -> ScoreResult | None:
    return _run_in_transaction(
        SessionLocal,
        "calculate_result",
        lambda s: AssessmentWorkflow(s).calculate_result(assessment_id),
        assessment_id=assessment_id,
    )


def retry_notifications(
    emitter: NotificationEmitter, events: Iterable[NotificationEvent]
) -> list[NotificationEvent]:
    """Re-dispatch previously undelivered events; returns the ones that still failed."""
    return dispatch_notifications(emitter, events)


def _as_dicts(responses: Iterable[ResponseLike] | None) -> list[Any]:
    if not responses:
        return []
    return [r.model_dump() if hasattr(r, "model_dump") else dict(r) for r in responses]


# ------------------- Queries -------------------


@log_operation("get_assessment_view")
def get_assessment_view(session: Session, assessment_id: int) -> dict[str, Any]:
    """Status, stage, audit trail and scores of one assessment."""
    try:
        return AssessmentWorkflow(session).view(assessment_id)
    except AppraisalError:
        raise
    except Exception as e:
        raise _wrap_unexpected(e, "get_assessment_view", {"assessment_id": assessment_id}) from e


@log_operation("build_response_table")
def response_table(session: Session, assessment_id: int) -> pd.DataFrame:
    """
    One row per response with every grader's score and comment.

    Returns:
        DataFrame with columns QuestionID, Question, Weight, MaxScore, then
        ``Score_<role>`` and ``Comment_<role>`` for each grader role.
    """
    AssessmentRepo(session).get_required(assessment_id)
    rows = (
        session.query(ResponseORM, QuestionORM.title)
        .join(QuestionORM, QuestionORM.id == ResponseORM.question_id)
        .filter(ResponseORM.assessment_id == assessment_id)
        .order_by(QuestionORM.order, QuestionORM.id)
        .all()
    )
    records = []
    for response, title in rows:
        record: dict[str, Any] = {
            "QuestionID": response.question_id,
            "Question": title,
            "Weight": response.question_weight,
            "MaxScore": response.question_max_score,
        }
        for role in GraderRole:
            record[f"Score_{role.value}"] = getattr(response, role.score_field)
            record[f"Comment_{role.value}"] = getattr(response, role.comment_field)
        records.append(record)

    df = pd.DataFrame.from_records(records, columns=RESPONSE_TABLE_COLUMNS)
    logger.info(f"Built response table for assessment {assessment_id} with {len(df)} rows")
    return df


@log_operation("list_awaiting_action")
def list_awaiting_action(session: Session, emp_code: str) -> list[dict[str, Any]]:
    """Assessments whose next step belongs to ``emp_code``."""
    return [
        {
            "id": row.id,
            "title": row.title,
            "employee_id": row.employee_id,
            "status": row.status,
            "version": row.version,
        }
        for row in AssessmentRepo(session).list_awaiting(emp_code)
    ]


# ------------------- Notifications inbox -------------------


def _notification_dict(row) -> dict[str, Any]:
    return {
        "id": row.id,
        "user_id": row.user_id,
        "kind": row.kind,
        "title": row.title,
        "message": row.message,
        "assessment_id": row.assessment_id,
        "is_read": row.is_read,
        "created_at": row.created_at.isoformat() if row.created_at else None,
    }


@log_operation("list_notifications")
def list_notifications(
    session: Session, emp_code: str, unread_only: bool = True, limit: int = 50
) -> list[dict[str, Any]]:
    return [
        _notification_dict(n)
        for n in NotificationRepo(session).list_for_user(emp_code, unread_only, limit)
    ]


def unread_notification_count(session: Session, emp_code: str) -> int:
    return NotificationRepo(session).unread_count(emp_code)


@log_operation("mark_notification_read")
def mark_notification_read(
    SessionLocal: sessionmaker, notification_id: int, emp_code: str | None = None
) -> dict[str, Any]:
    return _run_in_transaction(
        SessionLocal,
        "mark_notification_read",
        lambda s: _notification_dict(NotificationRepo(s).mark_read(notification_id, emp_code)),
        actor=emp_code,
    )


@log_operation("mark_all_notifications_read")
def mark_all_notifications_read(SessionLocal: sessionmaker, emp_code: str) -> int:
    return _run_in_transaction(
        SessionLocal,
        "mark_all_notifications_read",
        lambda s: NotificationRepo(s).mark_all_read(emp_code),
        actor=emp_code,
    )


@log_operation("delete_read_notifications")
def delete_read_notifications(SessionLocal: sessionmaker, emp_code: str) -> int:
    return _run_in_transaction(
        SessionLocal,
        "delete_read_notifications",
        lambda s: NotificationRepo(s).delete_read(emp_code),
        actor=emp_code,
    )


@log_operation("delete_notification")
def delete_notification(SessionLocal: sessionmaker, notification_id: int, emp_code: str) -> None:
    """Remove one notification from ``emp_code``'s inbox."""
    _run_in_transaction(
        SessionLocal,
        "delete_notification",
        lambda s: NotificationRepo(s).delete_for_user(notification_id, emp_code),
        actor=emp_code,
    )
