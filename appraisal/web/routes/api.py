from __future__ import annotations

from dataclasses import asdict

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.orm import Session, sessionmaker

from appraisal.application import api as app_api
from appraisal.domain.models import NotificationEvent, TransitionResult
from appraisal.infrastructure.exceptions import AuthorizationError
from appraisal.infrastructure.notifications import NotificationEmitter
from appraisal.web.dependencies import (
    get_actor,
    get_db_session,
    get_emitter,
    get_session_factory,
)
from appraisal.web.schemas import (
    ApproveRequest,
    AssessmentCreateRequest,
    AssessmentView,
    AssignRequest,
    NotificationItem,
    NotificationList,
    RejectRequest,
    ResultResponse,
    SaveResponsesRequest,
    ScoreResultModel,
    SubmitRequest,
    TransitionResponse,
)

router = APIRouter(prefix="/api")


def _event_dict(event: NotificationEvent) -> dict[str, object]:
    return {
        "target_emp_code": event.target_emp_code,
        "kind": event.kind.value,
        "assessment_id": event.assessment_id,
    }


def _transition_response(result: TransitionResult) -> TransitionResponse:
    return TransitionResponse(
        assessment_id=result.assessment_id,
        status=result.status.value,
        current_stage=result.current_stage,
        version=result.version,
        events=[_event_dict(e) for e in result.events],
        undelivered=[_event_dict(e) for e in result.undelivered],
    )


def _require_owner(actor: str, emp_code: str) -> None:
    if actor != emp_code:
        raise AuthorizationError(f"{actor} may not manage the inbox of {emp_code}", actor=actor)


@router.get("/health")
async def healthcheck() -> dict[str, str]:
    return {"status": "ok"}


@router.post(
    "/assessments", response_model=TransitionResponse, status_code=status.HTTP_201_CREATED
)
def create_assessment(
    payload: AssessmentCreateRequest,
    factory: sessionmaker = Depends(get_session_factory),
) -> TransitionResponse:
    result = app_api.create_assessment(
        factory,
        title=payload.title,
        target_level=payload.target_level,
        employee_id=payload.employee_id,
        period=payload.period,
    )
    return _transition_response(result)


@router.post("/assessments/{assessment_id}/assign", response_model=TransitionResponse)
def assign_assessment(
    assessment_id: int,
    payload: AssignRequest,
    factory: sessionmaker = Depends(get_session_factory),
) -> TransitionResponse:
    result = app_api.assign_assessment(
        factory, assessment_id, payload.employee_id, payload.expected_version
    )
    return _transition_response(result)


@router.get("/assessments/{assessment_id}", response_model=AssessmentView)
def get_assessment(assessment_id: int, db: Session = Depends(get_db_session)) -> AssessmentView:
    return AssessmentView(**app_api.get_assessment_view(db, assessment_id))


@router.delete("/assessments/{assessment_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_assessment(
    assessment_id: int,
    factory: sessionmaker = Depends(get_session_factory),
) -> Response:
    app_api.delete_draft(factory, assessment_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/assessments/{assessment_id}/responses")
def list_responses(
    assessment_id: int, db: Session = Depends(get_db_session)
) -> list[dict[str, object]]:
    df = app_api.response_table(db, assessment_id)
    return df.astype(object).where(df.notna(), None).to_dict(orient="records")


@router.put("/assessments/{assessment_id}/responses", response_model=TransitionResponse)
def save_responses(
    assessment_id: int,
    payload: SaveResponsesRequest,
    actor: str = Depends(get_actor),
    factory: sessionmaker = Depends(get_session_factory),
) -> TransitionResponse:
    result = app_api.save_responses(
        factory,
        assessment_id,
        actor,
        payload.role,
        [r.model_dump() for r in payload.responses],
    )
    return _transition_response(result)


@router.post("/assessments/{assessment_id}/submit", response_model=TransitionResponse)
def submit_assessment(
    assessment_id: int,
    payload: SubmitRequest,
    actor: str = Depends(get_actor),
    factory: sessionmaker = Depends(get_session_factory),
    emitter: NotificationEmitter = Depends(get_emitter),
) -> TransitionResponse:
    result = app_api.submit_self_assessment(
        factory,
        assessment_id,
        actor,
        [r.model_dump() for r in payload.responses],
        emitter=emitter,
    )
    return _transition_response(result)


@router.post("/assessments/{assessment_id}/approve", response_model=TransitionResponse)
def approve_assessment(
    assessment_id: int,
    payload: ApproveRequest,
    actor: str = Depends(get_actor),
    factory: sessionmaker = Depends(get_session_factory),
    emitter: NotificationEmitter = Depends(get_emitter),
) -> TransitionResponse:
    result = app_api.approve(
        factory,
        assessment_id,
        actor,
        payload.role,
        responses=[r.model_dump() for r in payload.responses],
        note=payload.note,
        expected_version=payload.expected_version,
        emitter=emitter,
    )
    return _transition_response(result)


@router.post("/assessments/{assessment_id}/reject", response_model=TransitionResponse)
def reject_assessment(
    assessment_id: int,
    payload: RejectRequest,
    actor: str = Depends(get_actor),
    factory: sessionmaker = Depends(get_session_factory),
    emitter: NotificationEmitter = Depends(get_emitter),
) -> TransitionResponse:
    result = app_api.reject(
        factory,
        assessment_id,
        actor,
        payload.role,
        payload.reason,
        expected_version=payload.expected_version,
        emitter=emitter,
    )
    return _transition_response(result)


@router.get("/assessments/{assessment_id}/result", response_model=ResultResponse)
def get_result(
    assessment_id: int,
    factory: sessionmaker = Depends(get_session_factory),
) -> ResultResponse:
    result = app_api.calculate_result(factory, assessment_id)
    return ResultResponse(
        assessment_id=assessment_id,
        result=ScoreResultModel(**asdict(result)) if result is not None else None,
    )


@router.get("/employees/{emp_code}/awaiting")
def list_awaiting(emp_code: str, db: Session = Depends(get_db_session)) -> list[dict[str, object]]:
    return app_api.list_awaiting_action(db, emp_code)


@router.get("/employees/{emp_code}/notifications", response_model=NotificationList)
def list_notifications(
    emp_code: str,
    unread_only: bool = Query(default=True),
    limit: int = Query(default=50, ge=1, le=200),
    db: Session = Depends(get_db_session),
) -> NotificationList:
    items = app_api.list_notifications(db, emp_code, unread_only=unread_only, limit=limit)
    return NotificationList(
        unread_count=app_api.unread_notification_count(db, emp_code),
        items=[NotificationItem(**item) for item in items],
    )


@router.post("/employees/{emp_code}/notifications/read-all")
def mark_all_read(
    emp_code: str,
    actor: str = Depends(get_actor),
    factory: sessionmaker = Depends(get_session_factory),
) -> dict[str, int]:
    _require_owner(actor, emp_code)
    return {"updated": app_api.mark_all_notifications_read(factory, emp_code)}


@router.delete("/employees/{emp_code}/notifications/read")
def delete_read(
    emp_code: str,
    actor: str = Depends(get_actor),
    factory: sessionmaker = Depends(get_session_factory),
) -> dict[str, int]:
    _require_owner(actor, emp_code)
    return {"deleted": app_api.delete_read_notifications(factory, emp_code)}


@router.post("/notifications/{notification_id}/read", response_model=NotificationItem)
def mark_read(
    notification_id: int,
    actor: str = Depends(get_actor),
    factory: sessionmaker = Depends(get_session_factory),
) -> NotificationItem:
    return NotificationItem(**app_api.mark_notification_read(factory, notification_id, actor))


@router.delete("/notifications/{notification_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_notification(
    notification_id: int,
    actor: str = Depends(get_actor),
    factory: sessionmaker = Depends(get_session_factory),
) -> Response:
    app_api.delete_notification(factory, notification_id, actor)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
