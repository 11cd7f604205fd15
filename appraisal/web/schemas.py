from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field

from appraisal.domain.models import GraderRole


class ResponseItem(BaseModel):
    question_id: int
    score: Optional[float] = Field(default=None, ge=0)
    comment: Optional[str] = None


class AssessmentCreateRequest(BaseModel):
    title: str
    target_level: str
    employee_id: Optional[str] = None
    period: Optional[str] = None


class AssignRequest(BaseModel):
    employee_id: str
    expected_version: Optional[int] = None


class SaveResponsesRequest(BaseModel):
    role: GraderRole
    responses: list[ResponseItem] = []


class SubmitRequest(BaseModel):
    responses: list[ResponseItem] = []


class ApproveRequest(BaseModel):
    role: GraderRole
    responses: list[ResponseItem] = []
    note: Optional[str] = None
    expected_version: Optional[int] = None


class RejectRequest(BaseModel):
    role: GraderRole
    reason: str
    expected_version: Optional[int] = None


class NotificationEventModel(BaseModel):
    target_emp_code: str
    kind: str
    assessment_id: int


class TransitionResponse(BaseModel):
    assessment_id: int
    status: str
    current_stage: Optional[str] = None
    version: int
    events: list[NotificationEventModel] = []
    undelivered: list[NotificationEventModel] = []


class StageAuditEntry(BaseModel):
    slot: str
    status: Optional[str] = None
    date: Optional[str] = None
    note: Optional[str] = None


class ScoreResultModel(BaseModel):
    total_score: float
    warning_deduction: float
    net_score: float
    rank: str
    grader_scores: dict[str, float] = {}


class ResponseProgress(BaseModel):
    total_questions: int
    completed: int
    pending: int
    completion_rate: float
    average_score: Optional[float] = None


class AssessmentView(BaseModel):
    id: int
    title: str
    period: Optional[str] = None
    employee_id: Optional[str] = None
    target_level: str
    status: str
    current_stage: Optional[str] = None
    version: int
    workflow_state: dict[str, str]
    audit: list[StageAuditEntry]
    rejection: dict[str, Optional[str]]
    grader_scores: dict[str, Optional[float]]
    progress: dict[str, ResponseProgress] = {}
    result: Optional[ScoreResultModel] = None
    submitted_at: Optional[str] = None
    completed_at: Optional[str] = None
    approved_at: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class ResultResponse(BaseModel):
    assessment_id: int
    result: Optional[ScoreResultModel] = None


class NotificationItem(BaseModel):
    id: int
    user_id: str
    kind: str
    title: str
    message: str
    assessment_id: Optional[int] = None
    is_read: bool
    created_at: Optional[datetime] = None


class NotificationList(BaseModel):
    unread_count: int
    items: list[NotificationItem]


class ErrorBody(BaseModel):
    code: str
    message: str
    details: dict[str, Any] = {}


class ErrorResponse(BaseModel):
    error: ErrorBody
