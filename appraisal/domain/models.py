from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class AssessmentStatus(str, Enum):
    DRAFT = "DRAFT"
    ASSIGNED = "ASSIGNED"
    IN_PROGRESS = "IN_PROGRESS"
    SUBMITTED_APPR1 = "SUBMITTED_APPR1"
    SUBMITTED_APPR2 = "SUBMITTED_APPR2"
    SUBMITTED_APPR3 = "SUBMITTED_APPR3"
    SUBMITTED_MGR = "SUBMITTED_MGR"
    SUBMITTED_GM = "SUBMITTED_GM"
    COMPLETED = "COMPLETED"
    REJECTED = "REJECTED"


class GraderRole(str, Enum):
    """Column suffix used for a grader's score/comment pair on a response."""

    SELF = "self"
    APPR1 = "appr1"
    APPR2 = "appr2"
    APPR3 = "appr3"
    MGR = "mgr"
    GM = "gm"

    @property
    def score_field(self) -> str:
        return f"score_{self.value}"

    @property
    def comment_field(self) -> str:
        return f"comment_{self.value}"


class ChainSlot(str, Enum):
    """The five approval chain slots, declared in approval order."""

    APPROVER1 = "approver1"
    APPROVER2 = "approver2"
    APPROVER3 = "approver3"
    MANAGER = "manager"
    GM = "gm"

    @property
    def position(self) -> int:
        return CHAIN_SLOTS.index(self)

    @property
    def role(self) -> GraderRole:
        return _SLOT_ROLES[self]

    @property
    def pending_status(self) -> AssessmentStatus:
        return _SLOT_STATUSES[self]

    @property
    def is_reviewer(self) -> bool:
        """Manager and GM review prior scores; they are not required to score."""
        return self in (ChainSlot.MANAGER, ChainSlot.GM)

    @classmethod
    def for_role(cls, role: GraderRole | str) -> ChainSlot:
        role = GraderRole(role)
        for slot, slot_role in _SLOT_ROLES.items():
            if slot_role is role:
                return slot
        raise ValueError(f"Role {role.value!r} is not an approval chain slot")

    @classmethod
    def for_status(cls, status: AssessmentStatus | str) -> ChainSlot | None:
        status = AssessmentStatus(status)
        for slot, slot_status in _SLOT_STATUSES.items():
            if slot_status is status:
                return slot
        return None


CHAIN_SLOTS: tuple[ChainSlot, ...] = tuple(ChainSlot)

_SLOT_ROLES = {
    ChainSlot.APPROVER1: GraderRole.APPR1,
    ChainSlot.APPROVER2: GraderRole.APPR2,
    ChainSlot.APPROVER3: GraderRole.APPR3,
    ChainSlot.MANAGER: GraderRole.MGR,
    ChainSlot.GM: GraderRole.GM,
}

_SLOT_STATUSES = {
    ChainSlot.APPROVER1: AssessmentStatus.SUBMITTED_APPR1,
    ChainSlot.APPROVER2: AssessmentStatus.SUBMITTED_APPR2,
    ChainSlot.APPROVER3: AssessmentStatus.SUBMITTED_APPR3,
    ChainSlot.MANAGER: AssessmentStatus.SUBMITTED_MGR,
    ChainSlot.GM: AssessmentStatus.SUBMITTED_GM,
}


class Stage(str, Enum):
    SELF = "self"
    DONE = "done"


class Phase(str, Enum):
    DRAFT = "draft"
    ASSIGNED = "assigned"
    IN_PROGRESS = "in_progress"
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class StageDecision(str, Enum):
    """Value stored in a slot's audit status column."""

    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


@dataclass(frozen=True, slots=True)
class WorkflowState:
    """
    Where an assessment is in its lifecycle: whose turn it is and in what phase.

    The persisted ``status`` string is derived from this pair, never kept
    in sync by hand.
    """

    stage: ChainSlot | Stage
    phase: Phase

    @property
    def status(self) -> AssessmentStatus:
        if isinstance(self.stage, ChainSlot):
            return self.stage.pending_status
        return _STATE_STATUSES[(self.stage, self.phase)]

    @property
    def slot(self) -> ChainSlot | None:
        return self.stage if isinstance(self.stage, ChainSlot) else None

    @property
    def is_terminal(self) -> bool:
        return self.stage is Stage.DONE

    @classmethod
    def pending(cls, slot: ChainSlot) -> WorkflowState:
        return cls(slot, Phase.PENDING)

    @classmethod
    def completed(cls) -> WorkflowState:
        return cls(Stage.DONE, Phase.APPROVED)

    @classmethod
    def from_status(cls, status: AssessmentStatus | str) -> WorkflowState:
        status = AssessmentStatus(status)
        slot = ChainSlot.for_status(status)
        if slot is not None:
            return cls.pending(slot)
        for key, value in _STATE_STATUSES.items():
            if value is status:
                return cls(*key)
        raise ValueError(f"Unknown assessment status: {status}")


_STATE_STATUSES = {
    (Stage.SELF, Phase.DRAFT): AssessmentStatus.DRAFT,
    (Stage.SELF, Phase.ASSIGNED): AssessmentStatus.ASSIGNED,
    (Stage.SELF, Phase.IN_PROGRESS): AssessmentStatus.IN_PROGRESS,
    (Stage.SELF, Phase.REJECTED): AssessmentStatus.REJECTED,
    (Stage.DONE, Phase.APPROVED): AssessmentStatus.COMPLETED,
}


@dataclass(slots=True)
class Employee:
    emp_code: str
    approver1: str | None = None
    approver2: str | None = None
    approver3: str | None = None
    manager: str | None = None
    gm: str | None = None
    warning_count: int = 0
    name: str | None = None
    email: str | None = None

    @property
    def chain(self) -> tuple[str | None, ...]:
        return (self.approver1, self.approver2, self.approver3, self.manager, self.gm)

    def occupant(self, slot: ChainSlot) -> str | None:
        return self.chain[slot.position]


@dataclass(slots=True)
class Question:
    id: int
    weight: float
    max_score: int = 5
    applicable_level: str | None = None
    order: int = 0
    title: str | None = None


@dataclass(slots=True)
class ResponseScores:
    """One response row as seen by the scoring functions."""

    question_id: int
    scores: dict[str, float | None] = field(default_factory=dict)
    comments: dict[str, str | None] = field(default_factory=dict)
    question_weight: float | None = None
    question_max_score: int | None = None

    def score_for(self, role: GraderRole | str) -> float | None:
        return self.scores.get(GraderRole(role).value)


@dataclass(slots=True)
class ScoreResult:
    total_score: float
    warning_deduction: float
    net_score: float
    rank: str
    grader_scores: dict[str, float] = field(default_factory=dict)


class NotificationKind(str, Enum):
    APPROVAL_REQUIRED = "ApprovalRequired"
    APPROVED = "Approved"
    REJECTED = "Rejected"


@dataclass(frozen=True, slots=True)
class NotificationEvent:
    target_emp_code: str
    kind: NotificationKind
    assessment_id: int


@dataclass(slots=True)
class TransitionResult:
    assessment_id: int
    status: AssessmentStatus
    current_stage: str | None
    version: int
    events: list[NotificationEvent] = field(default_factory=list)
    undelivered: list[NotificationEvent] = field(default_factory=list)


@dataclass(slots=True)
class StageAudit:
    slot: ChainSlot
    status: str | None
    date: datetime | None
    note: str | None
