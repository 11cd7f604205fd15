"""
Notification delivery for workflow events.

The state machine only produces :class:`NotificationEvent` values. Emitters
deliver them after the transition has committed, so a delivery failure can
never undo a transition; failed events are handed back to the caller for a
later retry.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Protocol, runtime_checkable

from sqlalchemy.orm import sessionmaker

from ..domain.models import NotificationEvent, NotificationKind
from .exceptions import NotificationError, log_error_details
from .logging import LogContext, get_logger
from .repositories_notification import NotificationRepo
from .uow import UnitOfWork

logger = get_logger(__name__)

TITLES = {
    NotificationKind.APPROVAL_REQUIRED: "Assessment awaiting your approval",
    NotificationKind.APPROVED: "Assessment completed",
    NotificationKind.REJECTED: "Assessment returned for revision",
}

MESSAGES = {
    NotificationKind.APPROVAL_REQUIRED: "Assessment #{id} was submitted and needs your review.",
    NotificationKind.APPROVED: "Assessment #{id} has been approved by every reviewer.",
    NotificationKind.REJECTED: "Assessment #{id} was rejected. Please revise and resubmit.",
}


@runtime_checkable
class NotificationEmitter(Protocol):
    def notify(self, target_emp_code: str, kind: NotificationKind, assessment_id: int) -> None: ...


class DatabaseNotificationEmitter:
    """Writes inbox rows in a transaction of its own."""

    def __init__(self, SessionLocal: sessionmaker):
        self.uow = UnitOfWork(SessionLocal)

    def notify(self, target_emp_code: str, kind: NotificationKind, assessment_id: int) -> None:
        kind = NotificationKind(kind)
        with self.uow.begin() as s:
            NotificationRepo(s).add(
                user_id=target_emp_code,
                kind=kind.value,
                title=TITLES[kind],
                message=MESSAGES[kind].format(id=assessment_id),
                assessment_id=assessment_id,
            )


class LoggingNotificationEmitter:
    def __init__(self, logger: logging.Logger | None = None):
        self.logger = logger or get_logger("notifications")

    def notify(self, target_emp_code: str, kind: NotificationKind, assessment_id: int) -> None:
        kind = NotificationKind(kind)
        self.logger.info(f"Notify {target_emp_code}: {kind.value} for assessment {assessment_id}")


def dispatch_notifications(
    emitter: NotificationEmitter, events: Iterable[NotificationEvent]
) -> list[NotificationEvent]:
    """
    Deliver ``events`` one by one and return the ones that failed.

    Failures are logged and never raised; pass the returned list back in to
    retry.
    """
    undelivered: list[NotificationEvent] = []
    for event in events:
        with LogContext(assessment_id=event.assessment_id):
            try:
                emitter.notify(event.target_emp_code, event.kind, event.assessment_id)
            except Exception as e:
                error = NotificationError(
                    str(e), target=event.target_emp_code, kind=event.kind.value
                )
                logger.warning(
                    f"Notification to {event.target_emp_code} failed: {e}",
                    extra=log_error_details(error, {"event": event.kind.value}),
                )
                undelivered.append(event)
    return undelivered
