# appraisal/infrastructure/repositories_notification.py
from __future__ import annotations

from sqlalchemy.exc import SQLAlchemyError

from .exceptions import NotFoundError
from .logging import log_database_operation as log_op
from .models import NotificationORM
from .repositories_base import BaseRepository

INBOX_LIMIT = 50


class NotificationRepo(BaseRepository[NotificationORM]):
    """Per-user notification inbox."""

    model = NotificationORM
    resource_name = "Notification"

    @log_op("create_notification")
    def add(
        self,
        user_id: str,
        kind: str,
        title: str,
        message: str,
        assessment_id: int | None = None,
    ) -> NotificationORM:
        try:
            return self.create(
                user_id=user_id,
                kind=kind,
                title=title,
                message=message,
                assessment_id=assessment_id,
            )
        except SQLAlchemyError as e:
            self._handle_error(e, "create_notification")

    @log_op("list_notifications")
    def list_for_user(
        self, user_id: str, unread_only: bool = True, limit: int = INBOX_LIMIT
    ) -> list[NotificationORM]:
        filters = [NotificationORM.user_id == user_id]
        if unread_only:
            filters.append(NotificationORM.is_read.is_(False))
        return self.list(
            *filters,
            order_by=[NotificationORM.created_at.desc(), NotificationORM.id.desc()],
            limit=limit,
        )

    def unread_count(self, user_id: str) -> int:
        return self.count(NotificationORM.user_id == user_id, NotificationORM.is_read.is_(False))

    @log_op("mark_notification_read")
    def _owned(self, notification_id: int, user_id: str | None) -> NotificationORM:
        # Someone else's notification is reported as missing, not forbidden.
        row = self.get(notification_id)
        if row is None or (user_id is not None and row.user_id != user_id):
            raise NotFoundError("Notification", notification_id)
        return row

    def mark_read(self, notification_id: int, user_id: str | None = None) -> NotificationORM:
        """Mark one notification read; ``user_id`` restricts it to its owner's inbox."""
        return self.update(self._owned(notification_id, user_id), is_read=True)

    @log_op("delete_notification")
    def delete_for_user(self, notification_id: int, user_id: str) -> None:
        self.delete(self._owned(notification_id, user_id))

    @log_op("mark_all_notifications_read")
    def mark_all_read(self, user_id: str) -> int:
        try:
            updated = (
                self.s.query(NotificationORM)
                .filter(NotificationORM.user_id == user_id, NotificationORM.is_read.is_(False))
                .update({NotificationORM.is_read: True}, synchronize_session="fetch")
            )
            self.s.flush()
            return int(updated)
        except SQLAlchemyError as e:
            self._handle_error(e, "mark_all_notifications_read")

    @log_op("delete_read_notifications")
    def delete_read(self, user_id: str) -> int:
        try:
            deleted = (
                self.s.query(NotificationORM)
                .filter(NotificationORM.user_id == user_id, NotificationORM.is_read.is_(True))
                .delete(synchronize_session="fetch")
            )
            self.s.flush()
            return int(deleted)
        except SQLAlchemyError as e:
            self._handle_error(e, "delete_read_notifications")
