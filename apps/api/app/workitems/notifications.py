from __future__ import annotations

import logging
import uuid
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Protocol

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from app.core.config import get_settings
from app.metrics import observe_notification
from app.workitems.errors import DeliveryFailureError, NotFoundError
from app.workitems.models import Notification, utcnow
from app.workitems.repository import store_guard
from app.workitems.statuses import KIND_LABELS, WorkItemKind


logger = logging.getLogger("app.workitems.notifications")


@dataclass(frozen=True)
class NotificationMessage:
    subject: str
    body: str
    link: str | None = None


def status_update_message(kind: WorkItemKind, title: str, old_label: str, new_label: str, link: str) -> NotificationMessage:
    return NotificationMessage(
        subject="Status uppdaterad",
        body=f'{KIND_LABELS[kind]} "{title}" har ändrat status från {old_label} till {new_label}',
        link=link,
    )


def assignment_message(kind: WorkItemKind, title: str, link: str) -> NotificationMessage:
    return NotificationMessage(
        subject=f"{KIND_LABELS[kind]} tilldelad",
        body=f'Du har tilldelats {KIND_LABELS[kind].lower()} "{title}"',
        link=link,
    )


def team_assignment_message(kind: WorkItemKind, title: str, team_name: str, link: str) -> NotificationMessage:
    return NotificationMessage(
        subject="Ny tilldelning för ditt team",
        body=f'Ditt team {team_name} har tilldelats {KIND_LABELS[kind].lower()} "{title}"',
        link=link,
    )


class NotificationSink(Protocol):
    def enqueue(
        self,
        session: Session,
        user_id: uuid.UUID,
        subject: str,
        body: str,
        link: str | None,
    ) -> Notification: ...


class DatabaseNotificationSink:
    """Stores notifications in the inbox table read by the delivery side."""

    def enqueue(
        self,
        session: Session,
        user_id: uuid.UUID,
        subject: str,
        body: str,
        link: str | None,
    ) -> Notification:
        notification = Notification(recipient_user_id=user_id, subject=subject, body=body, link=link)
        session.add(notification)
        session.commit()
        return notification


class NotificationDispatcher:
    def __init__(self, sink: NotificationSink | None = None) -> None:
        self.sink = sink or DatabaseNotificationSink()

    def dispatch(
        self,
        session: Session,
        recipient_user_id: uuid.UUID,
        subject: str,
        body: str,
        link: str | None = None,
    ) -> Notification:
        try:
            notification = self.sink.enqueue(session, recipient_user_id, subject, body, link)
        except Exception as exc:
            # Discards only the failed enqueue: lifecycle changes are committed before dispatch.
            # Objects held by the caller are expired and reload on next access.
            session.rollback()
            observe_notification("failed")
            raise DeliveryFailureError(recipient_user_id) from exc
        observe_notification("enqueued")
        return notification


@dataclass
class DispatchReport:
    delivered: list[uuid.UUID] = field(default_factory=list)
    failed: list[uuid.UUID] = field(default_factory=list)
    suppressed: list[uuid.UUID] = field(default_factory=list)


class BestEffortNotifier:
    """Runs the side-effect phase of a lifecycle operation.

    Null recipients are dropped and the acting user never notifies themselves.
    Delivery failures end up in the returned report and the log, never in an
    exception.
    """

    def __init__(self, dispatcher: NotificationDispatcher | None = None) -> None:
        self.dispatcher = dispatcher or NotificationDispatcher()

    def notify(
        self,
        session: Session,
        recipients: Iterable[uuid.UUID | None],
        message: NotificationMessage,
        *,
        actor_user_id: uuid.UUID | None,
    ) -> DispatchReport:
        report = DispatchReport()
        if not get_settings().notifications_enabled:
            return report

        seen: set[uuid.UUID] = set()
        for recipient in recipients:
            if recipient is None or recipient in seen:
                continue
            seen.add(recipient)
            if recipient == actor_user_id:
                report.suppressed.append(recipient)
                continue
            try:
                self.dispatcher.dispatch(session, recipient, message.subject, message.body, message.link)
            except DeliveryFailureError as exc:
                report.failed.append(recipient)
                logger.warning(
                    "notification.delivery_failed",
                    extra={
                        "recipient_user_id": str(recipient),
                        "actor_user_id": str(actor_user_id) if actor_user_id else None,
                        "error": str(exc.__cause__ or exc),
                    },
                )
                continue
            report.delivered.append(recipient)
        return report


def list_notifications(
    session: Session,
    recipient_user_id: uuid.UUID,
    *,
    unread_only: bool = False,
    limit: int = 50,
) -> list[Notification]:
    stmt = select(Notification).where(Notification.recipient_user_id == recipient_user_id)
    if unread_only:
        stmt = stmt.where(Notification.is_read.is_(False))
    stmt = stmt.order_by(Notification.created_at.desc()).limit(limit)
    with store_guard(session, "notification.list"):
        return list(session.scalars(stmt).all())


def mark_notification_read(session: Session, recipient_user_id: uuid.UUID, notification_id: uuid.UUID) -> Notification:
    with store_guard(session, "notification.mark_read"):
        result = session.execute(
            update(Notification)
            .where(
                Notification.id == notification_id,
                Notification.recipient_user_id == recipient_user_id,
                Notification.is_read.is_(False),
            )
            .values(is_read=True, read_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        notification = session.get(Notification, notification_id, populate_existing=True)
        if notification is None or notification.recipient_user_id != recipient_user_id:
            session.rollback()
            raise NotFoundError("notification", notification_id)
        if result.rowcount:
            session.commit()
    return notification
