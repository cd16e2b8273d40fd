from __future__ import annotations

from typing import Any


class WorkItemError(Exception):
    """Base class for the expected failure outcomes of lifecycle operations."""

    code = "work_item_error"
    status_code = 400

    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(message)
        self.details = details


class NotFoundError(WorkItemError):
    code = "not_found"
    status_code = 404

    def __init__(self, entity: str, entity_id: Any) -> None:
        super().__init__(f"{entity} not found", entity=entity, entity_id=str(entity_id))


class InvalidStatusError(WorkItemError):
    code = "invalid_status"
    status_code = 422

    def __init__(self, kind: str, status: str) -> None:
        super().__init__(f"'{status}' is not a valid {kind} status", kind=kind, status=status)


class InvalidAssigneeError(WorkItemError):
    code = "invalid_assignee"
    status_code = 422

    def __init__(self, target: str, target_id: Any) -> None:
        super().__init__(f"{target} '{target_id}' does not exist", target=target, target_id=str(target_id))


class NoteOwnershipError(WorkItemError):
    code = "note_not_owned"
    status_code = 403

    def __init__(self, note_id: Any) -> None:
        super().__init__("only the author may change this note", note_id=str(note_id))


class SessionAlreadyActiveError(WorkItemError):
    code = "session_already_active"
    status_code = 409

    def __init__(self, worker_id: Any, active_session_id: Any | None = None) -> None:
        super().__init__(
            "worker already has an active time session",
            worker_id=str(worker_id),
            active_session_id=str(active_session_id) if active_session_id is not None else None,
        )


class AlreadyStoppedError(WorkItemError):
    code = "session_already_stopped"
    status_code = 409

    def __init__(self, session_id: Any) -> None:
        super().__init__("time session is already stopped", session_id=str(session_id))


class StoreFailureError(WorkItemError):
    code = "store_failure"
    status_code = 503

    def __init__(self, operation: str) -> None:
        super().__init__(f"record store failed during {operation}", operation=operation)


class DeliveryFailureError(WorkItemError):
    """Raised by the notification dispatcher; never surfaced by lifecycle operations."""

    code = "delivery_failure"
    status_code = 502

    def __init__(self, recipient_user_id: Any) -> None:
        super().__init__("notification could not be enqueued", recipient_user_id=str(recipient_user_id))


class OrganizationRequiredError(WorkItemError):
    code = "organization_required"
    status_code = 400

    def __init__(self) -> None:
        super().__init__("an organization must be selected with the x-organization-id header")


class PermissionDeniedError(WorkItemError):
    code = "permission_denied"
    status_code = 403

    def __init__(self, permission: str) -> None:
        super().__init__(f"Missing permission: {permission}", permission=permission)
