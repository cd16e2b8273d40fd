from __future__ import annotations

import logging
import uuid

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.workitems.actors import ActorUser
from app.workitems.audit import AuditLog, audit_log
from app.workitems.errors import NoteOwnershipError, NotFoundError
from app.workitems.lifecycle import load_work_item
from app.workitems.models import ActivityKind, Note, utcnow
from app.workitems.repository import RecordStore, record_store, store_guard
from app.workitems.statuses import WorkItemKind


logger = logging.getLogger("app.workitems.notes")


class NoteService:
    """Free-text notes on work items. Only the author may edit or delete a note."""

    def __init__(self, store: RecordStore | None = None, audit: AuditLog | None = None) -> None:
        self.store = store or record_store
        self.audit = audit or audit_log

    def list_notes(
        self,
        session: Session,
        kind: WorkItemKind,
        item_id: uuid.UUID,
        actor: ActorUser | None,
    ) -> list[Note]:
        load_work_item(self.store, session, kind, item_id, actor)
        stmt = (
            select(Note)
            .where(Note.work_item_kind == kind.value, Note.work_item_id == item_id)
            .order_by(Note.created_at.desc())
        )
        with store_guard(session, "note.list"):
            return list(session.scalars(stmt).all())

    def add_note(
        self,
        session: Session,
        kind: WorkItemKind,
        item_id: uuid.UUID,
        content: str,
        actor: ActorUser,
    ) -> Note:
        load_work_item(self.store, session, kind, item_id, actor)
        note = Note(work_item_kind=kind.value, work_item_id=item_id, user_id=actor.user_id, content=content)
        self.store.insert(session, note)
        self.audit.append(
            session,
            kind=kind,
            work_item_id=item_id,
            activity_kind=ActivityKind.NOTE_ADDED,
            description="Anteckning tillagd",
            user_id=actor.user_id,
        )
        self.store.commit(session, "note.add")
        logger.info(
            "note.added",
            extra={"work_item_kind": kind.value, "work_item_id": str(item_id), "actor_user_id": str(actor.user_id)},
        )
        return note

    def edit_note(self, session: Session, note_id: uuid.UUID, content: str, actor: ActorUser) -> Note:
        note = self._owned_note(session, note_id, actor)
        with store_guard(session, "note.edit"):
            note.content = content
            note.updated_at = utcnow()
            session.commit()
        return note

    def delete_note(self, session: Session, note_id: uuid.UUID, actor: ActorUser) -> None:
        note = self._owned_note(session, note_id, actor)
        kind = WorkItemKind(note.work_item_kind)
        item_id = note.work_item_id
        with store_guard(session, "note.delete"):
            session.delete(note)
            session.flush()
        self.audit.append(
            session,
            kind=kind,
            work_item_id=item_id,
            activity_kind=ActivityKind.CUSTOM,
            description="Anteckning borttagen",
            user_id=actor.user_id,
        )
        self.store.commit(session, "note.delete")
        logger.info(
            "note.deleted",
            extra={"work_item_kind": kind.value, "work_item_id": str(item_id), "actor_user_id": str(actor.user_id)},
        )

    def _owned_note(self, session: Session, note_id: uuid.UUID, actor: ActorUser) -> Note:
        with store_guard(session, "note.get"):
            note = session.get(Note, note_id)
        if note is None:
            raise NotFoundError("note", note_id)
        try:
            load_work_item(self.store, session, WorkItemKind(note.work_item_kind), note.work_item_id, actor)
        except NotFoundError:
            raise NotFoundError("note", note_id) from None
        if note.user_id != actor.user_id:
            raise NoteOwnershipError(note_id)
        return note


note_service = NoteService()
