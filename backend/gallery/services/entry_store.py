from __future__ import annotations

import uuid
from typing import Any

from sqlalchemy import delete, or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from gallery.core.errors import NotFound, PersistenceFailure
from gallery.models.entry import Entry


def _as_uuid(value) -> uuid.UUID | None:
    if value is None:
        return None
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except ValueError:
        return None


class EntryStore:
    """Entry persistence on top of a SQLAlchemy session.

    Database errors surface as `PersistenceFailure`; unknown or malformed ids as `NotFound`.
    """

    def __init__(self, db: Session):
        self.db = db

    def _commit(self, message: str) -> None:
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise PersistenceFailure(e, message) from e

    def insert(self, entry: Entry) -> Entry:
        self.db.add(entry)
        self._commit("failed to save entry")
        self.db.refresh(entry)
        return entry

    def find_by_id(self, entry_id) -> Entry:
        eid = _as_uuid(entry_id)
        if eid is None:
            raise NotFound()
        try:
            entry = self.db.scalar(select(Entry).where(Entry.id == eid))
        except SQLAlchemyError as e:
            raise PersistenceFailure(e, "failed to load entry") from e
        if entry is None:
            raise NotFound()
        return entry

    def update_by_id(self, entry_id, fields: dict[str, Any]) -> Entry:
        entry = self.find_by_id(entry_id)
        for key, value in fields.items():
            setattr(entry, key, value)
        self._commit("failed to update entry")
        self.db.refresh(entry)
        return entry

    def delete_by_id(self, entry_id) -> None:
        eid = _as_uuid(entry_id)
        if eid is None:
            raise NotFound()
        try:
            result = self.db.execute(delete(Entry).where(Entry.id == eid))
        except SQLAlchemyError as e:
            self.db.rollback()
            raise PersistenceFailure(e, "failed to delete entry") from e
        self._commit("failed to delete entry")
        if int(result.rowcount or 0) == 0:
            raise NotFound()

    def list_all(self, search_text: str | None = None) -> list[Entry]:
        stmt = select(Entry)
        q = (search_text or "").strip()
        if q:
            stmt = stmt.where(
                or_(
                    Entry.title.icontains(q, autoescape=True),
                    Entry.description.icontains(q, autoescape=True),
                )
            )
        stmt = stmt.order_by(Entry.created_at.desc())
        try:
            return list(self.db.scalars(stmt).all())
        except SQLAlchemyError as e:
            raise PersistenceFailure(e, "failed to list entries") from e

    def increment_like(self, entry_id) -> Entry:
        eid = _as_uuid(entry_id)
        if eid is None:
            raise NotFound()
        # Single UPDATE so concurrent likes never lose increments.
        try:
            result = self.db.execute(
                update(Entry)
                .where(Entry.id == eid)
                .values(like_count=Entry.like_count + 1)
                .execution_options(synchronize_session=False)
            )
        except SQLAlchemyError as e:
            self.db.rollback()
            raise PersistenceFailure(e, "failed to record like") from e
        self._commit("failed to record like")
        if int(result.rowcount or 0) == 0:
            raise NotFound()
        entry = self.find_by_id(eid)
        self.db.refresh(entry)
        return entry
