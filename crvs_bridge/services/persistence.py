"""
Writes a registration write-set into the registry.

Inserts are insert-if-absent on the primary key, in foreign-key order:
new persons -> new events -> new participants -> person -> event ->
participants. Everything commits together or rolls back together.
"""

from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Any, Iterable

from pydantic import BaseModel
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from crvs_bridge.errors import PersistenceError
from crvs_bridge.models.registry import Event, EventParticipant, Person
from crvs_bridge.schemas.writeset import WriteSet

logger = logging.getLogger(__name__)

_INSERTS = {"postgresql": pg_insert, "sqlite": sqlite_insert}
_DATETIME_COLUMNS = {"created_at", "updated_at", "event_date", "last_update_at"}


def _as_datetime(value: Any) -> datetime | None:
    if value is None or isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        logger.warning("Unparseable timestamp %r stored as NULL", value)
        return None


def _as_date(value: Any) -> date | None:
    parsed = _as_datetime(value)
    return parsed.date() if parsed else None


def to_row(record: BaseModel) -> dict[str, Any]:
    """Record fields -> column values (timestamps parsed, JSON text untouched)."""
    row = record.model_dump()
    for key in _DATETIME_COLUMNS & row.keys():
        row[key] = _as_datetime(row[key])
    if "dob" in row:
        row["dob"] = _as_date(row["dob"])
    return row


def _insert_if_absent(db: Session, model, records: Iterable[BaseModel]) -> int:
    # Column keys can differ from column names (Event.metadata_ -> "metadata")
    keys = {column.name: column.key for column in model.__table__.columns}
    rows = [{keys[name]: value for name, value in to_row(r).items()} for r in records]
    if not rows:
        return 0
    dialect = db.get_bind().dialect.name
    insert = _INSERTS.get(dialect)
    if insert is None:
        raise PersistenceError(f"Unsupported database dialect: {dialect}")
    stmt = insert(model.__table__).values(rows).on_conflict_do_nothing(index_elements=["id"])
    return db.execute(stmt).rowcount


def persist_write_set(db: Session, write_set: WriteSet) -> dict[str, int]:
    """Insert the write-set in one transaction; returns inserted row counts."""
    steps = (
        ("new_persons", Person, write_set.new_persons),
        ("new_events", Event, write_set.new_events),
        ("new_participants", EventParticipant, write_set.new_participants),
        ("person", Person, [write_set.person]),
        ("event", Event, [write_set.event]),
        ("participants", EventParticipant, write_set.participants),
    )
    inserted: dict[str, int] = {}
    try:
        for name, model, records in steps:
            inserted[name] = _insert_if_absent(db, model, records)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error(
            "Write-set for event %s rolled back: %s", write_set.event.crvs_event_uuid, exc
        )
        raise PersistenceError(str(exc)) from exc
    except PersistenceError:
        db.rollback()
        raise

    logger.info(
        "Persisted event %s: %s", write_set.event.crvs_event_uuid,
        ", ".join(f"{k}={v}" for k, v in inserted.items()),
    )
    return inserted
