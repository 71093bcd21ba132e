"""Keyed store primitives on top of the ``store_entry`` table.

Values are addressed by slash paths (``stats/thermos/karak``,
``loyalty/123``). Plain ``write``/``update`` are last-writer-wins. Counters
shared between devices must go through ``atomic_update``, which re-reads the
value, applies ``fn`` and writes only if nobody else wrote in between.
"""

from __future__ import annotations

import copy
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Mapping, Optional

from sqlalchemy import insert, update as sa_update
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from .config import get_settings
from .errors import LedgerConflict, StoreUnavailable
from .models import StoreEntry

logger = logging.getLogger(__name__)

_table = StoreEntry.__table__


def server_now() -> datetime:
    return datetime.now(timezone.utc)


def get(session: Session, path: str, default: Any = None) -> Any:
    entry = session.get(StoreEntry, path, populate_existing=True)
    if entry is None or entry.value is None:
        return default
    return copy.deepcopy(entry.value)


def children(session: Session, prefix: str) -> Dict[str, Any]:
    """Direct children of ``prefix`` keyed by their last path segment."""
    base = prefix.rstrip("/") + "/"
    statement = select(StoreEntry).where(StoreEntry.path.startswith(base)).order_by(StoreEntry.path)
    result: Dict[str, Any] = {}
    for entry in session.exec(statement):
        key = entry.path[len(base):]
        if "/" in key or entry.value is None:
            continue
        result[key] = copy.deepcopy(entry.value)
    return result


def _put(session: Session, path: str, value: Any) -> None:
    entry = session.get(StoreEntry, path)
    if value is None:
        if entry is not None:
            session.delete(entry)
        return
    if entry is None:
        session.add(StoreEntry(path=path, value=value, version=1, updated_at=server_now()))
        return
    entry.value = value
    entry.version += 1
    entry.updated_at = server_now()
    session.add(entry)


def write(session: Session, path: str, value: Any) -> None:
    """Set one path; ``None`` deletes it."""
    _put(session, path, value)
    session.commit()


def update(session: Session, values: Mapping[str, Any]) -> None:
    """Multi-path write committed together. ``None`` values delete."""
    for path, value in values.items():
        _put(session, path, value)
    session.commit()


def atomic_update(
    session: Session,
    path: str,
    fn: Callable[[Any], Any],
    *,
    attempts: Optional[int] = None,
) -> Any:
    """Read-modify-write ``path`` with compare-and-set on the row version.

    ``fn`` receives a private copy of the current value (``None`` when absent)
    and returns the next value. Returning ``None`` aborts without writing and
    the current value is returned. On a version clash the whole cycle is
    retried; when retries run out ``StoreUnavailable`` is raised.
    """
    attempts = attempts or get_settings().ledger_max_attempts
    for attempt in range(1, attempts + 1):
        entry = session.get(StoreEntry, path, populate_existing=True)
        current = copy.deepcopy(entry.value) if entry is not None else None
        seen_version = entry.version if entry is not None else None
        proposed = fn(copy.deepcopy(current))
        if proposed is None:
            session.rollback()
            return current
        try:
            _compare_and_set(session, path, seen_version, proposed)
            session.commit()
            return proposed
        except LedgerConflict:
            session.rollback()
            logger.debug("Conflict on %s (attempt %d/%d), retrying", path, attempt, attempts)
    raise StoreUnavailable(f"Could not update {path} after {attempts} attempts")


def _compare_and_set(session: Session, path: str, seen_version: Optional[int], value: Any) -> None:
    conn = session.connection()
    now = server_now()
    if seen_version is None:
        try:
            conn.execute(insert(_table).values(path=path, value=value, version=1, updated_at=now))
        except IntegrityError as exc:
            raise LedgerConflict(path) from exc
        return
    result = conn.execute(
        sa_update(_table)
        .where(_table.c.path == path, _table.c.version == seen_version)
        .values(value=value, version=seen_version + 1, updated_at=now)
    )
    if result.rowcount != 1:
        raise LedgerConflict(path)
