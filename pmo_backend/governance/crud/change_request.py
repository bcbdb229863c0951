# governance/crud/change_request.py
"""
Host-entity access for the approval chain.

Deployments drift: some change_requests tables lack optional columns such as
``delivery_status``. Reads select only live columns and the terminal write
drops optional fields the table does not have, so the ORM never asks for a
column that is not there.
"""
from __future__ import annotations
import logging
from functools import lru_cache
from typing import Any, Dict, FrozenSet, Iterable, List, Optional, Set, Tuple

from sqlalchemy import inspect, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from governance.core.errors import StorageFailure
from governance.models.change_request import ChangeRequest
from governance.utils.approval_policy import optional_fields

logger = logging.getLogger(__name__)

_TABLE = ChangeRequest.__table__

# Always written on a terminal transition; everything else is best effort.
MINIMAL_FIELDS = ("decision_status", "decision_by", "decision_at")


@lru_cache(maxsize=8)
def _reflect_columns(engine) -> FrozenSet[str]:
    return frozenset(c["name"] for c in inspect(engine).get_columns(_TABLE.name))


def reset_column_cache() -> None:
    """Forget reflected columns, e.g. after a migration altered change_requests."""
    _reflect_columns.cache_clear()


def host_columns(db: Session) -> Set[str]:
    """Column names present on the live change_requests table (reflected once per engine)."""
    try:
        return set(_reflect_columns(db.get_bind().engine))
    except SQLAlchemyError as e:
        logger.warning("[approvals] could not inspect %s, assuming ORM columns: %s", _TABLE.name, e)
        return set(_TABLE.columns.keys())


def load_snapshot(db: Session, change_id: int, columns: Optional[Iterable[str]] = None) -> Optional[Dict[str, Any]]:
    live = set(columns) if columns is not None else host_columns(db)
    cols = [_TABLE.c[name] for name in _TABLE.columns.keys() if name in live]
    try:
        row = db.execute(select(*cols).where(_TABLE.c.id == change_id)).mappings().first()
    except SQLAlchemyError as e:
        db.rollback()
        raise StorageFailure("Failed to load change request") from e
    return dict(row) if row else None


def list_in_status(db: Session, decision_status: str, project_id: Optional[str] = None,
                   columns: Optional[Iterable[str]] = None) -> List[Dict[str, Any]]:
    """Snapshots of every change in ``decision_status``, oldest first."""
    live = set(columns) if columns is not None else host_columns(db)
    cols = [_TABLE.c[name] for name in _TABLE.columns.keys() if name in live]
    stmt = select(*cols).where(_TABLE.c.decision_status == decision_status)
    if project_id:
        stmt = stmt.where(_TABLE.c.project_id == project_id)
    stmt = stmt.order_by(_TABLE.c.created_at.asc(), _TABLE.c.id.asc())
    try:
        return [dict(r) for r in db.execute(stmt).mappings().all()]
    except SQLAlchemyError as e:
        db.rollback()
        raise StorageFailure("Failed to list change requests") from e


def _apply(db: Session, change_id: int, expected_status: str, patch: Dict[str, Any]) -> int:
    res = db.execute(
        update(_TABLE)
        .where(_TABLE.c.id == change_id, _TABLE.c.decision_status == expected_status)
        .values(**patch)
    )
    db.commit()
    return res.rowcount or 0


def guarded_transition(
    db: Session,
    change_id: int,
    expected_status: str,
    patch: Dict[str, Any],
    columns: Optional[Iterable[str]] = None,
) -> Tuple[bool, Dict[str, Any]]:
    """
    Apply ``patch`` only while decision_status still equals ``expected_status``.

    Returns (applied, written_patch). ``applied`` is False when another caller
    already moved the change on; that is a no-op, not an error. Optional
    fields missing from the live table are left out up front; if the write
    still fails it is retried once with MINIMAL_FIELDS before StorageFailure.
    """
    live = set(columns) if columns is not None else host_columns(db)
    opt = optional_fields()
    full = {k: v for k, v in patch.items() if k in live or k not in opt}
    dropped = sorted(set(patch) - set(full))
    if dropped:
        logger.info("[approvals] change=%s omitting absent optional columns %s", change_id, dropped)

    try:
        return _apply(db, change_id, expected_status, full) > 0, full
    except SQLAlchemyError as e:
        db.rollback()
        logger.warning("[approvals] change=%s full transition failed, retrying minimal: %s", change_id, e)

    minimal = {k: v for k, v in full.items() if k in MINIMAL_FIELDS}
    try:
        return _apply(db, change_id, expected_status, minimal) > 0, minimal
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("[approvals] change=%s minimal transition failed: %s", change_id, e)
        raise StorageFailure("Failed to update change request decision status") from e
