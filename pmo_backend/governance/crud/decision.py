# governance/crud/decision.py
from __future__ import annotations
import logging
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from governance.core.errors import StorageFailure, ValidationFailed
from governance.models.approval import ApprovalDecision
from governance.utils.approval_policy import clamp_reason
from governance.utils.timeutil import utcnow

logger = logging.getLogger(__name__)

VALID_DECISIONS = {"approved", "rejected"}

_KEY = ("chain_id", "step_id", "approver_user_id")
_MUTABLE = ("actor_user_id", "decision", "reason", "updated_at")


def normalize_decision(decision: Optional[str]) -> str:
    d = (decision or "").strip().lower()
    if d not in VALID_DECISIONS:
        raise ValidationFailed(f"Invalid decision '{decision}'. Must be one of {sorted(VALID_DECISIONS)}.")
    return d


def _upsert_statement(dialect: str, row: dict):
    if dialect == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
    elif dialect == "sqlite":
        from sqlalchemy.dialects.sqlite import insert
    else:
        return None
    stmt = insert(ApprovalDecision).values(**row)
    return stmt.on_conflict_do_update(
        index_elements=list(_KEY),
        set_={c: stmt.excluded[c] for c in _MUTABLE},
    )


def _select_then_write(db: Session, row: dict) -> None:
    existing = db.execute(
        select(ApprovalDecision).where(*(getattr(ApprovalDecision, k) == row[k] for k in _KEY))
    ).scalar_one_or_none()
    if existing is None:
        db.add(ApprovalDecision(**row))
    else:
        for c in _MUTABLE:
            setattr(existing, c, row[c])


def record_decision(
    db: Session,
    chain_id: int,
    step_id: int,
    approver_user_id: str,
    actor_user_id: str,
    decision: str,
    reason: Optional[str] = None,
) -> ApprovalDecision:
    """
    Upsert one decision keyed by (chain, step, approver).

    A later call for the same key overwrites decision/reason/actor, so
    re-approving is a no-op for the counts and approve<->reject flips in place.
    """
    if not chain_id or not step_id or not approver_user_id or not actor_user_id:
        raise ValidationFailed("Missing decision fields.")

    now = utcnow()
    row = {
        "chain_id": chain_id,
        "step_id": step_id,
        "approver_user_id": str(approver_user_id),
        "actor_user_id": str(actor_user_id),
        "decision": normalize_decision(decision),
        "reason": clamp_reason(reason),
        "created_at": now,
        "updated_at": now,
    }

    try:
        stmt = _upsert_statement(db.get_bind().dialect.name, row)
        if stmt is not None:
            db.execute(stmt)
        else:
            _select_then_write(db, row)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("[approvals] decision write failed chain=%s step=%s: %s", chain_id, step_id, e)
        raise StorageFailure("Failed to record approval decision") from e

    return get_decision(db, chain_id, step_id, approver_user_id)


def get_decision(db: Session, chain_id: int, step_id: int, approver_user_id: str) -> Optional[ApprovalDecision]:
    db.expire_all()
    return (
        db.query(ApprovalDecision)
        .filter(
            ApprovalDecision.chain_id == chain_id,
            ApprovalDecision.step_id == step_id,
            ApprovalDecision.approver_user_id == str(approver_user_id),
        )
        .one_or_none()
    )


def list_decisions(db: Session, chain_id: int, step_id: Optional[int] = None) -> List[ApprovalDecision]:
    q = db.query(ApprovalDecision).filter(ApprovalDecision.chain_id == chain_id)
    if step_id is not None:
        q = q.filter(ApprovalDecision.step_id == step_id)
    return q.order_by(ApprovalDecision.updated_at.asc(), ApprovalDecision.id.asc()).all()
