from __future__ import annotations
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from governance.core.errors import ChainNotFound, NoStepsConfigured, NotFound
from governance.crud.approval import approved_user_ids, decided_user_ids, step_approver_user_ids
from governance.crud.change_request import host_columns, list_in_status, load_snapshot
from governance.services.chain import resolve_chain_id
from governance.services.delegation import check_actor
from governance.services.steps import evaluate_chain
from governance.utils.approval_policy import entry_decision_status, entry_lane, normalize_lane

logger = logging.getLogger(__name__)


def approval_progress(db: Session, change_id: int, actor_user_id: Optional[str] = None,
                      now: Optional[datetime] = None) -> Dict[str, Any]:
    """Read-only progress view for the change board; derived from stored rows only."""
    cr = load_snapshot(db, change_id)
    if cr is None:
        raise NotFound(f"Change request {change_id} not found")

    chain_id = resolve_chain_id(db, cr)
    state = evaluate_chain(db, chain_id)
    pending = state.pending

    out: Dict[str, Any] = {
        "change_request_id": change_id,
        "chain_id": chain_id,
        "decision_status": cr.get("decision_status"),
        "chain_complete": state.complete,
        "total_steps": len(state.steps),
        "satisfied_steps": state.satisfied_count,
        "steps": [s.as_dict() for s in state.steps],
        "current_step": pending.as_dict() if pending else None,
        "remaining_approvers": None,
        "my_action": {"can_approve": False, "on_behalf_of": None},
    }
    if pending is None:
        return out

    approvers = step_approver_user_ids(db, pending.step_id)
    decided = set(decided_user_ids(db, chain_id, pending.step_id))
    out["remaining_approvers"] = sum(1 for uid in approvers if uid not in decided)

    if actor_user_id:
        acting = check_actor(db, pending.step_id, actor_user_id, now)
        if acting is not None:
            out["my_action"] = {"can_approve": True, "on_behalf_of": acting.on_behalf_of}
    return out


def approval_inbox(db: Session, actor_user_id: str, project_id: Optional[str] = None,
                   limit: int = 12, now: Optional[datetime] = None) -> Dict[str, Any]:
    """
    Changes awaiting the caller: in the entry status and lane, with a pending
    step the caller can decide (directly or as holiday cover) for an approver
    who has not approved yet. Changes whose chain is missing or empty are
    skipped; deciding on them would fail anyway.
    """
    columns = host_columns(db)
    lane = entry_lane()
    items: List[Dict[str, Any]] = []

    for cr in list_in_status(db, entry_decision_status(), project_id, columns):
        if lane and "delivery_status" in columns and normalize_lane(cr.get("delivery_status")) != lane:
            continue
        try:
            chain_id = resolve_chain_id(db, cr)
            pending = evaluate_chain(db, chain_id).pending
        except (ChainNotFound, NoStepsConfigured) as e:
            logger.debug("[approvals] inbox skips change=%s: %s", cr.get("id"), e.message)
            continue
        if pending is None:
            continue

        acting = check_actor(db, pending.step_id, actor_user_id, now)
        if acting is None or acting.approver_user_id in approved_user_ids(db, pending.step_id):
            continue

        items.append({
            "change_request_id": cr.get("id"),
            "project_id": cr.get("project_id"),
            "title": cr.get("title"),
            "chain_id": chain_id,
            "step": pending.as_dict(),
            "on_behalf_of": acting.on_behalf_of,
            "submitted_at": cr.get("created_at"),
        })

    return {"count": len(items), "items": items[:limit], "is_approver": bool(items)}
