# governance/services/approval.py
"""
Change-request approval orchestration.

submit_approval_decision() is the single entry point for approve/reject:

  1. gate: change exists and decision_status is the entry status (and the
     lane gate, when the lane column exists)
  2. resolve the chain and derive the pending step from stored decisions
  3. authorise the actor directly or through an effective delegation
  4. upsert the decision under the effective approver
  5. re-derive the chain; on completion apply one guarded transition

Gates 1-3 write nothing. The decision upsert is the only durable mutation
before step 5, and the change transition only applies while the change is
still in the entry status, so a second completer is a no-op.
"""
from __future__ import annotations
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from governance.core.errors import ApprovalError, InvalidState, NotFound, Unauthenticated
from governance.crud.change_request import guarded_transition, host_columns, load_snapshot
from governance.crud.decision import normalize_decision, record_decision
from governance.metrics import (
    approval_decisions_total,
    chain_completions_total,
    decision_latency_seconds,
    gate_failures_total,
)
from governance.services.chain import resolve_chain_id
from governance.services.delegation import ActingApprover, require_actor
from governance.services.notifier import (
    CHAIN_APPROVED,
    CHANGE_REJECTED,
    STEP_DECIDED,
    STEP_REJECTED,
    ApprovalEvent,
    ApprovalNotifier,
)
from governance.services.steps import ChainState, StepState, evaluate_chain
from governance.utils.approval_policy import (
    clamp_reason,
    entry_decision_status,
    entry_lane,
    normalize_lane,
    reject_transition_enabled,
    transition,
)
from governance.utils.timeutil import utcnow

logger = logging.getLogger(__name__)


@dataclass
class ApprovalOutcome:
    change_request_id: int
    chain_id: int
    decision: str
    step_complete: bool
    chain_complete: bool
    host: Dict[str, Any]
    step_id: Optional[int] = None
    step_order: Optional[int] = None
    on_behalf_of: Optional[str] = None
    transitioned: bool = False
    already_complete: bool = False
    recorded: bool = True          # False when no decision row was written
    written_fields: list = field(default_factory=list)

    def to_response(self) -> Dict[str, Any]:
        out = {
            "ok": True,
            "approval_chain_id": self.chain_id,
            "step_id": self.step_id,
            "step_order": self.step_order,
            "decision": self.decision if self.recorded else None,
            "step_complete": self.step_complete,
            "chain_complete": self.chain_complete,
            "on_behalf_of": self.on_behalf_of,
            "transitioned": self.transitioned,
            "item": self.host,
        }
        if self.recorded and self.decision == "rejected":
            out["rejected"] = True
        if self.already_complete:
            out["already_complete"] = True
        return out


def _gate(db: Session, change_id: int) -> Dict[str, Any]:
    columns = host_columns(db)
    cr = load_snapshot(db, change_id, columns)
    if cr is None:
        raise NotFound(f"Change request {change_id} not found")

    expected = entry_decision_status()
    current = str(cr.get("decision_status") or "").strip().lower()
    if current != expected:
        raise InvalidState(
            f"Cannot decide unless decision_status={expected} (current={current or '(null)'})",
            {"decision_status": current or None},
        )

    lane = entry_lane()
    if lane and "delivery_status" in columns:
        from_lane = normalize_lane(cr.get("delivery_status"))
        if from_lane != lane:
            raise InvalidState(
                f"Cannot decide unless in {lane} lane (lane={from_lane or '(null)'})",
                {"delivery_status": from_lane},
            )
    return cr


def _terminal_patch(outcome: str, actor: ActingApprover, note: Optional[str], now: datetime) -> Dict[str, Any]:
    cfg = transition(outcome)
    final = outcome == "approve"
    patch: Dict[str, Any] = {
        "decision_status": cfg.get("decision_status") or ("approved" if final else "rejected"),
        "decision_by": actor.actor_user_id,
        "decision_at": now,
        "decision_rationale": note,
        "decision_role": ("delegate_final" if actor.on_behalf_of else "chain_final") if final
                         else ("delegate_approver" if actor.on_behalf_of else "approver"),
        "updated_at": now,
    }
    if cfg.get("status"):
        patch["status"] = cfg["status"]
    if cfg.get("lane"):
        patch["delivery_status"] = cfg["lane"]
    if final:
        patch["approver_id"] = actor.actor_user_id
        patch["approval_date"] = now
    return patch


def _transition_host(db: Session, change_id: int, outcome: str, actor: ActingApprover,
                     note: Optional[str]) -> tuple:
    patch = _terminal_patch(outcome, actor, note, utcnow())
    applied, written = guarded_transition(db, change_id, entry_decision_status(), patch)
    if applied:
        chain_completions_total.labels(outcome="approved" if outcome == "approve" else "rejected").inc()
        logger.info("[approvals] change=%s transitioned (%s) by %s", change_id, outcome, actor.actor_user_id)
    else:
        chain_completions_total.labels(outcome="noop").inc()
        logger.info("[approvals] change=%s already left %s; %s transition skipped",
                    change_id, entry_decision_status(), outcome)
    return applied, written


def _emit(notifier: Optional[ApprovalNotifier], event: ApprovalEvent) -> None:
    if notifier is None:
        return
    try:
        notifier.emit(event)
    except Exception as e:
        logger.warning("[notify] %s not emitted: %s", event.action, e)


def submit_approval_decision(
    db: Session,
    change_id: int,
    actor_user_id: Optional[str],
    decision: str,
    reason: Optional[str] = None,
    notifier: Optional[ApprovalNotifier] = None,
    now: Optional[datetime] = None,
) -> ApprovalOutcome:
    started = time.perf_counter()
    try:
        return _submit(db, change_id, actor_user_id, decision, reason, notifier, now)
    except ApprovalError as e:
        gate_failures_total.labels(kind=e.kind).inc()
        logger.info("[approvals] change=%s decision refused (%s): %s", change_id, e.kind, e.message)
        raise
    finally:
        decision_latency_seconds.observe(time.perf_counter() - started)


def _submit(db, change_id, actor_user_id, decision, reason, notifier, now) -> ApprovalOutcome:
    actor_id = str(actor_user_id or "").strip()
    if not actor_id:
        raise Unauthenticated("Unauthorized")
    d = normalize_decision(decision)
    note = clamp_reason(reason)

    cr = _gate(db, change_id)
    chain_id = resolve_chain_id(db, cr)
    state = evaluate_chain(db, chain_id)

    pending = state.pending
    if pending is None:
        return _already_complete(db, change_id, state, d, actor_id, note, now, notifier, cr)

    acting = require_actor(db, pending.step_id, actor_id, now)

    record_decision(db, chain_id, pending.step_id, acting.approver_user_id, acting.actor_user_id, d, note)
    approval_decisions_total.labels(decision=d, role=acting.role).inc()

    after = evaluate_chain(db, chain_id)
    step_after = after.step(pending.step_id) or pending

    base = dict(
        change_request_id=change_id,
        project_id=cr.get("project_id"),
        actor=acting.actor_user_id,
        chain_id=chain_id,
        step_id=pending.step_id,
        step_order=pending.order,
        note=note,
    )

    if d == "rejected":
        return _after_rejection(db, cr, after, step_after, acting, note, notifier, base)

    if not after.complete:
        _emit(notifier, ApprovalEvent(
            action=STEP_DECIDED, actor_role=acting.role,
            payload={"step_name": pending.name, "delegated_for": acting.on_behalf_of,
                     "approved": step_after.approved, "required": step_after.required,
                     "step_complete": step_after.satisfied},
            **base,
        ))
        return ApprovalOutcome(
            change_request_id=change_id, chain_id=chain_id, decision=d,
            step_complete=step_after.satisfied, chain_complete=False, host=cr,
            step_id=pending.step_id, step_order=pending.order, on_behalf_of=acting.on_behalf_of,
        )

    applied, written = _transition_host(db, change_id, "approve", acting, note)
    host = load_snapshot(db, change_id) or cr
    if applied:
        _emit(notifier, ApprovalEvent(
            action=CHAIN_APPROVED,
            actor_role="delegate_final" if acting.on_behalf_of else "chain_final",
            payload={"from": cr.get("decision_status"), "to": written.get("decision_status"),
                     "to_lane": written.get("delivery_status"), "delegated_for": acting.on_behalf_of,
                     "from_lane": cr.get("delivery_status")},
            **base,
        ))
    return ApprovalOutcome(
        change_request_id=change_id, chain_id=chain_id, decision=d,
        step_complete=True, chain_complete=True, host=host,
        step_id=pending.step_id, step_order=pending.order, on_behalf_of=acting.on_behalf_of,
        transitioned=applied, written_fields=sorted(written),
    )


def _after_rejection(db, cr, after: ChainState, step_after: StepState, acting: ActingApprover,
                     note, notifier, base) -> ApprovalOutcome:
    change_id = base["change_request_id"]
    _emit(notifier, ApprovalEvent(
        action=STEP_REJECTED, actor_role=acting.role,
        payload={"step_name": step_after.name, "delegated_for": acting.on_behalf_of},
        **base,
    ))

    applied, written, host = False, {}, cr
    if reject_transition_enabled():
        applied, written = _transition_host(db, change_id, "reject", acting, note)
        host = load_snapshot(db, change_id) or cr
        if applied:
            _emit(notifier, ApprovalEvent(
                action=CHANGE_REJECTED, actor_role=acting.role,
                payload={"from": cr.get("decision_status"), "to": written.get("decision_status"),
                         "to_lane": written.get("delivery_status"), "from_lane": cr.get("delivery_status"),
                         "delegated_for": acting.on_behalf_of},
                **base,
            ))

    return ApprovalOutcome(
        change_request_id=change_id, chain_id=after.chain_id, decision="rejected",
        step_complete=step_after.satisfied, chain_complete=after.complete, host=host,
        step_id=step_after.step_id, step_order=step_after.order, on_behalf_of=acting.on_behalf_of,
        transitioned=applied, written_fields=sorted(written),
    )


def _already_complete(db, change_id, state: ChainState, d, actor_id, note, now, notifier, cr) -> ApprovalOutcome:
    """
    Every step is already satisfied while the change still sits in the entry
    status (an earlier terminal write failed or lost a race). An approve from
    an approver of the last step that has approvers finishes the transition;
    when no step has approvers any caller may finish it. Anything else is an
    idempotent success with no write.
    """
    chain_id = state.chain_id
    last = next((s for s in reversed(state.steps) if s.required > 0), None)
    reported = last or state.steps[-1]
    outcome = ApprovalOutcome(
        change_request_id=change_id, chain_id=chain_id, decision=d,
        step_complete=True, chain_complete=True, host=cr,
        step_id=reported.step_id, step_order=reported.order, already_complete=True,
        recorded=False,
    )
    if d != "approved":
        return outcome

    if last is None:
        acting = ActingApprover(actor_user_id=actor_id, approver_user_id=actor_id, on_behalf_of=None)
    else:
        try:
            acting = require_actor(db, last.step_id, actor_id, now)
        except ApprovalError:
            return outcome

    applied, written = _transition_host(db, change_id, "approve", acting, note)
    outcome.host = load_snapshot(db, change_id) or cr
    outcome.transitioned = applied
    outcome.on_behalf_of = acting.on_behalf_of
    outcome.written_fields = sorted(written)
    if applied:
        _emit(notifier, ApprovalEvent(
            action=CHAIN_APPROVED, change_request_id=change_id, project_id=cr.get("project_id"),
            actor=acting.actor_user_id,
            actor_role="delegate_final" if acting.on_behalf_of else "chain_final",
            chain_id=chain_id, step_id=reported.step_id, step_order=reported.order, note=note,
            payload={"recovered": True, "to_lane": written.get("delivery_status")},
        ))
    return outcome
