# governance/crud/approval.py
"""Read-only queries over chains, steps and step approvers.

Chains and their steps are created by the submission workflow; nothing in
this module writes them.
"""
from typing import Dict, List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session

from governance.models.approval import (
    ApprovalChain,
    ApprovalDecision,
    ApprovalStep,
    OrganisationApprover,
    StepApprover,
)


def get_chain(db: Session, chain_id: int) -> Optional[ApprovalChain]:
    return db.get(ApprovalChain, chain_id)


def latest_chain_for_artifact(db: Session, artifact_id: str) -> Optional[ApprovalChain]:
    return (
        db.query(ApprovalChain)
        .filter(ApprovalChain.artifact_id == str(artifact_id))
        .order_by(ApprovalChain.created_at.desc(), ApprovalChain.id.desc())
        .first()
    )


def list_steps(db: Session, chain_id: int) -> List[ApprovalStep]:
    return (
        db.query(ApprovalStep)
        .filter(ApprovalStep.chain_id == chain_id)
        .order_by(ApprovalStep.step_order.asc())
        .all()
    )


def required_counts(db: Session, step_ids: List[int]) -> Dict[int, int]:
    """Active StepApprover rows per step (any approver type)."""
    if not step_ids:
        return {}
    rows = (
        db.query(StepApprover.step_id, func.count(StepApprover.id))
        .filter(StepApprover.step_id.in_(step_ids), StepApprover.active == True)  # noqa: E712
        .group_by(StepApprover.step_id)
        .all()
    )
    return {sid: int(c) for sid, c in rows}


def decision_counts(db: Session, chain_id: int) -> Dict[Tuple[int, str], int]:
    """{(step_id, decision): count} for one chain."""
    rows = (
        db.query(ApprovalDecision.step_id, ApprovalDecision.decision, func.count(ApprovalDecision.id))
        .filter(ApprovalDecision.chain_id == chain_id)
        .group_by(ApprovalDecision.step_id, ApprovalDecision.decision)
        .all()
    )
    return {(sid, str(d).lower()): int(c) for sid, d, c in rows}


def step_approver_user_ids(db: Session, step_id: int) -> List[str]:
    """Resolve the step's active user-type approver slots to their underlying user ids."""
    rows = (
        db.query(OrganisationApprover.user_id)
        .join(StepApprover, StepApprover.approver_id == OrganisationApprover.id)
        .filter(
            StepApprover.step_id == step_id,
            StepApprover.active == True,  # noqa: E712
            func.lower(StepApprover.approver_type) == "user",
            OrganisationApprover.is_active == True,  # noqa: E712
            OrganisationApprover.user_id.isnot(None),
        )
        .all()
    )
    out: List[str] = []
    for (uid,) in rows:
        uid = str(uid).strip()
        if uid and uid not in out:
            out.append(uid)
    return out


def decided_user_ids(db: Session, chain_id: int, step_id: int) -> List[str]:
    rows = (
        db.query(ApprovalDecision.approver_user_id)
        .filter(ApprovalDecision.chain_id == chain_id, ApprovalDecision.step_id == step_id)
        .all()
    )
    return [str(r[0]) for r in rows]


def approved_user_ids(db: Session, step_id: int) -> List[str]:
    """Approver principals with an approved decision on the step."""
    rows = (
        db.query(ApprovalDecision.approver_user_id)
        .filter(ApprovalDecision.step_id == step_id, func.lower(ApprovalDecision.decision) == "approved")
        .all()
    )
    return [str(r[0]) for r in rows]
