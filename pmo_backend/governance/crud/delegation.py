from __future__ import annotations
from datetime import datetime
from typing import Iterable, List, Optional
from sqlalchemy.orm import Session

from governance.core.errors import ValidationFailed
from governance.models.delegation import ApproverDelegation
from governance.utils.timeutil import as_utc, utcnow

def create_delegation(
    db: Session,
    organisation_id: str,
    approver_user_id: str,
    delegate_user_id: str,
    created_by: Optional[str],
    starts_at: Optional[datetime] = None,
    ends_at: Optional[datetime] = None,
    reason: Optional[str] = None,
) -> ApproverDelegation:
    if not organisation_id or not approver_user_id or not delegate_user_id:
        raise ValidationFailed("organisation_id, approver_user_id and delegate_user_id are required")
    if approver_user_id == delegate_user_id:
        raise ValidationFailed("An approver cannot delegate to themselves")
    s, e = as_utc(starts_at), as_utc(ends_at)
    if s and e and e < s:
        raise ValidationFailed("ends_at must not be before starts_at")

    d = ApproverDelegation(
        organisation_id=organisation_id, approver_user_id=approver_user_id,
        delegate_user_id=delegate_user_id, starts_at=s, ends_at=e,
        reason=(reason or "").strip() or None, created_by=created_by, is_active=True,
    )
    db.add(d); db.commit(); db.refresh(d)
    return d

def deactivate_delegation(db: Session, delegation_id: int, organisation_id: Optional[str] = None) -> Optional[ApproverDelegation]:
    d = db.get(ApproverDelegation, delegation_id)
    if not d or (organisation_id and d.organisation_id != organisation_id):
        return None
    d.is_active = False
    db.commit(); db.refresh(d)
    return d

def list_delegations(db: Session, organisation_id: Optional[str] = None, include_inactive: bool = False) -> List[ApproverDelegation]:
    q = db.query(ApproverDelegation)
    if organisation_id:
        q = q.filter(ApproverDelegation.organisation_id == organisation_id)
    if not include_inactive:
        q = q.filter(ApproverDelegation.is_active == True)  # noqa: E712
    return q.order_by(ApproverDelegation.created_at.desc(), ApproverDelegation.id.desc()).all()

def is_effective(d: ApproverDelegation, now: Optional[datetime] = None) -> bool:
    """Active and now within [starts_at, ends_at]; a missing bound is open."""
    if not d.is_active:
        return False
    now = as_utc(now) or utcnow()
    s, e = as_utc(d.starts_at), as_utc(d.ends_at)
    if s is not None and now < s:
        return False
    if e is not None and now > e:
        return False
    return True

def effective_delegations_for(
    db: Session, delegate_user_id: str, approver_user_ids: Iterable[str], now: Optional[datetime] = None,
) -> List[ApproverDelegation]:
    ids = [str(x) for x in approver_user_ids if x]
    if not delegate_user_id or not ids:
        return []
    rows = (
        db.query(ApproverDelegation)
        .filter(ApproverDelegation.delegate_user_id == delegate_user_id,
                ApproverDelegation.approver_user_id.in_(ids),
                ApproverDelegation.is_active == True)  # noqa: E712
        .order_by(ApproverDelegation.created_at.asc(), ApproverDelegation.id.asc())
        .all()
    )
    return [d for d in rows if is_effective(d, now)]
