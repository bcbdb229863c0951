"""Holiday-cover aware authorisation for the pending step."""
from __future__ import annotations
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Set

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from governance.core.errors import Forbidden
from governance.crud.approval import approved_user_ids, step_approver_user_ids
from governance.crud.delegation import effective_delegations_for

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ActingApprover:
    actor_user_id: str
    approver_user_id: str          # principal the decision is recorded under
    on_behalf_of: Optional[str]    # set when acting as a delegate

    @property
    def role(self) -> str:
        return "delegate_approver" if self.on_behalf_of else "approver"


def find_delegator(db: Session, actor_user_id: str, approver_user_ids: List[str],
                   now: Optional[datetime] = None, outstanding: Optional[Set[str]] = None) -> Optional[str]:
    """
    Approver the actor currently covers for, or None. Lookup errors mean no cover.

    When the actor covers several approvers on the step, one still in
    ``outstanding`` wins over one who has already approved.
    """
    try:
        hits = effective_delegations_for(db, actor_user_id, approver_user_ids, now)
    except SQLAlchemyError as e:
        db.rollback()
        logger.warning("[approvals] delegation lookup failed for actor=%s: %s", actor_user_id, e)
        return None
    if not hits:
        return None
    if outstanding:
        for d in hits:
            if d.approver_user_id in outstanding:
                return d.approver_user_id
    return hits[0].approver_user_id


def check_actor(db: Session, step_id: int, actor_user_id: str,
                now: Optional[datetime] = None) -> Optional[ActingApprover]:
    actor = str(actor_user_id or "").strip()
    if not actor:
        return None
    direct = step_approver_user_ids(db, step_id)
    if actor in direct:
        return ActingApprover(actor_user_id=actor, approver_user_id=actor, on_behalf_of=None)
    outstanding = set(direct) - set(approved_user_ids(db, step_id))
    delegator = find_delegator(db, actor, direct, now, outstanding)
    if delegator:
        return ActingApprover(actor_user_id=actor, approver_user_id=delegator, on_behalf_of=delegator)
    return None


def require_actor(db: Session, step_id: int, actor_user_id: str,
                  now: Optional[datetime] = None) -> ActingApprover:
    acting = check_actor(db, step_id, actor_user_id, now)
    if acting is None:
        raise Forbidden("You are not an approver (or delegate) for the pending approval step")
    return acting
