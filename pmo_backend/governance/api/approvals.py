from datetime import datetime
from typing import List, Literal, Optional

from fastapi import APIRouter, BackgroundTasks, Depends
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from governance.core.database import get_db
from governance.deps.auth import CurrentUser, get_current_user, require_role
from governance.services.approval import submit_approval_decision
from governance.services.audit import list_audit
from governance.services.notifier import ApprovalNotifier
from governance.services.progress import approval_inbox, approval_progress
from governance.utils.approval_policy import get_policy, reload_policy

router = APIRouter()

class NoteIn(BaseModel):
    note: Optional[str] = Field(default=None, max_length=20000)

class DecisionIn(NoteIn):
    decision: Literal["approved", "rejected"]

class AuditEntry(BaseModel):
    id: int
    action: str
    change_request_id: Optional[int]
    project_id: Optional[str]
    actor: Optional[str]
    actor_role: Optional[str]
    details: dict
    created_at: datetime
    class Config:
        from_attributes = True


def _decide(change_id: int, decision: str, note: Optional[str], db: Session,
            user: CurrentUser, background: BackgroundTasks) -> dict:
    notifier = ApprovalNotifier(dispatch=background.add_task)
    out = submit_approval_decision(db, change_id, user.user_id, decision, note, notifier=notifier)
    return out.to_response()

@router.post("/api/change/{change_id}/approve", response_model=dict)
def approve_change(change_id: int, background: BackgroundTasks, body: Optional[NoteIn] = None,
                   db: Session = Depends(get_db), user: CurrentUser = Depends(get_current_user)):
    return _decide(change_id, "approved", body.note if body else None, db, user, background)

@router.post("/api/change/{change_id}/reject", response_model=dict)
def reject_change(change_id: int, background: BackgroundTasks, body: Optional[NoteIn] = None,
                  db: Session = Depends(get_db), user: CurrentUser = Depends(get_current_user)):
    return _decide(change_id, "rejected", body.note if body else None, db, user, background)

@router.post("/api/change/{change_id}/decision", response_model=dict)
def decide_change(change_id: int, body: DecisionIn, background: BackgroundTasks,
                  db: Session = Depends(get_db), user: CurrentUser = Depends(get_current_user)):
    return _decide(change_id, body.decision, body.note, db, user, background)

@router.get("/api/change/{change_id}/approval-progress", response_model=dict)
def change_approval_progress(change_id: int, db: Session = Depends(get_db),
                             user: CurrentUser = Depends(get_current_user)):
    return approval_progress(db, change_id, user.user_id)

@router.get("/api/change/{change_id}/audit", response_model=List[AuditEntry])
def change_audit(change_id: int, limit: int = 50, db: Session = Depends(get_db),
                 user: CurrentUser = Depends(get_current_user)):
    return [AuditEntry.model_validate(r) for r in list_audit(db, change_id, limit)]

@router.get("/api/approvals/inbox", response_model=dict)
def api_inbox(project_id: Optional[str] = None, limit: int = 12, db: Session = Depends(get_db),
              user: CurrentUser = Depends(get_current_user)):
    limit = min(50, max(1, limit))
    return approval_inbox(db, user.user_id, project_id=project_id, limit=limit)

@router.get("/api/approvals/policy", response_model=dict)
def api_policy(user: CurrentUser = Depends(get_current_user)):
    return get_policy()

@router.post("/api/approvals/policy/reload", response_model=dict)
def api_policy_reload(user: CurrentUser = Depends(require_role("admin"))):
    p = reload_policy()
    return {"status": "reloaded", "keys": sorted(p.keys())}
