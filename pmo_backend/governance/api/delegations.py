from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.orm import Session

from governance.core.database import get_db
from governance.core.errors import NotFound
from governance.crud.delegation import create_delegation, deactivate_delegation, list_delegations
from governance.deps.auth import CurrentUser, get_current_user, require_role

router = APIRouter()

class DelegationIn(BaseModel):
    organisation_id: str
    approver_user_id: str
    delegate_user_id: str
    starts_at: Optional[datetime] = None
    ends_at: Optional[datetime] = None
    reason: Optional[str] = None

class DelegationOut(BaseModel):
    id: int
    organisation_id: str
    approver_user_id: str
    delegate_user_id: str
    starts_at: Optional[datetime]
    ends_at: Optional[datetime]
    reason: Optional[str]
    is_active: bool
    created_by: Optional[str]
    created_at: datetime
    class Config:
        from_attributes = True

@router.get("/api/approvals/delegations", response_model=List[DelegationOut])
def api_list_delegations(organisation_id: Optional[str] = None, include_inactive: bool = False,
                         db: Session = Depends(get_db), user: CurrentUser = Depends(get_current_user)):
    rows = list_delegations(db, organisation_id=organisation_id, include_inactive=include_inactive)
    return [DelegationOut.model_validate(r) for r in rows]

@router.post("/api/approvals/delegations", response_model=DelegationOut, status_code=201)
def api_create_delegation(body: DelegationIn, db: Session = Depends(get_db),
                          user: CurrentUser = Depends(require_role("admin"))):
    d = create_delegation(
        db, body.organisation_id.strip(), body.approver_user_id.strip(), body.delegate_user_id.strip(),
        created_by=user.user_id, starts_at=body.starts_at, ends_at=body.ends_at, reason=body.reason,
    )
    return DelegationOut.model_validate(d)

@router.delete("/api/approvals/delegations/{delegation_id}", response_model=dict)
def api_deactivate_delegation(delegation_id: int, organisation_id: Optional[str] = None,
                              db: Session = Depends(get_db), user: CurrentUser = Depends(require_role("admin"))):
    d = deactivate_delegation(db, delegation_id, organisation_id)
    if not d:
        raise NotFound("Delegation not found")
    return {"ok": True, "removed": True, "id": d.id}
