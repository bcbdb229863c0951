from __future__ import annotations
from typing import Optional, Dict, Any, List

from sqlalchemy.orm import Session

from governance.models.audit import AuditLog

def record_audit(
    db: Session,
    action: str,
    change_request_id: Optional[int],
    project_id: Optional[str],
    actor: Optional[str],
    actor_role: Optional[str],
    details: Dict[str, Any],
) -> AuditLog:
    """Persist one approval audit row and commit it."""
    row = AuditLog(
        action=action,
        change_request_id=change_request_id,
        project_id=project_id,
        actor=actor,
        actor_role=actor_role,
        details=details or {},
    )
    db.add(row)
    db.commit()
    db.refresh(row)
    return row

def list_audit(db: Session, change_request_id: int, limit: int = 50) -> List[AuditLog]:
    return (
        db.query(AuditLog)
        .filter(AuditLog.change_request_id == change_request_id)
        .order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
        .limit(max(1, min(int(limit or 50), 500)))
        .all()
    )
