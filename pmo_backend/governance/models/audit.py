from sqlalchemy import Column, Integer, String, DateTime, JSON
from governance.core.database import Base
from governance.utils.timeutil import utcnow

class AuditLog(Base):
    __tablename__ = "audit_log"
    id = Column(Integer, primary_key=True)
    action = Column(String(128), index=True)             # e.g., APPROVAL_STEP_DECIDED, CHAIN_APPROVED
    project_id = Column(String(64), index=True, nullable=True)
    change_request_id = Column(Integer, index=True, nullable=True)
    actor = Column(String(255), nullable=True)
    actor_role = Column(String(32), nullable=True)       # approver | delegate_approver | chain_final | ...
    details = Column(JSON, default=dict)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
