from sqlalchemy import Column, Integer, String, DateTime, Text
import enum

from governance.core.database import Base
from governance.utils.timeutil import utcnow

class DecisionStatus(str, enum.Enum):
    NONE = "none"
    SUBMITTED = "submitted"
    APPROVED = "approved"
    REJECTED = "rejected"

class Lane(str, enum.Enum):
    INTAKE = "intake"
    ANALYSIS = "analysis"
    REVIEW = "review"
    IN_PROGRESS = "in_progress"
    IMPLEMENTED = "implemented"
    CLOSED = "closed"

class ChangeRequest(Base):
    """Host entity gated by an approval chain. Only the decision/lane columns matter here."""
    __tablename__ = "change_requests"

    id = Column(Integer, primary_key=True, index=True)
    project_id = Column(String(64), index=True, nullable=False)
    title = Column(String(500), nullable=False, default="")
    artifact_id = Column(String(64), index=True, nullable=True)
    approval_chain_id = Column(Integer, nullable=True)

    status = Column(String(32), default="new", nullable=True)
    delivery_status = Column(String(32), default=Lane.INTAKE.value, nullable=True)
    decision_status = Column(String(32), default=DecisionStatus.NONE.value, nullable=False)

    decision_rationale = Column(Text, nullable=True)
    decision_by = Column(String(64), nullable=True)
    decision_at = Column(DateTime(timezone=True), nullable=True)
    decision_role = Column(String(32), nullable=True)
    approver_id = Column(String(64), nullable=True)
    approval_date = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, nullable=True)
