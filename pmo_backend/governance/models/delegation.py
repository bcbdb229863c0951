from __future__ import annotations
from sqlalchemy import Boolean, Column, Integer, String, DateTime, Text
from governance.core.database import Base
from governance.utils.timeutil import utcnow

class ApproverDelegation(Base):
    __tablename__ = "approver_delegations"
    id = Column(Integer, primary_key=True)
    organisation_id = Column(String(64), index=True, nullable=False)
    approver_user_id = Column(String(64), index=True, nullable=False)   # who is covered
    delegate_user_id = Column(String(64), index=True, nullable=False)   # who may act
    starts_at = Column(DateTime(timezone=True), nullable=True)          # None = unbounded
    ends_at = Column(DateTime(timezone=True), nullable=True)
    reason = Column(Text, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)
    created_by = Column(String(64), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
