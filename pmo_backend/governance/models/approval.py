from sqlalchemy import Boolean, Column, Integer, String, DateTime, ForeignKey, Text, UniqueConstraint
from governance.core.database import Base
from governance.utils.timeutil import utcnow

class ApprovalChain(Base):
    __tablename__ = "approval_chains"
    id = Column(Integer, primary_key=True)
    artifact_id = Column(String(64), index=True, nullable=False)   # host artifact (the change request's)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

class ApprovalStep(Base):
    __tablename__ = "approval_steps"
    __table_args__ = (UniqueConstraint("chain_id", "step_order", name="uq_approval_steps_chain_order"),)
    id = Column(Integer, primary_key=True)
    chain_id = Column(Integer, ForeignKey("approval_chains.id"), index=True, nullable=False)
    step_order = Column(Integer, nullable=False)
    name = Column(String(255), nullable=False, default="Approval")

class OrganisationApprover(Base):
    """Named approver slot at organisation level; resolves to one underlying user."""
    __tablename__ = "organisation_approvers"
    id = Column(Integer, primary_key=True)
    organisation_id = Column(String(64), index=True, nullable=False)
    user_id = Column(String(64), index=True, nullable=True)
    label = Column(String(255), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)

class StepApprover(Base):
    __tablename__ = "step_approvers"
    id = Column(Integer, primary_key=True)
    step_id = Column(Integer, ForeignKey("approval_steps.id"), index=True, nullable=False)
    approver_type = Column(String(16), default="user", nullable=False)   # "user" | "group" | "role"
    approver_id = Column(Integer, ForeignKey("organisation_approvers.id"), nullable=True)
    active = Column(Boolean, default=True, nullable=False)

class ApprovalDecision(Base):
    __tablename__ = "approval_decisions"
    __table_args__ = (
        UniqueConstraint("chain_id", "step_id", "approver_user_id", name="uq_approval_decisions_key"),
    )
    id = Column(Integer, primary_key=True)
    chain_id = Column(Integer, ForeignKey("approval_chains.id"), index=True, nullable=False)
    step_id = Column(Integer, ForeignKey("approval_steps.id"), index=True, nullable=False)
    approver_user_id = Column(String(64), nullable=False)   # principal the decision counts for
    actor_user_id = Column(String(64), nullable=False)      # who actually clicked (delegate or self)
    decision = Column(String(16), nullable=False)           # "approved" | "rejected"
    reason = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
