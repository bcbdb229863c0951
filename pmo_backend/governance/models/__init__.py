from .change_request import ChangeRequest, DecisionStatus, Lane
from .approval import ApprovalChain, ApprovalStep, OrganisationApprover, StepApprover, ApprovalDecision
from .delegation import ApproverDelegation
from .audit import AuditLog
