"""
Step evaluation for an approval chain.

No "current step" is stored anywhere. The pending step is re-derived from
decision rows on every call: walk steps by ascending order and stop at the
first one whose approvals fall short of its active approver count. If none
falls short, the chain is complete.
"""
from __future__ import annotations
import logging
from dataclasses import dataclass
from typing import Optional, Tuple

from sqlalchemy.orm import Session

from governance.core.errors import NoStepsConfigured
from governance.crud.approval import decision_counts, list_steps, required_counts

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StepState:
    step_id: int
    order: int
    name: str
    required: int
    approved: int
    rejected: int

    @property
    def satisfied(self) -> bool:
        # all-must-approve; a step with no active approvers passes straight through
        return self.approved >= self.required

    def as_dict(self) -> dict:
        return {
            "step_id": self.step_id,
            "order": self.order,
            "name": self.name,
            "required": self.required,
            "approved": self.approved,
            "rejected": self.rejected,
            "satisfied": self.satisfied,
        }


@dataclass(frozen=True)
class ChainState:
    chain_id: int
    steps: Tuple[StepState, ...]

    @property
    def pending(self) -> Optional[StepState]:
        for s in self.steps:
            if not s.satisfied:
                return s
        return None

    @property
    def complete(self) -> bool:
        return self.pending is None

    @property
    def satisfied_count(self) -> int:
        return sum(1 for s in self.steps if s.satisfied)

    def step(self, step_id: int) -> Optional[StepState]:
        for s in self.steps:
            if s.step_id == step_id:
                return s
        return None


def evaluate_chain(db: Session, chain_id: int) -> ChainState:
    steps = list_steps(db, chain_id)
    if not steps:
        raise NoStepsConfigured(f"Approval chain {chain_id} has no steps configured")

    required = required_counts(db, [s.id for s in steps])
    counts = decision_counts(db, chain_id)

    states = []
    for s in steps:
        req = required.get(s.id, 0)
        if req == 0:
            logger.warning("[approvals] chain=%s step=%s (order %s) has no active approvers; treating as satisfied",
                           chain_id, s.id, s.step_order)
        states.append(StepState(
            step_id=s.id,
            order=int(s.step_order),
            name=s.name or "Approval",
            required=req,
            approved=counts.get((s.id, "approved"), 0),
            rejected=counts.get((s.id, "rejected"), 0),
        ))
    return ChainState(chain_id=chain_id, steps=tuple(states))
