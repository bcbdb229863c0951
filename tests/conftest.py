"""Pytest configuration and fixtures for the change approval service."""

import os
import tempfile

# Must be set before the app (and its engine) is imported.
os.environ["DATABASE_URL"] = os.getenv("TEST_DATABASE_URL", "sqlite://")
os.environ.setdefault("AUDIT_DIR", tempfile.mkdtemp(prefix="pmo-audit-"))
os.environ["SLACK_WEBHOOK_URL"] = ""

from typing import Iterable, List, Optional

import pytest
from fastapi.testclient import TestClient

from pmo_backend.main import app
from governance.core.database import Base, SessionLocal, engine
from governance.core.security import create_access_token
from governance.crud.change_request import reset_column_cache
from governance.models import (
    ApprovalChain,
    ApprovalStep,
    ApproverDelegation,
    ChangeRequest,
    OrganisationApprover,
    StepApprover,
)
from governance.utils.approval_policy import reload_policy
from governance.utils.runtime_config import set_slack_webhook


@pytest.fixture(scope="function")
def db():
    """Fresh schema per test on the shared in-memory engine."""
    Base.metadata.create_all(engine)
    reset_column_cache()
    reload_policy()
    set_slack_webhook("")
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(engine)


@pytest.fixture
def client(db):
    with TestClient(app) as c:
        yield c


def _bearer(user_id: str, role: str = "member") -> dict:
    return {"Authorization": f"Bearer {create_access_token(user_id, role)}"}


class Seeder:
    """Builds chains, approvers, changes and delegations the way submission would."""

    def __init__(self, db, organisation_id: str = "org-1"):
        self.db = db
        self.organisation_id = organisation_id
        self._principals = {}

    def principal(self, user_id: str, active: bool = True) -> OrganisationApprover:
        if user_id not in self._principals:
            p = OrganisationApprover(organisation_id=self.organisation_id, user_id=user_id,
                                     label=f"Approver {user_id}", is_active=active)
            self.db.add(p)
            self.db.flush()
            self._principals[user_id] = p
        return self._principals[user_id]

    def chain(self, steps: Iterable[Iterable[str]], artifact_id: str = "art-1"):
        chain = ApprovalChain(artifact_id=artifact_id)
        self.db.add(chain)
        self.db.flush()
        out: List[ApprovalStep] = []
        for i, users in enumerate(steps, start=1):
            step = ApprovalStep(chain_id=chain.id, step_order=i, name=f"Step {i}")
            self.db.add(step)
            self.db.flush()
            for uid in users:
                self.db.add(StepApprover(step_id=step.id, approver_type="user",
                                         approver_id=self.principal(uid).id, active=True))
            out.append(step)
        self.db.commit()
        return chain, out

    def change(self, artifact_id: Optional[str] = "art-1", decision_status: str = "submitted",
               lane: Optional[str] = "review", chain_id: Optional[int] = None,
               project_id: str = "proj-1") -> ChangeRequest:
        cr = ChangeRequest(project_id=project_id, title="Swap vendor", artifact_id=artifact_id,
                           approval_chain_id=chain_id, status="submitted",
                           delivery_status=lane, decision_status=decision_status)
        self.db.add(cr)
        self.db.commit()
        self.db.refresh(cr)
        return cr

    def flow(self, steps: Iterable[Iterable[str]], **change_kw):
        chain, step_rows = self.chain(steps)
        cr = self.change(**change_kw)
        return cr, chain, step_rows

    def delegation(self, approver: str, delegate: str, starts_at=None, ends_at=None,
                   active: bool = True) -> ApproverDelegation:
        d = ApproverDelegation(organisation_id=self.organisation_id, approver_user_id=approver,
                               delegate_user_id=delegate, starts_at=starts_at, ends_at=ends_at,
                               is_active=active)
        self.db.add(d)
        self.db.commit()
        return d


@pytest.fixture
def seed(db) -> Seeder:
    return Seeder(db)


@pytest.fixture
def bearer():
    """Authorization header factory: bearer("alice", "admin")."""
    return _bearer
