import pytest

from governance.core.errors import ValidationFailed
from governance.crud.decision import list_decisions, record_decision
from governance.services.steps import evaluate_chain
from governance.utils.approval_policy import set_policy


def test_same_approver_twice_keeps_one_row(db, seed):
    chain, steps = seed.chain([["alice", "bob"]])
    record_decision(db, chain.id, steps[0].id, "alice", "alice", "approved", "looks fine")
    before = evaluate_chain(db, chain.id).pending.approved

    record_decision(db, chain.id, steps[0].id, "alice", "alice", "approved", "still fine")

    rows = list_decisions(db, chain.id, steps[0].id)
    assert len(rows) == 1
    assert rows[0].reason == "still fine"
    assert evaluate_chain(db, chain.id).pending.approved == before == 1


def test_reject_overwrites_prior_approve_in_place(db, seed):
    chain, steps = seed.chain([["alice"]])
    record_decision(db, chain.id, steps[0].id, "alice", "alice", "approved")
    row = record_decision(db, chain.id, steps[0].id, "alice", "alice", "rejected", "budget missing")

    assert row.decision == "rejected"
    assert len(list_decisions(db, chain.id)) == 1
    assert evaluate_chain(db, chain.id).pending.approved == 0


def test_delegate_overwrite_updates_actor(db, seed):
    chain, steps = seed.chain([["bob"]])
    record_decision(db, chain.id, steps[0].id, "bob", "bob", "approved")
    row = record_decision(db, chain.id, steps[0].id, "bob", "dora", "approved")

    assert row.approver_user_id == "bob"
    assert row.actor_user_id == "dora"


def test_unknown_decision_is_rejected(db, seed):
    chain, steps = seed.chain([["alice"]])
    with pytest.raises(ValidationFailed):
        record_decision(db, chain.id, steps[0].id, "alice", "alice", "maybe")
    assert list_decisions(db, chain.id) == []


def test_reason_is_trimmed_and_clamped(db, seed):
    set_policy({"max_reason_length": 10})
    chain, steps = seed.chain([["alice"]])
    row = record_decision(db, chain.id, steps[0].id, "alice", "alice", "APPROVED", "   0123456789abcdef  ")
    assert row.decision == "approved"
    assert row.reason == "0123456789"

    row = record_decision(db, chain.id, steps[0].id, "alice", "alice", "approved", "   ")
    assert row.reason is None
