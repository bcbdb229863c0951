from governance.crud.change_request import load_snapshot


def test_approve_requires_bearer_token(client, seed, bearer):
    cr, _, _ = seed.flow([["alice"]])
    r = client.post(f"/api/change/{cr.id}/approve")
    assert r.status_code == 401
    assert r.json() == {"ok": False, "error": "Missing bearer token", "kind": "unauthenticated"}


def test_full_chain_over_http(client, db, seed, bearer):
    cr, chain, _ = seed.flow([["alice"], ["bob", "carol"]])

    r = client.post(f"/api/change/{cr.id}/approve", json={"note": "scope ok"}, headers=bearer("alice"))
    assert r.status_code == 200
    body = r.json()
    assert body["ok"] is True
    assert body["approval_chain_id"] == chain.id
    assert (body["step_complete"], body["chain_complete"]) == (True, False)

    r = client.get(f"/api/change/{cr.id}/approval-progress", headers=bearer("bob"))
    progress = r.json()
    assert progress["current_step"]["order"] == 2
    assert progress["remaining_approvers"] == 2
    assert progress["my_action"] == {"can_approve": True, "on_behalf_of": None}

    client.post(f"/api/change/{cr.id}/approve", headers=bearer("bob"))
    r = client.post(f"/api/change/{cr.id}/decision", json={"decision": "approved"}, headers=bearer("carol"))
    body = r.json()
    assert body["chain_complete"] is True
    assert body["item"]["decision_status"] == "approved"
    assert body["item"]["delivery_status"] == "in_progress"

    r = client.get(f"/api/change/{cr.id}/audit", headers=bearer("alice"))
    actions = [e["action"] for e in r.json()]
    assert actions[0] == "CHAIN_APPROVED"
    assert actions.count("APPROVAL_STEP_DECIDED") == 2


def test_gate_failures_map_to_status_codes(client, seed, bearer):
    cr, _, _ = seed.flow([["alice"]])

    r = client.post(f"/api/change/{cr.id}/approve", headers=bearer("mallory"))
    assert r.status_code == 403
    assert r.json()["kind"] == "forbidden"

    r = client.post("/api/change/424242/approve", headers=bearer("alice"))
    assert r.status_code == 404

    client.post(f"/api/change/{cr.id}/approve", headers=bearer("alice"))
    r = client.post(f"/api/change/{cr.id}/approve", headers=bearer("alice"))
    assert r.status_code == 409
    assert r.json()["kind"] == "invalid_state"
    assert r.json()["details"] == {"decision_status": "approved"}


def test_missing_chain_is_409(client, seed, bearer):
    cr = seed.change(artifact_id=None)
    r = client.post(f"/api/change/{cr.id}/approve", headers=bearer("alice"))
    assert r.status_code == 409
    assert r.json()["kind"] == "chain_not_found"


def test_reject_over_http(client, db, seed, bearer):
    cr, _, _ = seed.flow([["alice"]])
    r = client.post(f"/api/change/{cr.id}/reject", json={"note": "needs costing"}, headers=bearer("alice"))
    body = r.json()
    assert r.status_code == 200
    assert body["rejected"] is True
    assert body["item"]["decision_status"] == "rejected"
    assert load_snapshot(db, cr.id)["delivery_status"] == "analysis"


def test_invalid_decision_value_is_422(client, seed, bearer):
    cr, _, _ = seed.flow([["alice"]])
    r = client.post(f"/api/change/{cr.id}/decision", json={"decision": "maybe"}, headers=bearer("alice"))
    assert r.status_code == 422


def test_holiday_cover_over_http(client, seed, bearer):
    cr, _, _ = seed.flow([["bob"]])
    admin = bearer("root", "admin")

    r = client.post("/api/approvals/delegations", headers=bearer("bob"),
                    json={"organisation_id": "org-1", "approver_user_id": "bob", "delegate_user_id": "dora"})
    assert r.status_code == 403

    r = client.post("/api/approvals/delegations", headers=admin,
                    json={"organisation_id": "org-1", "approver_user_id": "bob", "delegate_user_id": "dora",
                          "reason": "annual leave"})
    assert r.status_code == 201
    delegation_id = r.json()["id"]
    assert r.json()["created_by"] == "root"

    progress = client.get(f"/api/change/{cr.id}/approval-progress", headers=bearer("dora")).json()
    assert progress["my_action"] == {"can_approve": True, "on_behalf_of": "bob"}

    r = client.delete(f"/api/approvals/delegations/{delegation_id}", headers=admin)
    assert r.json()["removed"] is True
    assert client.get("/api/approvals/delegations?organisation_id=org-1", headers=admin).json() == []

    r = client.post(f"/api/change/{cr.id}/approve", headers=bearer("dora"))
    assert r.status_code == 403


def test_self_delegation_is_400(client, bearer):
    r = client.post("/api/approvals/delegations", headers=bearer("root", "admin"),
                    json={"organisation_id": "org-1", "approver_user_id": "bob", "delegate_user_id": "bob"})
    assert r.status_code == 400
    assert r.json()["kind"] == "validation_failed"


def test_inbox_lists_changes_the_caller_can_decide(client, seed, bearer):
    own, _, _ = seed.flow([["alice"], ["bob"]])
    seed.chain([["carol"]], artifact_id="art-2")
    covered = seed.change(artifact_id="art-2")
    seed.delegation("carol", "alice")
    seed.chain([["alice"]], artifact_id="art-3")
    seed.change(artifact_id="art-3", lane="analysis")              # outside the review lane
    seed.change(artifact_id="art-4")                               # no chain registered
    seed.change(decision_status="approved")                        # already decided

    r = client.get("/api/approvals/inbox", headers=bearer("alice"))
    assert r.status_code == 200
    body = r.json()
    assert body["count"] == 2
    assert {i["change_request_id"]: i["on_behalf_of"] for i in body["items"]} == {
        own.id: None,
        covered.id: "carol",
    }

    client.post(f"/api/change/{own.id}/approve", headers=bearer("alice"))

    ids = [i["change_request_id"] for i in client.get("/api/approvals/inbox", headers=bearer("alice")).json()["items"]]
    assert ids == [covered.id]
    bob_items = client.get("/api/approvals/inbox", headers=bearer("bob")).json()["items"]
    assert [(i["change_request_id"], i["step"]["order"]) for i in bob_items] == [(own.id, 2)]


def test_inbox_can_be_scoped_to_a_project(client, seed, bearer):
    seed.chain([["alice"]])
    seed.change(project_id="proj-1")
    other = seed.change(project_id="proj-2")

    r = client.get("/api/approvals/inbox?project_id=proj-2", headers=bearer("alice"))
    assert [i["change_request_id"] for i in r.json()["items"]] == [other.id]
    assert client.get("/api/approvals/inbox").status_code == 401
