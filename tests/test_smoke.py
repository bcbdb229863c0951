def test_health(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert "approval_decisions" in r.json()["tables"]

def test_metrics_exposed(client):
    r = client.get("/metrics")
    assert r.status_code == 200
    assert "approval_decisions_total" in r.text

def test_login_issues_usable_token(client, monkeypatch):
    monkeypatch.setenv("AUTH_DEV_LOGIN", "1")
    r = client.post("/auth/login", json={"user_id": "alice", "role": "approver"})
    assert r.status_code == 200
    token = r.json()["access_token"]
    r = client.get("/api/approvals/policy", headers={"Authorization": f"Bearer {token}"})
    assert r.status_code == 200
    assert r.json()["entry"]["decision_status"] == "submitted"

def test_policy_reload_is_admin_only(client, bearer):
    assert client.post("/api/approvals/policy/reload", headers=bearer("alice")).status_code == 403
    r = client.post("/api/approvals/policy/reload", headers=bearer("root", "admin"))
    assert r.status_code == 200
    assert "optional_fields" in r.json()["keys"]

def test_login_is_off_unless_dev_login_enabled(client, monkeypatch):
    monkeypatch.delenv("AUTH_DEV_LOGIN", raising=False)
    r = client.post("/auth/login", json={"user_id": "mallory", "role": "admin"})
    assert r.status_code == 403
    assert "access_token" not in r.json()
