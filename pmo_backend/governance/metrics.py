# governance/metrics.py
from prometheus_client import Counter, Histogram

# === Core metrics (definitions ONLY here) ===
approval_decisions_total = Counter(
    "approval_decisions_total", "Approval decisions recorded", ["decision", "role"]
)

chain_completions_total = Counter(
    "approval_chain_completions_total", "Terminal change transitions", ["outcome"]
)

gate_failures_total = Counter(
    "approval_gate_failures_total", "Decisions refused at a gate", ["kind"]
)

notify_failures_total = Counter(
    "approval_notify_failures_total", "Side-effect sink failures (swallowed)", ["sink"]
)

decision_latency_seconds = Histogram(
    "approval_decision_latency_seconds", "Time to process one approval decision"
)

def init_metrics_zero():
    # create label combos at 0 so Grafana never sees “no data”
    for d in ("approved", "rejected"):
        for r in ("approver", "delegate_approver"):
            approval_decisions_total.labels(decision=d, role=r).inc(0)
    for o in ("approved", "rejected", "noop"):
        chain_completions_total.labels(outcome=o).inc(0)
    for k in ("forbidden", "invalid_state", "chain_not_found", "no_steps_configured", "not_found"):
        gate_failures_total.labels(kind=k).inc(0)
    for s in ("db", "file", "slack", "dispatch"):
        notify_failures_total.labels(sink=s).inc(0)
