# governance/utils/approval_policy.py
from __future__ import annotations
import copy
import os
from pathlib import Path
from typing import Any, Dict, FrozenSet, Optional

import yaml

# Where to read the policy file (compose sets APPROVAL_POLICY_PATH; keep this default as a fallback)
POLICY_PATH = Path(os.getenv(
    "APPROVAL_POLICY_PATH",
    str(Path(__file__).resolve().parents[2] / "policies" / "approval_policy.yaml"),
))

DEFAULT_POLICY: Dict[str, Any] = {
    "entry": {"decision_status": "submitted", "lane": "review"},
    "approve": {"decision_status": "approved", "status": "approved", "lane": "in_progress"},
    "reject": {"enabled": True, "decision_status": "rejected", "status": "rejected", "lane": "analysis"},
    "optional_fields": [
        "status",
        "delivery_status",
        "decision_rationale",
        "decision_role",
        "approver_id",
        "approval_date",
        "updated_at",
    ],
    "max_reason_length": 5000,
}

_LANE_ALIASES = {
    "in-progress": "in_progress",
    "inprogress": "in_progress",
    "new": "intake",
}

# cache in memory
_POLICY: Optional[dict] = None


# -------------------------- loading --------------------------

def _merge(base: dict, override: dict) -> dict:
    out = copy.deepcopy(base)
    for k, v in (override or {}).items():
        if isinstance(v, dict) and isinstance(out.get(k), dict):
            out[k] = _merge(out[k], v)
        else:
            out[k] = v
    return out

def _load_policy_from_file() -> dict:
    data: dict = {}
    if POLICY_PATH.exists():
        with open(POLICY_PATH, "r", encoding="utf-8") as f:
            loaded = yaml.safe_load(f) or {}
            if isinstance(loaded, dict):
                data = loaded
    return _merge(DEFAULT_POLICY, data)

def get_policy() -> dict:
    global _POLICY
    if _POLICY is None:
        _POLICY = _load_policy_from_file()
    return _POLICY

def reload_policy() -> dict:
    global _POLICY
    _POLICY = _load_policy_from_file()
    return _POLICY

def set_policy(overrides: Optional[dict]) -> dict:
    """Replace the cached policy with defaults + ``overrides`` (no file read)."""
    global _POLICY
    _POLICY = _merge(DEFAULT_POLICY, overrides or {})
    return _POLICY


# -------------------------- helpers --------------------------

def normalize_lane(value: Any) -> Optional[str]:
    x = str(value or "").strip().lower()
    if not x:
        return None
    return _LANE_ALIASES.get(x, x)

def entry_decision_status() -> str:
    return str(get_policy()["entry"].get("decision_status") or "submitted").lower()

def entry_lane() -> Optional[str]:
    return normalize_lane(get_policy()["entry"].get("lane"))

def transition(outcome: str) -> Dict[str, Any]:
    """Target values for the host entity on 'approve' or 'reject'."""
    cfg = dict(get_policy().get(outcome) or {})
    cfg["lane"] = normalize_lane(cfg.get("lane"))
    return cfg

def reject_transition_enabled() -> bool:
    return bool(transition("reject").get("enabled", True))

def optional_fields() -> FrozenSet[str]:
    return frozenset(str(f) for f in (get_policy().get("optional_fields") or []))

def clamp_reason(text: Optional[str]) -> Optional[str]:
    t = (text or "").strip()
    if not t:
        return None
    return t[: int(get_policy().get("max_reason_length") or 5000)]
