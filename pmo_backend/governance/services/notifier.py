"""
Fire-and-forget side effects for approval outcomes.

``emit`` is called after the decision (and any change transition) has been
committed. Each sink runs on its own and a failing sink is logged and
counted, never raised: an audit or Slack outage must not fail an approval.
"""
from __future__ import annotations
import logging
from dataclasses import asdict, dataclass, field
from typing import Any, Callable, Dict, Optional

import requests

from governance.core.database import SessionLocal
from governance.metrics import notify_failures_total
from governance.services.audit import record_audit
from governance.utils.audit_sink import write_event
from governance.utils.runtime_config import audit_file_enabled, get_slack_webhook
from governance.utils.timeutil import utcnow

logger = logging.getLogger(__name__)

STEP_DECIDED = "APPROVAL_STEP_DECIDED"
STEP_REJECTED = "APPROVAL_STEP_REJECTED"
CHAIN_APPROVED = "CHAIN_APPROVED"
CHANGE_REJECTED = "CHANGE_REJECTED"


@dataclass
class ApprovalEvent:
    action: str
    change_request_id: int
    project_id: Optional[str]
    actor: str
    actor_role: str
    chain_id: Optional[int] = None
    step_id: Optional[int] = None
    step_order: Optional[int] = None
    note: Optional[str] = None
    payload: Dict[str, Any] = field(default_factory=dict)

    def details(self) -> Dict[str, Any]:
        d = {k: v for k, v in asdict(self).items()
             if k not in ("action", "change_request_id", "project_id", "actor", "actor_role", "payload")}
        d.update(self.payload or {})
        return d

    def summary(self) -> str:
        step = f" step {self.step_order}" if self.step_order is not None else ""
        return f"Change #{self.change_request_id}: {self.action.lower()}{step} by {self.actor} ({self.actor_role})"


def _slack_send(event: ApprovalEvent) -> None:
    url = get_slack_webhook()
    if not url:
        return
    payload = {
        "text": event.summary(),
        "blocks": [
            {"type": "section", "text": {"type": "mrkdwn", "text": f"*{event.action}*\n{event.summary()}"}},
        ],
    }
    if event.note:
        payload["blocks"].append({"type": "context", "elements": [{"type": "mrkdwn", "text": event.note[:500]}]})
    r = requests.post(url, json=payload, timeout=10)
    if r.status_code >= 300:
        raise RuntimeError(f"slack returned {r.status_code}: {r.text[:300]}")


class ApprovalNotifier:
    """
    ``dispatch`` decides when the sinks run; by default inline. The API layer
    passes ``BackgroundTasks.add_task`` so sinks run after the response.
    """

    def __init__(
        self,
        dispatch: Optional[Callable[..., Any]] = None,
        session_factory: Callable[[], Any] = SessionLocal,
        slack: bool = True,
    ):
        self._dispatch = dispatch
        self._session_factory = session_factory
        self._slack = slack

    def emit(self, event: ApprovalEvent) -> None:
        try:
            if self._dispatch is not None:
                self._dispatch(self.deliver, event)
            else:
                self.deliver(event)
        except Exception as e:
            notify_failures_total.labels(sink="dispatch").inc()
            logger.warning("[notify] dispatch failed for %s: %s", event.action, e)

    def deliver(self, event: ApprovalEvent) -> None:
        row_id = self._to_db(event)
        self._to_file(event, row_id)
        if self._slack:
            self._to_slack(event)

    def _to_db(self, event: ApprovalEvent) -> Optional[int]:
        db = None
        try:
            db = self._session_factory()
            row = record_audit(db, event.action, event.change_request_id, event.project_id,
                               event.actor, event.actor_role, event.details())
            return row.id
        except Exception as e:
            notify_failures_total.labels(sink="db").inc()
            logger.warning("[notify] audit row failed for change=%s: %s", event.change_request_id, e)
            if db is not None:
                db.rollback()
            return None
        finally:
            if db is not None:
                db.close()

    def _to_file(self, event: ApprovalEvent, row_id: Optional[int]) -> None:
        if not audit_file_enabled():
            return
        try:
            write_event({
                "id": row_id,
                "action": event.action,
                "change_request_id": event.change_request_id,
                "project_id": event.project_id,
                "actor": event.actor,
                "actor_role": event.actor_role,
                "details": event.details(),
                "created_at": utcnow().isoformat(),
            })
        except Exception as e:
            notify_failures_total.labels(sink="file").inc()
            logger.warning("[notify] audit file write failed: %s", e)

    def _to_slack(self, event: ApprovalEvent) -> None:
        try:
            _slack_send(event)
        except Exception as e:
            notify_failures_total.labels(sink="slack").inc()
            logger.warning("[slack] send error: %s", e)
