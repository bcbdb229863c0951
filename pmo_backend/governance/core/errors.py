"""
Typed failures for the change approval chain.

Every error carries a stable ``kind`` (what the UI switches on) and the HTTP
status the API layer answers with. Routes never build these responses by
hand; ``main.py`` registers one handler for the whole family.
"""
from __future__ import annotations
from typing import Any, Dict, Optional


class ApprovalError(Exception):
    kind = "error"
    status_code = 500

    def __init__(self, message: str = "", details: Optional[Dict[str, Any]] = None):
        super().__init__(message or self.kind)
        self.message = message or self.kind
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"ok": False, "error": self.message, "kind": self.kind}
        if self.details:
            out["details"] = self.details
        return out


class ValidationFailed(ApprovalError):
    kind = "validation_failed"
    status_code = 400


class Unauthenticated(ApprovalError):
    kind = "unauthenticated"
    status_code = 401


class Forbidden(ApprovalError):
    kind = "forbidden"
    status_code = 403


class NotFound(ApprovalError):
    kind = "not_found"
    status_code = 404


class InvalidState(ApprovalError):
    kind = "invalid_state"
    status_code = 409


class ChainNotFound(ApprovalError):
    kind = "chain_not_found"
    status_code = 409


class NoStepsConfigured(ApprovalError):
    kind = "no_steps_configured"
    status_code = 409


class StorageFailure(ApprovalError):
    kind = "storage_failure"
    status_code = 500
