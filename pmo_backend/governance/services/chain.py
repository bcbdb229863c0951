from __future__ import annotations
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from governance.core.errors import ChainNotFound
from governance.crud.approval import get_chain, latest_chain_for_artifact


def resolve_chain_id(db: Session, change: Optional[Dict[str, Any]] = None, artifact_id: Optional[str] = None) -> int:
    """
    Chain for a change request: its stored approval_chain_id if set, otherwise
    the newest chain registered against its artifact. Never creates one.
    """
    change = change or {}
    stored = change.get("approval_chain_id")
    if stored and get_chain(db, int(stored)) is not None:
        return int(stored)

    art = str(artifact_id or change.get("artifact_id") or "").strip()
    if art:
        chain = latest_chain_for_artifact(db, art)
        if chain is not None:
            return chain.id

    raise ChainNotFound(
        "No approval chain registered for this change request. "
        "Ensure submission created the approval chain."
    )
