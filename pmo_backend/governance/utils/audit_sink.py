from __future__ import annotations
import os, json
from datetime import datetime, timezone
from pathlib import Path
from threading import Lock
from typing import Dict, Any, List

# Default: pmo_backend/var/audit (override with env AUDIT_DIR)
_DEFAULT_DIR = Path(__file__).resolve().parents[2] / "var" / "audit"
AUDIT_DIR = Path(os.getenv("AUDIT_DIR", str(_DEFAULT_DIR)))

_write_lock = Lock()

def _day_file(day: str) -> Path:
    return AUDIT_DIR / f"approvals-{day}.jsonl"

def write_event(event: Dict[str, Any]) -> Path:
    """
    Append a single approval event to a day-partitioned .jsonl file.
    Each line is a JSON object.
    """
    day = datetime.now(timezone.utc).strftime("%Y-%m-%d")
    fp = _day_file(day)
    with _write_lock:
        AUDIT_DIR.mkdir(parents=True, exist_ok=True)
        with fp.open("a", encoding="utf-8") as fh:
            json.dump(event, fh, ensure_ascii=False, default=str)
            fh.write("\n")
    return fp

def read_events(day: str) -> List[Dict[str, Any]]:
    fp = _day_file(day)
    if not fp.exists():
        return []
    with fp.open("r", encoding="utf-8") as fh:
        return [json.loads(line) for line in fh if line.strip()]
