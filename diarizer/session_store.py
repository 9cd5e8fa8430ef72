"""
In-memory store of finalized diarization results, keyed by session_id.

session_id is generated on the backend (WebSocket). Results are kept after a session
stops so the host can re-query them; the recording itself is never stored here.
"""
from __future__ import annotations

import time
import uuid
from typing import Any

from diarizer.diarization.models import Segment

# session_id -> {
#   "segments": list[Segment],  # sorted by start_ms
#   "finalized": bool,          # False for force_finalize snapshots
#   "error": str | None,        # last reported chunk error
#   "updated_at": float,
# }
_session_store: dict[str, dict[str, Any]] = {}


def generate_session_id() -> str:
    """Generate a new session_id (UUID hex, 12 chars). Backend only."""
    return uuid.uuid4().hex[:12]


def get_session(session_id: str) -> dict[str, Any] | None:
    """Return session dict or None if not found."""
    return _session_store.get(session_id)


def save_result(session_id: str, segments: list[Segment], finalized: bool) -> None:
    """Store or overwrite the latest result for a session."""
    s = _session_store.setdefault(session_id, {"error": None})
    s["segments"] = list(segments)
    s["finalized"] = finalized
    s["updated_at"] = time.time()


def save_error(session_id: str, message: str) -> None:
    s = _session_store.setdefault(session_id, {"segments": [], "finalized": False})
    s["error"] = message
    s["updated_at"] = time.time()


def delete_session(session_id: str) -> bool:
    """Forget a session's results. False if the id was never seen."""
    return _session_store.pop(session_id, None) is not None
