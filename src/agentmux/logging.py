"""Per-session JSONL event log.

Hook output stays out of the application log. Each session gets
``logs/sessions/<session_id>.jsonl``, one event per line, so a dashboard can
show what a session's hooks printed.
"""

from __future__ import annotations

import json
from datetime import datetime
from pathlib import Path
from typing import Any

from .fs.atomic import append_jsonl
from .paths import session_log_path


def log_session_event(session_id: str, event: dict[str, Any], data_dir: Path | None = None) -> None:
    record = {"ts": datetime.now().astimezone().isoformat(timespec="seconds"), "level": "INFO"}
    record.update(event)
    record["session_id"] = session_id
    append_jsonl(session_log_path(session_id, data_dir), record)


def read_session_events(session_id: str, data_dir: Path | None = None) -> list[dict[str, Any]]:
    """Return the session's events in write order; a missing log is an empty list."""

    path = session_log_path(session_id, data_dir)
    if not path.exists():
        return []
    events = []
    for line in path.read_text(encoding="utf-8").splitlines():
        if line.strip():
            events.append(json.loads(line))
    return events
