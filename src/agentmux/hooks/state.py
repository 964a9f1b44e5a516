"""Launch-hook bookkeeping per session instance."""

from __future__ import annotations

import threading


class LaunchHookLedger:
    """Remembers sessions whose ``on_launch`` hooks already ran during creation.

    The flag is one-shot: the first attach after creation consumes it and
    skips the hooks; every later launch runs them again.
    """

    def __init__(self) -> None:
        self._ran: set[str] = set()
        self._lock = threading.Lock()

    def mark_ran(self, session_id: str) -> None:
        with self._lock:
            self._ran.add(session_id)

    def consume(self, session_id: str) -> bool:
        with self._lock:
            if session_id in self._ran:
                self._ran.discard(session_id)
                return True
            return False

    def discard(self, session_id: str) -> None:
        with self._lock:
            self._ran.discard(session_id)

    def pending(self, session_id: str) -> bool:
        with self._lock:
            return session_id in self._ran
