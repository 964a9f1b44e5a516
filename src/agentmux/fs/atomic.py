"""Crash-safe writes for config documents, trust records and session logs."""

from __future__ import annotations

import fcntl
import json
import os
import stat
import tempfile
from contextlib import contextmanager, suppress
from pathlib import Path
from typing import Any, Iterator


def atomic_write_text(path: Path, content: str, encoding: str = "utf-8") -> None:
    """Replace ``path`` with ``content`` via a sibling temp file and ``os.replace``.

    Readers see either the previous document or the new one. The permission
    bits of an existing file are carried over, so a user who tightened the
    mode of their config keeps it after a save. On failure the temp file is
    removed and the original is left untouched.
    """

    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    previous_mode = _existing_mode(target)
    fd, temp_path = tempfile.mkstemp(dir=str(target.parent), prefix=f".{target.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding=encoding) as handle:
            handle.write(content)
            handle.flush()
            os.fsync(handle.fileno())
        if previous_mode is not None:
            os.chmod(temp_path, previous_mode)
        os.replace(temp_path, target)
    except BaseException:
        with suppress(FileNotFoundError):
            os.unlink(temp_path)
        raise


def _existing_mode(path: Path) -> int | None:
    try:
        return stat.S_IMODE(path.stat().st_mode)
    except FileNotFoundError:
        return None


@contextmanager
def locked(lock_path: Path) -> Iterator[None]:
    """Hold an exclusive ``flock`` on ``lock_path`` for the duration of the block."""

    lock_path.parent.mkdir(parents=True, exist_ok=True)
    with lock_path.open("a") as handle:
        fcntl.flock(handle.fileno(), fcntl.LOCK_EX)
        try:
            yield
        finally:
            fcntl.flock(handle.fileno(), fcntl.LOCK_UN)


def _ends_with_newline(path: Path) -> bool:
    with path.open("rb") as handle:
        handle.seek(-1, os.SEEK_END)
        return handle.read(1) == b"\n"


def append_jsonl(path: Path, payload: dict[str, Any]) -> None:
    """Append one JSON object as a line. Concurrent writers are serialised by a lock file."""

    line = json.dumps(payload, ensure_ascii=False, default=str) + "\n"
    path.parent.mkdir(parents=True, exist_ok=True)
    with locked(path.with_name(f"{path.name}.lock")):
        # A previous writer may have died mid-line.
        repair = path.exists() and path.stat().st_size > 0 and not _ends_with_newline(path)
        with path.open("a", encoding="utf-8") as handle:
            if repair:
                handle.write("\n")
            handle.write(line)
            handle.flush()
            os.fsync(handle.fileno())
