"""Trust decisions for repository-provided hooks.

Repo hooks live in a file anyone can commit to a repository, so they only run
after the user approved the exact command text. Approval is keyed by a sha256
of the hook lists; changing any command invalidates it. Global and profile
hooks never pass through here.
"""

from __future__ import annotations

import hashlib
import json
import logging
import threading
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Protocol

from ..config.types import HooksSection, is_set
from ..errors import ConfigIOError, ConfigMalformedError, HookHashMismatch
from ..fs.atomic import atomic_write_text
from ..paths import trust_store_path


logger = logging.getLogger(__name__)

_STORE_VERSION = 1


class TrustDecision(str, Enum):
    TRUSTED = "trusted"
    SKIPPED = "skipped"


class TrustStatusKind(str, Enum):
    NO_HOOKS = "no_hooks"
    TRUSTED = "trusted"
    NEEDS_APPROVAL = "needs_approval"
    PREVIOUSLY_SKIPPED = "previously_skipped"


@dataclass(frozen=True)
class TrustStatus:
    kind: TrustStatusKind
    current_hash: str | None = None

    @property
    def trusted(self) -> bool:
        return self.kind == TrustStatusKind.TRUSTED


@dataclass(frozen=True)
class TrustRecord:
    repo_path: str
    content_hash: str
    decision: TrustDecision
    last_seen: str

    def to_dict(self) -> dict[str, Any]:
        return {"hash": self.content_hash, "decision": self.decision.value, "last_seen": self.last_seen}

    @classmethod
    def from_dict(cls, repo_path: str, payload: dict[str, Any]) -> "TrustRecord":
        return cls(
            repo_path=repo_path,
            content_hash=str(payload["hash"]),
            decision=TrustDecision(payload["decision"]),
            last_seen=str(payload.get("last_seen") or ""),
        )


class TrustStore(Protocol):
    def load(self, repo_path: str) -> TrustRecord | None: ...

    def save(self, record: TrustRecord) -> None: ...

    def delete(self, repo_path: str) -> None: ...


class MemoryTrustStore:
    def __init__(self) -> None:
        self._records: dict[str, TrustRecord] = {}
        self._lock = threading.Lock()

    def load(self, repo_path: str) -> TrustRecord | None:
        with self._lock:
            return self._records.get(repo_path)

    def save(self, record: TrustRecord) -> None:
        with self._lock:
            self._records[record.repo_path] = record

    def delete(self, repo_path: str) -> None:
        with self._lock:
            self._records.pop(repo_path, None)


class JsonTrustStore:
    """Trust records in ``<data_dir>/trust/hooks.json``, written atomically."""

    def __init__(self, data_dir: Path | None = None) -> None:
        self.path = trust_store_path(data_dir)
        self._lock = threading.Lock()

    def _read_all(self) -> dict[str, TrustRecord]:
        if not self.path.exists():
            return {}
        try:
            payload = json.loads(self.path.read_text(encoding="utf-8") or "{}")
        except OSError as exc:
            raise ConfigIOError(self.path) from exc
        except UnicodeDecodeError as exc:
            raise ConfigMalformedError(self.path, f"不是有效的 UTF-8：{exc}") from exc
        except json.JSONDecodeError as exc:
            raise ConfigMalformedError(self.path, str(exc)) from exc
        records = payload.get("records", {}) if isinstance(payload, dict) else None
        if not isinstance(records, dict):
            raise ConfigMalformedError(self.path, "records 必須為物件")
        try:
            return {path: TrustRecord.from_dict(path, item) for path, item in records.items()}
        except (KeyError, TypeError, ValueError) as exc:
            raise ConfigMalformedError(self.path, f"trust 紀錄格式錯誤：{exc}") from exc

    def _write_all(self, records: dict[str, TrustRecord]) -> None:
        payload = {
            "version": _STORE_VERSION,
            "records": {path: record.to_dict() for path, record in sorted(records.items())},
        }
        try:
            atomic_write_text(self.path, json.dumps(payload, ensure_ascii=False, indent=2) + "\n")
        except OSError as exc:
            raise ConfigIOError(self.path, action="寫入") from exc

    def load(self, repo_path: str) -> TrustRecord | None:
        with self._lock:
            return self._read_all().get(repo_path)

    def save(self, record: TrustRecord) -> None:
        with self._lock:
            records = self._read_all()
            records[record.repo_path] = record
            self._write_all(records)

    def delete(self, repo_path: str) -> None:
        with self._lock:
            records = self._read_all()
            if records.pop(repo_path, None) is not None:
                self._write_all(records)


def canonical_repo_path(repo_path: Path | str) -> str:
    return str(Path(repo_path).expanduser().resolve())


def has_hooks(hooks: HooksSection | None) -> bool:
    if hooks is None:
        return False
    return any(is_set(value) and value for _, value in hooks.leaves())


def compute_hooks_hash(hooks: HooksSection) -> str:
    """sha256 over a canonical JSON encoding of both hook lists.

    An absent field encodes as ``null`` and an explicit empty list as ``[]``.
    """

    payload = {
        "on_create": list(hooks.on_create) if is_set(hooks.on_create) else None,
        "on_launch": list(hooks.on_launch) if is_set(hooks.on_launch) else None,
    }
    encoded = json.dumps(payload, ensure_ascii=False, sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(encoded.encode("utf-8")).hexdigest()


def _now_iso() -> str:
    return datetime.now().astimezone().isoformat(timespec="seconds")


def verify_hash(record: TrustRecord, current_hash: str) -> None:
    if record.content_hash != current_hash:
        raise HookHashMismatch(record.content_hash, current_hash)


class HookTrustManager:
    def __init__(self, store: TrustStore) -> None:
        self.store = store

    def check_trust(self, repo_path: Path | str, repo_hooks: HooksSection | None) -> TrustStatus:
        if repo_hooks is None or not has_hooks(repo_hooks):
            return TrustStatus(TrustStatusKind.NO_HOOKS)
        current_hash = compute_hooks_hash(repo_hooks)
        record = self.store.load(canonical_repo_path(repo_path))
        if record is None:
            return TrustStatus(TrustStatusKind.NEEDS_APPROVAL, current_hash)
        try:
            verify_hash(record, current_hash)
        except HookHashMismatch as exc:
            logger.info("repo hook 已變更，需要重新核准：%s（%s）", repo_path, exc)
            return TrustStatus(TrustStatusKind.NEEDS_APPROVAL, current_hash)
        if record.decision == TrustDecision.SKIPPED:
            return TrustStatus(TrustStatusKind.PREVIOUSLY_SKIPPED, current_hash)
        return TrustStatus(TrustStatusKind.TRUSTED, current_hash)

    def record_decision(self, repo_path: Path | str, content_hash: str, decision: TrustDecision) -> TrustRecord:
        record = TrustRecord(
            repo_path=canonical_repo_path(repo_path),
            content_hash=content_hash,
            decision=TrustDecision(decision),
            last_seen=_now_iso(),
        )
        self.store.save(record)
        logger.info(
            "已記錄 repo hook 信任決定：%s -> %s",
            record.repo_path,
            record.decision.value,
            extra={"repo_path": record.repo_path},
        )
        return record

    def forget(self, repo_path: Path | str) -> None:
        self.store.delete(canonical_repo_path(repo_path))
