"""Session lifecycle: resolve configuration, check trust, run hooks.

Creation runs on a worker thread off the caller's. A failing ``on_create``
aborts the session (the ``cleanup`` callback removes whatever was half-built);
a failing ``on_launch`` only warns.
"""

from __future__ import annotations

import logging
import threading
import uuid
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, Optional

from ..config.env import effective_env
from ..config.merge import resolve
from ..config.store import LayerStore
from ..config.types import EnvSpec, ResolvedConfig
from ..errors import HookError, HookUnexpectedError
from ..hooks.runner import ContainerTarget, ExecutionTarget, HookExecutionResult, HookKind, HookRunner, HostTarget
from ..hooks.state import LaunchHookLedger
from ..hooks.trust import HookTrustManager, TrustDecision, TrustStatus, TrustStatusKind
from ..logging import log_session_event
from ..sandbox.runtime import DockerRuntime


logger = logging.getLogger(__name__)

Approver = Callable[[Path, TrustStatus], Optional[bool]]
Cleanup = Callable[["Session"], None]

CONTAINER_WORKSPACE_ROOT = "/workspace"


@dataclass
class SandboxInfo:
    container_name: str
    image: str
    enabled: bool = True
    workdir: str | None = None
    extra_env_keys: list[str] = field(default_factory=list)
    extra_env_values: dict[str, str] = field(default_factory=dict)


@dataclass
class Session:
    id: str
    title: str
    project_path: Path
    profile: str | None = None
    sandbox: SandboxInfo | None = None

    @classmethod
    def new(cls, title: str, project_path: Path | str, *, profile: str | None = None) -> "Session":
        return cls(
            id=uuid.uuid4().hex[:12],
            title=title,
            project_path=Path(project_path).expanduser(),
            profile=profile,
        )

    @property
    def is_sandboxed(self) -> bool:
        return self.sandbox is not None and self.sandbox.enabled


class CreationStatus(str, Enum):
    CREATED = "created"
    ABORTED = "aborted"


@dataclass
class CreationOutcome:
    session: Session
    status: CreationStatus
    create_result: HookExecutionResult
    launch_result: HookExecutionResult | None = None

    @property
    def error(self) -> HookError | None:
        return self.create_result.error

    @property
    def warnings(self) -> list[HookError]:
        return list(self.launch_result.warnings) if self.launch_result else []


class SessionLifecycle:
    def __init__(
        self,
        store: LayerStore,
        trust: HookTrustManager,
        runner: HookRunner,
        *,
        ledger: LaunchHookLedger | None = None,
        runtime: DockerRuntime | None = None,
        max_workers: int = 1,
    ) -> None:
        self.store = store
        self.trust = trust
        self.runner = runner
        self.ledger = ledger or LaunchHookLedger()
        self.runtime = runtime or DockerRuntime()
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="agentmux-hooks")
        # Session id -> (cancel event, number of hook runs in flight).
        self._in_flight: dict[str, tuple[threading.Event, int]] = {}
        self._lock = threading.Lock()

    def resolve_for(self, session: Session, approver: Approver | None = None) -> ResolvedConfig:
        global_doc = self.store.load_global()
        profile_name = session.profile or global_doc.default_profile
        profile_doc = self.store.load_profile(profile_name)
        repo_doc = self.store.load_repo(session.project_path)

        include_repo_hooks = True
        if repo_doc is not None:
            status = self.trust.check_trust(session.project_path, repo_doc.hooks)
            include_repo_hooks = self._decide(session, status, approver)
        return resolve(global_doc, profile_doc, repo_doc, repo_hooks=include_repo_hooks)

    def _decide(self, session: Session, status: TrustStatus, approver: Approver | None) -> bool:
        if status.kind in {TrustStatusKind.NO_HOOKS, TrustStatusKind.TRUSTED}:
            return True
        if status.kind == TrustStatusKind.PREVIOUSLY_SKIPPED:
            logger.info("repo hook 先前已略過：%s", session.project_path)
            return False

        answer = approver(session.project_path, status) if approver is not None else None
        if answer is None:
            logger.warning("repo hook 尚未核准，本次不執行：%s", session.project_path)
            return False
        decision = TrustDecision.TRUSTED if answer else TrustDecision.SKIPPED
        self.trust.record_decision(session.project_path, status.current_hash or "", decision)
        return bool(answer)

    def target_for(self, session: Session, resolved: ResolvedConfig) -> ExecutionTarget:
        if not session.is_sandboxed:
            return HostTarget(cwd=session.project_path)
        sandbox = session.sandbox
        extra = EnvSpec(names=tuple(sandbox.extra_env_keys), values=dict(sandbox.extra_env_values))
        workdir = sandbox.workdir or f"{CONTAINER_WORKSPACE_ROOT}/{session.project_path.name or 'workspace'}"
        return ContainerTarget(
            name=sandbox.container_name,
            workdir=workdir,
            env=effective_env(resolved, extra=extra),
        )

    def attach_command(self, session: Session, resolved: ResolvedConfig) -> str | None:
        """``docker exec`` prefix for attaching to a sandboxed session, ``None`` on the host."""

        target = self.target_for(session, resolved)
        if not isinstance(target, ContainerTarget):
            return None
        return self.runtime.exec_command(target.name, target.env, workdir=target.workdir)

    def _begin(self, session_id: str) -> threading.Event:
        with self._lock:
            event, count = self._in_flight.get(session_id, (None, 0))
            if event is None:
                event = threading.Event()
            self._in_flight[session_id] = (event, count + 1)
            return event

    def _finish(self, session_id: str, event: threading.Event) -> None:
        with self._lock:
            entry = self._in_flight.get(session_id)
            if entry is None or entry[0] is not event:
                return
            if entry[1] <= 1:
                del self._in_flight[session_id]
            else:
                self._in_flight[session_id] = (event, entry[1] - 1)

    def in_flight(self, session_id: str) -> bool:
        with self._lock:
            return session_id in self._in_flight

    def create(
        self,
        session: Session,
        *,
        approver: Approver | None = None,
        cleanup: Cleanup | None = None,
    ) -> "Future[CreationOutcome]":
        resolved = self.resolve_for(session, approver)
        cancel_event = self._begin(session.id)
        try:
            return self._executor.submit(self._run_create, session, resolved, cancel_event, cleanup)
        except RuntimeError:
            self._finish(session.id, cancel_event)
            raise

    def _run_hooks(
        self,
        session: Session,
        resolved: ResolvedConfig,
        kind: HookKind,
        target: ExecutionTarget,
        cancel_event: threading.Event,
    ) -> HookExecutionResult:
        try:
            return self.runner.run(
                resolved.hooks,
                kind,
                target,
                cancel_event=cancel_event,
                session_id=session.id,
            )
        except Exception as exc:  # noqa: BLE001
            logger.error(
                "%s hook 執行發生未預期錯誤：%s",
                kind.field_name,
                exc,
                exc_info=True,
                extra={"session_id": session.id, "hook": kind.field_name},
            )
            result = HookExecutionResult(kind=kind, ran=True)
            error = HookUnexpectedError(f"{type(exc).__name__}: {exc}")
            if kind == HookKind.CREATE:
                result.error = error
            else:
                result.warnings.append(error)
            return result

    def _run_create(
        self,
        session: Session,
        resolved: ResolvedConfig,
        cancel_event: threading.Event,
        cleanup: Cleanup | None,
    ) -> CreationOutcome:
        try:
            target = self.target_for(session, resolved)
            create_result = self._run_hooks(session, resolved, HookKind.CREATE, target, cancel_event)
            if not create_result.ok:
                logger.error("建立 session 失敗，已中止：%s（%s）", session.id, create_result.error)
                log_session_event(
                    session.id,
                    {"event": "session_aborted", "level": "ERROR", "error": str(create_result.error)},
                    self.runner.data_dir,
                )
                if cleanup is not None:
                    cleanup(session)
                return CreationOutcome(session=session, status=CreationStatus.ABORTED, create_result=create_result)

            launch_result = self._run_hooks(session, resolved, HookKind.LAUNCH, target, cancel_event)
            # A session deleted mid-creation must not leave a ledger flag behind.
            if launch_result.ran and not launch_result.cancelled and not cancel_event.is_set():
                self.ledger.mark_ran(session.id)
            logger.info("session 已建立：%s", session.id)
            return CreationOutcome(
                session=session,
                status=CreationStatus.CREATED,
                create_result=create_result,
                launch_result=launch_result,
            )
        finally:
            self._finish(session.id, cancel_event)

    def launch(self, session: Session, *, approver: Approver | None = None) -> HookExecutionResult:
        if self.ledger.consume(session.id):
            logger.info("on_launch 已於建立時執行，略過：%s", session.id)
            return HookExecutionResult(kind=HookKind.LAUNCH)
        resolved = self.resolve_for(session, approver)
        cancel_event = self._begin(session.id)
        try:
            return self._run_hooks(session, resolved, HookKind.LAUNCH, self.target_for(session, resolved), cancel_event)
        finally:
            self._finish(session.id, cancel_event)

    def delete(self, session: Session) -> None:
        """Cancel hooks still running for ``session`` and forget its launch flag."""

        with self._lock:
            entry = self._in_flight.pop(session.id, None)
        if entry is not None:
            entry[0].set()
        self.ledger.discard(session.id)
        logger.info("session 已刪除：%s", session.id)

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)
