"""Hook execution runner.

Runs a resolved hook list either on the host (in the project directory) or
inside the session's container (in its mount point). Where a command runs is
decided by the target alone; the layer a hook came from plays no part.

Failure semantics depend on the hook kind:

* ``create``: the first failing command stops the sequence and the result
  carries the error; the caller discards the half-created session.
* ``launch``: failures are logged as warnings and the remaining commands
  still run; the session starts regardless.
"""

from __future__ import annotations

import logging
import shutil
import subprocess
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from threading import Event
from typing import Callable, Mapping, Protocol, Sequence, Union

from ..config.types import HooksSection, is_set
from ..errors import (
    ContainerRuntimeError,
    HookCancelled,
    HookContainerUnavailable,
    HookError,
    HookNonZeroExit,
)
from ..logging import log_session_event
from ..sandbox.runtime import CommandOutput, DockerRuntime


logger = logging.getLogger(__name__)

_MAX_OUTPUT_CHARS = 64 * 1024


class HookKind(str, Enum):
    CREATE = "create"
    LAUNCH = "launch"

    @property
    def field_name(self) -> str:
        return f"on_{self.value}"


@dataclass(frozen=True)
class HostTarget:
    cwd: Path


@dataclass(frozen=True)
class ContainerTarget:
    name: str
    workdir: str
    env: Mapping[str, str] = field(default_factory=dict)


ExecutionTarget = Union[HostTarget, ContainerTarget]


@dataclass
class HookExecutionResult:
    kind: HookKind
    ran: bool = False
    error: HookError | None = None
    warnings: list[HookError] = field(default_factory=list)
    commands_run: int = 0
    cancelled: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None

    def summary(self) -> str:
        if not self.ran:
            return f"{self.kind.field_name}：沒有需要執行的 hook"
        if self.error is not None:
            return f"{self.kind.field_name} 失敗：{self.error}"
        if self.warnings:
            return f"{self.kind.field_name} 完成，{len(self.warnings)} 個指令失敗"
        return f"{self.kind.field_name} 完成（{self.commands_run} 個指令）"


class CommandExecutor(Protocol):
    def prepare(self, target: ExecutionTarget) -> None: ...

    def run(self, command: str, target: ExecutionTarget) -> CommandOutput: ...


def _default_shell() -> str:
    return "bash" if shutil.which("bash") else "sh"


class ShellCommandExecutor:
    """Runs hook commands with ``bash -c`` on the host or via ``docker exec``."""

    def __init__(
        self,
        runtime: DockerRuntime | None = None,
        *,
        run_command: Callable[..., "subprocess.CompletedProcess[str]"] | None = None,
        shell: str | None = None,
    ) -> None:
        self.runtime = runtime or DockerRuntime()
        self._run = run_command or subprocess.run
        self.shell = shell or _default_shell()

    def prepare(self, target: ExecutionTarget) -> None:
        if isinstance(target, ContainerTarget):
            self.runtime.ensure_running(target.name)

    def run(self, command: str, target: ExecutionTarget) -> CommandOutput:
        if isinstance(target, ContainerTarget):
            return self.runtime.exec(target.name, command, workdir=target.workdir, env=target.env)
        try:
            result = self._run(
                [self.shell, "-c", command],
                cwd=str(target.cwd),
                capture_output=True,
                text=True,
                errors="replace",
                check=False,
            )
        except OSError as exc:
            return CommandOutput(returncode=127, stderr=f"執行失敗：{exc}")
        return CommandOutput(returncode=int(result.returncode), stdout=result.stdout or "", stderr=result.stderr or "")


def select_commands(hooks: HooksSection, kind: HookKind) -> list[str]:
    value = getattr(hooks, kind.field_name)
    return list(value) if is_set(value) else []


def _truncate(text: str) -> str:
    if len(text) <= _MAX_OUTPUT_CHARS:
        return text
    return text[:_MAX_OUTPUT_CHARS] + "\n...[truncated]"


def _describe(target: ExecutionTarget) -> str:
    if isinstance(target, ContainerTarget):
        return f"container:{target.name}:{target.workdir}"
    return f"host:{target.cwd}"


class HookRunner:
    def __init__(self, executor: CommandExecutor | None = None, *, data_dir: Path | None = None) -> None:
        self.executor = executor or ShellCommandExecutor()
        self.data_dir = data_dir

    def run(
        self,
        hooks: HooksSection,
        kind: HookKind,
        target: ExecutionTarget,
        *,
        cancel_event: Event | None = None,
        session_id: str | None = None,
    ) -> HookExecutionResult:
        return self.run_commands(
            select_commands(hooks, kind),
            kind,
            target,
            cancel_event=cancel_event,
            session_id=session_id,
        )

    def run_commands(
        self,
        commands: Sequence[str],
        kind: HookKind,
        target: ExecutionTarget,
        *,
        cancel_event: Event | None = None,
        session_id: str | None = None,
    ) -> HookExecutionResult:
        result = HookExecutionResult(kind=HookKind(kind))
        if not commands:
            return result
        result.ran = True

        if isinstance(target, ContainerTarget):
            try:
                self.executor.prepare(target)
            except ContainerRuntimeError as exc:
                self._fail(result, HookContainerUnavailable(target.name, str(exc)), session_id)
                return result

        for index, command in enumerate(commands):
            if cancel_event is not None and cancel_event.is_set():
                result.cancelled = True
                logger.info(
                    "%s 已取消，略過剩餘 %d 個指令",
                    kind.field_name,
                    len(commands) - index,
                    extra={"session_id": session_id, "hook": kind.field_name},
                )
                if kind == HookKind.CREATE:
                    result.error = HookCancelled(index)
                break

            logger.info(
                "執行 %s hook（%s）：%s",
                kind.field_name,
                _describe(target),
                command,
                extra={"session_id": session_id, "hook": kind.field_name},
            )
            try:
                output = self.executor.run(command, target)
            except ContainerRuntimeError as exc:
                name = target.name if isinstance(target, ContainerTarget) else "host"
                error: HookError = HookContainerUnavailable(name, str(exc))
                if self._fail(result, error, session_id):
                    break
                continue
            result.commands_run += 1
            self._record(session_id, kind, index, command, target, output)

            if output.returncode != 0:
                if self._fail(result, HookNonZeroExit(command, output.returncode), session_id):
                    break
        return result

    def _fail(self, result: HookExecutionResult, error: HookError, session_id: str | None) -> bool:
        """Record ``error`` per the result's kind. Returns True when execution must stop."""

        context = {"session_id": session_id, "hook": result.kind.field_name}
        if result.kind == HookKind.CREATE:
            logger.error("%s hook 失敗：%s", result.kind.field_name, error, extra=context)
            result.error = error
            stop = True
        else:
            logger.warning("%s hook 失敗，繼續執行：%s", result.kind.field_name, error, extra=context)
            result.warnings.append(error)
            stop = isinstance(error, HookContainerUnavailable)
        if session_id:
            log_session_event(
                session_id,
                {
                    "event": "hook_failed",
                    "level": "ERROR" if result.kind == HookKind.CREATE else "WARNING",
                    "hook": result.kind.field_name,
                    "error": str(error),
                },
                self.data_dir,
            )
        return stop

    def _record(
        self,
        session_id: str | None,
        kind: HookKind,
        index: int,
        command: str,
        target: ExecutionTarget,
        output: CommandOutput,
    ) -> None:
        if not session_id:
            return
        log_session_event(
            session_id,
            {
                "event": "hook_command",
                "hook": kind.field_name,
                "index": index,
                "command": command,
                "target": _describe(target),
                "exit_code": output.returncode,
                "stdout": _truncate(output.stdout),
                "stderr": _truncate(output.stderr),
            },
            self.data_dir,
        )
