"""Thin wrapper around the docker (or compatible) CLI."""

from __future__ import annotations

import logging
import os
import shutil
import subprocess
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Sequence

from ..config.env import build_exec_env_args, shell_escape
from ..errors import ContainerRuntimeError


logger = logging.getLogger(__name__)

RUNTIME_ENV = "AGENTMUX_CONTAINER_RUNTIME"

CommandRunner = Callable[..., "subprocess.CompletedProcess[str]"]


@dataclass(frozen=True)
class CommandOutput:
    returncode: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.returncode == 0


class DockerRuntime:
    def __init__(self, binary: str | None = None, run_command: CommandRunner | None = None) -> None:
        self.binary = binary or os.environ.get(RUNTIME_ENV) or "docker"
        self._run = run_command or subprocess.run

    def _invoke(self, args: Sequence[str]) -> CommandOutput:
        try:
            result: Any = self._run(
                [self.binary, *args],
                capture_output=True,
                text=True,
                errors="replace",
                check=False,
            )
        except OSError as exc:
            raise ContainerRuntimeError(f"無法執行 {self.binary}：{exc}") from exc
        return CommandOutput(
            returncode=int(result.returncode),
            stdout=result.stdout or "",
            stderr=result.stderr or "",
        )

    def is_available(self) -> bool:
        return shutil.which(self.binary) is not None

    def does_container_exist(self, name: str) -> bool:
        return self._invoke(["inspect", "--type", "container", name]).ok

    def is_container_running(self, name: str) -> bool:
        output = self._invoke(["inspect", "-f", "{{.State.Running}}", name])
        return output.ok and output.stdout.strip() == "true"

    def start_container(self, name: str) -> None:
        output = self._invoke(["start", name])
        if not output.ok:
            detail = output.stderr.strip() or f"exit {output.returncode}"
            raise ContainerRuntimeError(f"啟動容器失敗：{name}（{detail}）")
        logger.info("已啟動容器：%s", name)

    def ensure_running(self, name: str) -> None:
        if self.is_container_running(name):
            return
        if not self.does_container_exist(name):
            raise ContainerRuntimeError(f"找不到容器：{name}")
        self.start_container(name)

    def exec(
        self,
        name: str,
        command: str,
        *,
        workdir: str | None = None,
        env: Mapping[str, str] | None = None,
        shell: str = "bash",
    ) -> CommandOutput:
        args = ["exec"]
        if workdir:
            args.extend(["-w", workdir])
        for key, value in (env or {}).items():
            args.extend(["-e", f"{key}={value}"])
        args.extend([name, shell, "-c", command])
        return self._invoke(args)

    def exec_command(self, name: str, env: Mapping[str, str] | None = None, *, workdir: str | None = None) -> str:
        """Interactive ``exec`` prefix as a shell string, for the terminal multiplexer."""

        parts = [self.binary, "exec", "-it"]
        if workdir:
            parts.extend(["-w", shell_escape(workdir)])
        env_args = build_exec_env_args(env or {})
        if env_args:
            parts.append(env_args)
        parts.append(name)
        return " ".join(parts)
