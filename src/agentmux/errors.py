"""Error definitions for agentmux."""

from __future__ import annotations

from pathlib import Path


class AgentmuxError(RuntimeError):
    """Base class for agentmux errors."""


class ConfigError(AgentmuxError):
    """Base class for configuration layer errors."""

    def __init__(self, path: Path, message: str) -> None:
        super().__init__(message)
        self.path = Path(path)


class ConfigMalformedError(ConfigError):
    """Raised when a config file exists but cannot be parsed or validated."""

    def __init__(self, path: Path, reason: str) -> None:
        super().__init__(path, f"設定檔格式錯誤：{path}（{reason}）")
        self.reason = reason


class ConfigIOError(ConfigError):
    """Raised on filesystem failures while loading or saving a document."""

    def __init__(self, path: Path, action: str = "讀取") -> None:
        super().__init__(path, f"{action}設定檔失敗：{path}")
        self.action = action


class TrustError(AgentmuxError):
    """Base class for hook trust errors."""


class HookHashMismatch(TrustError):
    """Stored trust hash differs from the current repository hooks."""

    def __init__(self, expected: str, actual: str) -> None:
        super().__init__(f"hook 內容已變更，需要重新核准（{expected[:12]} != {actual[:12]}）")
        self.expected = expected
        self.actual = actual


class HookError(AgentmuxError):
    """Base class for hook execution failures.

    These are carried inside ``HookExecutionResult`` rather than raised, since
    the caller decides between aborting and warning based on the hook kind.
    """


class HookNonZeroExit(HookError):
    def __init__(self, command: str, code: int) -> None:
        super().__init__(f"hook 指令結束碼 {code}：{command}")
        self.command = command
        self.code = code


class HookContainerUnavailable(HookError):
    def __init__(self, container: str, reason: str) -> None:
        super().__init__(f"無法啟動容器 {container}：{reason}")
        self.container = container
        self.reason = reason


class HookCancelled(HookError):
    def __init__(self, command_index: int) -> None:
        super().__init__(f"session 已刪除，略過第 {command_index + 1} 個之後的 hook 指令")
        self.command_index = command_index


class HookUnexpectedError(HookError):
    def __init__(self, reason: str) -> None:
        super().__init__(f"hook 執行發生未預期錯誤：{reason}")
        self.reason = reason


class ContainerRuntimeError(AgentmuxError):
    """Raised when the container runtime CLI cannot be invoked."""
