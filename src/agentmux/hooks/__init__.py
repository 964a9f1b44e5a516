"""Repository hook trust and execution."""

from .runner import (
    ContainerTarget,
    ExecutionTarget,
    HookExecutionResult,
    HookKind,
    HookRunner,
    HostTarget,
    ShellCommandExecutor,
)
from .state import LaunchHookLedger
from .trust import (
    HookTrustManager,
    JsonTrustStore,
    MemoryTrustStore,
    TrustDecision,
    TrustRecord,
    TrustStatus,
    TrustStatusKind,
    compute_hooks_hash,
)

__all__ = [
    "ContainerTarget",
    "ExecutionTarget",
    "HookExecutionResult",
    "HookKind",
    "HookRunner",
    "HookTrustManager",
    "HostTarget",
    "JsonTrustStore",
    "LaunchHookLedger",
    "MemoryTrustStore",
    "ShellCommandExecutor",
    "TrustDecision",
    "TrustRecord",
    "TrustStatus",
    "TrustStatusKind",
    "compute_hooks_hash",
]
