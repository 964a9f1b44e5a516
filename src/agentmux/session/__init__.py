"""Session lifecycle wiring for hooks and configuration."""

from .lifecycle import (
    CreationOutcome,
    CreationStatus,
    SandboxInfo,
    Session,
    SessionLifecycle,
)

__all__ = [
    "CreationOutcome",
    "CreationStatus",
    "SandboxInfo",
    "Session",
    "SessionLifecycle",
]
