"""Container runtime integration."""

from .runtime import RUNTIME_ENV, CommandOutput, DockerRuntime

__all__ = ["RUNTIME_ENV", "CommandOutput", "DockerRuntime"]
