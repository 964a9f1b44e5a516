"""Layered configuration for agentmux."""

from .env import effective_env, resolve_env_value, resolve_env_vars
from .merge import resolve
from .store import Layer, LayerStore
from .types import (
    UNSET,
    ConfigDocument,
    EnvSpec,
    HooksSection,
    HooksSpec,
    ResolvedConfig,
    default_document,
    is_set,
)

__all__ = [
    "UNSET",
    "ConfigDocument",
    "EnvSpec",
    "HooksSection",
    "HooksSpec",
    "Layer",
    "LayerStore",
    "ResolvedConfig",
    "default_document",
    "effective_env",
    "is_set",
    "resolve",
    "resolve_env_value",
    "resolve_env_vars",
]
