"""Environment variable resolution for sessions.

Values in ``environment_values`` (sandbox) and ``environment.values``
(profile) use a small syntax: ``"$NAME"`` reads ``NAME`` from the host, and
``"$$text"`` is the literal ``"$text"``. Anything else is used verbatim.
"""

from __future__ import annotations

import os
from typing import Iterable, Mapping

from .types import EnvSpec, ResolvedConfig

# Always passed through so agent UIs render correctly inside tmux/containers.
DEFAULT_TERMINAL_ENV_VARS = ("TERM", "COLORTERM", "FORCE_COLOR", "NO_COLOR")


def resolve_env_value(value: str, environ: Mapping[str, str] | None = None) -> str | None:
    """Resolve one configured value; ``None`` means the key should be omitted."""

    env = os.environ if environ is None else environ
    if value.startswith("$$"):
        return "$" + value[2:]
    if value.startswith("$"):
        return env.get(value[1:])
    return value


def resolve_env_vars(
    names: Iterable[str],
    values: Mapping[str, str],
    environ: Mapping[str, str] | None = None,
) -> dict[str, str]:
    """Pass-through ``names`` from the host, then apply ``values`` on top."""

    env = os.environ if environ is None else environ
    resolved: dict[str, str] = {}
    for name in names:
        if name in env:
            resolved[name] = env[name]
    for key, raw in values.items():
        value = resolve_env_value(raw, env)
        if value is None:
            resolved.pop(key, None)
            continue
        resolved[key] = value
    return resolved


def merge_names(base: Iterable[str], override: Iterable[str]) -> list[str]:
    merged: list[str] = []
    for name in [*base, *override]:
        if name not in merged:
            merged.append(name)
    return merged


def merge_values(base: Mapping[str, str], override: Mapping[str, str]) -> dict[str, str]:
    merged = dict(base)
    merged.update(override)
    return merged


def merge_env_specs(*specs: EnvSpec) -> EnvSpec:
    """Union names and per-key merge values, later specs winning."""

    names: list[str] = []
    values: dict[str, str] = {}
    for spec in specs:
        names = merge_names(names, spec.names)
        values = merge_values(values, spec.values)
    return EnvSpec(names=tuple(names), values=values)


def effective_env(
    resolved: ResolvedConfig,
    environ: Mapping[str, str] | None = None,
    *,
    extra: EnvSpec | None = None,
) -> dict[str, str]:
    """Final key/value map injected into a session.

    Order of precedence, lowest first: terminal defaults, sandbox EnvSpec,
    profile-level EnvSpec, then per-session ``extra``.
    """

    specs = [EnvSpec(names=DEFAULT_TERMINAL_ENV_VARS), resolved.sandbox_env, resolved.profile_env]
    if extra is not None:
        specs.append(extra)
    combined = merge_env_specs(*specs)
    return resolve_env_vars(combined.names, combined.values, environ)


def shell_escape(value: str) -> str:
    """Double-quote escape ``value`` for interpolation into a shell string."""

    escaped = (
        value.replace("\\", "\\\\")
        .replace('"', '\\"')
        .replace("$", "\\$")
        .replace("`", "\\`")
        .replace("\n", "\\n")
        .replace("\r", "\\r")
    )
    return f'"{escaped}"'


def build_exec_env_args(env: Mapping[str, str]) -> str:
    """``-e KEY="value"`` flags for a ``docker exec`` shell command string."""

    return " ".join(f"-e {key}={shell_escape(value)}" for key, value in env.items())
