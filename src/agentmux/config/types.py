"""Configuration document schemas.

Every layer (global, profile, repo) is a ``ConfigDocument``. Leaf fields hold
either a concrete value or ``UNSET``. ``UNSET`` means "inherit from the less
specific layer", while ``None`` and ``[]`` are concrete values. The hooks merge
depends on telling those apart.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field, fields
from typing import Any, Iterator

from .validation import (
    validate_check_interval,
    validate_env_name,
    validate_memory_limit,
    validate_volume_format,
)


class _Unset:
    _instance: "_Unset | None" = None

    def __new__(cls) -> "_Unset":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNSET"

    def __bool__(self) -> bool:
        return False

    def __copy__(self) -> "_Unset":
        return self

    def __deepcopy__(self, memo: dict[int, Any]) -> "_Unset":
        return self


UNSET: Any = _Unset()

TMUX_MODES = ("auto", "enabled", "disabled")

DEFAULT_SANDBOX_IMAGE = "ghcr.io/agentmux/sandbox:latest"
DEFAULT_WORKTREE_TEMPLATE = "../{repo-name}-worktrees/{branch}"
DEFAULT_BARE_REPO_TEMPLATE = "./{branch}"


def is_set(value: Any) -> bool:
    return value is not UNSET


def _leaf(kind: str, *, validator: Any = None, choices: tuple[str, ...] | None = None, item_validator: Any = None) -> Any:
    return field(
        default=UNSET,
        metadata={"kind": kind, "validator": validator, "choices": choices, "item_validator": item_validator},
    )


@dataclass
class Section:
    """Base for config sections. Subclasses declare leaves with ``_leaf``."""

    def leaves(self) -> Iterator[tuple[str, Any]]:
        for item in fields(self):
            yield item.name, getattr(self, item.name)

    def set_leaves(self) -> dict[str, Any]:
        return {name: value for name, value in self.leaves() if is_set(value)}

    def is_empty(self) -> bool:
        return not self.set_leaves()

    def is_complete(self) -> bool:
        return all(is_set(value) for _, value in self.leaves())


@dataclass
class SessionSection(Section):
    default_tool: str | None = _leaf("optional_str")


@dataclass
class ThemeSection(Section):
    name: str = _leaf("str")


@dataclass
class UpdatesSection(Section):
    check_enabled: bool = _leaf("bool")
    auto_update: bool = _leaf("bool")
    check_interval_hours: int = _leaf("int", validator=validate_check_interval)
    notify_in_cli: bool = _leaf("bool")


@dataclass
class WorktreeSection(Section):
    enabled: bool = _leaf("bool")
    path_template: str = _leaf("str")
    bare_repo_path_template: str = _leaf("str")
    auto_cleanup: bool = _leaf("bool")
    show_branch_in_tui: bool = _leaf("bool")
    delete_branch_on_cleanup: bool = _leaf("bool")


@dataclass
class SandboxSection(Section):
    enabled_by_default: bool = _leaf("bool")
    yolo_mode_default: bool = _leaf("bool")
    default_image: str = _leaf("str")
    extra_volumes: list[str] = _leaf("str_list", item_validator=validate_volume_format)
    environment: list[str] = _leaf("str_list", item_validator=validate_env_name)
    environment_values: dict[str, str] = _leaf("str_map", item_validator=validate_env_name)
    auto_cleanup: bool = _leaf("bool")
    cpu_limit: str | None = _leaf("optional_str")
    memory_limit: str | None = _leaf("optional_str", validator=validate_memory_limit)
    volume_ignores: list[str] = _leaf("str_list")


@dataclass
class TmuxSection(Section):
    status_bar: str = _leaf("choice", choices=TMUX_MODES)
    mouse: str = _leaf("choice", choices=TMUX_MODES)


@dataclass
class EnvironmentSection(Section):
    """Profile-level environment variables, separate from the sandbox ones."""

    names: list[str] = _leaf("str_list", item_validator=validate_env_name)
    values: dict[str, str] = _leaf("str_map", item_validator=validate_env_name)


@dataclass
class HooksSection(Section):
    on_create: list[str] = _leaf("str_list")
    on_launch: list[str] = _leaf("str_list")


HooksSpec = HooksSection

SECTION_TYPES: dict[str, type[Section]] = {
    "session": SessionSection,
    "theme": ThemeSection,
    "updates": UpdatesSection,
    "worktree": WorktreeSection,
    "sandbox": SandboxSection,
    "tmux": TmuxSection,
    "environment": EnvironmentSection,
    "hooks": HooksSection,
}

TOP_LEVEL_KEYS = ("default_profile",)


@dataclass
class ConfigDocument:
    default_profile: str = UNSET
    session: SessionSection = field(default_factory=SessionSection)
    theme: ThemeSection = field(default_factory=ThemeSection)
    updates: UpdatesSection = field(default_factory=UpdatesSection)
    worktree: WorktreeSection = field(default_factory=WorktreeSection)
    sandbox: SandboxSection = field(default_factory=SandboxSection)
    tmux: TmuxSection = field(default_factory=TmuxSection)
    environment: EnvironmentSection = field(default_factory=EnvironmentSection)
    hooks: HooksSection = field(default_factory=HooksSection)

    def sections(self) -> Iterator[tuple[str, Section]]:
        for name in SECTION_TYPES:
            yield name, getattr(self, name)

    def is_empty(self) -> bool:
        return not is_set(self.default_profile) and all(section.is_empty() for _, section in self.sections())

    def is_complete(self) -> bool:
        return is_set(self.default_profile) and all(section.is_complete() for _, section in self.sections())

    def copy(self) -> "ConfigDocument":
        return copy.deepcopy(self)


def default_document() -> ConfigDocument:
    """Return a fully populated global document with built-in defaults."""

    return ConfigDocument(
        default_profile="default",
        session=SessionSection(default_tool=None),
        theme=ThemeSection(name=""),
        updates=UpdatesSection(
            check_enabled=True,
            auto_update=False,
            check_interval_hours=24,
            notify_in_cli=True,
        ),
        worktree=WorktreeSection(
            enabled=False,
            path_template=DEFAULT_WORKTREE_TEMPLATE,
            bare_repo_path_template=DEFAULT_BARE_REPO_TEMPLATE,
            auto_cleanup=True,
            show_branch_in_tui=True,
            delete_branch_on_cleanup=False,
        ),
        sandbox=SandboxSection(
            enabled_by_default=False,
            yolo_mode_default=False,
            default_image=DEFAULT_SANDBOX_IMAGE,
            extra_volumes=[],
            environment=[],
            environment_values={},
            auto_cleanup=True,
            cpu_limit=None,
            memory_limit=None,
            volume_ignores=[],
        ),
        tmux=TmuxSection(status_bar="auto", mouse="auto"),
        environment=EnvironmentSection(names=[], values={}),
        hooks=HooksSection(on_create=[], on_launch=[]),
    )


@dataclass(frozen=True)
class EnvSpec:
    names: tuple[str, ...] = ()
    values: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class ResolvedConfig:
    """Fully merged configuration for one session. Never persisted."""

    document: ConfigDocument
    sources: dict[str, str] = field(default_factory=dict)

    def __getattr__(self, name: str) -> Any:
        if name in SECTION_TYPES or name in TOP_LEVEL_KEYS:
            return getattr(self.document, name)
        raise AttributeError(name)

    @property
    def sandbox_env(self) -> EnvSpec:
        return EnvSpec(
            names=tuple(self.document.sandbox.environment),
            values=dict(self.document.sandbox.environment_values),
        )

    @property
    def profile_env(self) -> EnvSpec:
        return EnvSpec(
            names=tuple(self.document.environment.names),
            values=dict(self.document.environment.values),
        )

    def source_of(self, key_path: str) -> str | None:
        return self.sources.get(key_path)

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"default_profile": self.document.default_profile}
        for name, section in self.document.sections():
            payload[name] = {key: copy.deepcopy(value) for key, value in section.leaves()}
        return payload

    def annotated(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "default_profile": {
                "value": self.document.default_profile,
                "source": self.sources.get("default_profile", "default"),
            }
        }
        for name, section in self.document.sections():
            payload[name] = {
                key: {"value": copy.deepcopy(value), "source": self.sources.get(f"{name}.{key}", "default")}
                for key, value in section.leaves()
            }
        return payload
