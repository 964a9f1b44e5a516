"""Layer store: load and persist the global, profile and repo documents."""

from __future__ import annotations

import logging
import tomllib
from dataclasses import fields
from enum import Enum
from pathlib import Path
from typing import Any, Mapping

import tomli_w

from ..errors import ConfigIOError, ConfigMalformedError
from ..fs.atomic import atomic_write_text
from ..paths import global_config_path, profile_config_path, profiles_dir, repo_config_path, resolve_data_dir
from .types import SECTION_TYPES, TOP_LEVEL_KEYS, ConfigDocument, Section, default_document, is_set


logger = logging.getLogger(__name__)


class Layer(str, Enum):
    GLOBAL = "global"
    PROFILE = "profile"
    REPO = "repo"


def _check_kind(key_path: str, value: Any, meta: Mapping[str, Any]) -> Any:
    kind = meta["kind"]
    if kind == "bool":
        if not isinstance(value, bool):
            raise ValueError(f"{key_path} 必須為布林值")
        return value
    if kind == "int":
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValueError(f"{key_path} 必須為整數")
        return value
    if kind in {"str", "optional_str"}:
        if not isinstance(value, str):
            raise ValueError(f"{key_path} 必須為字串")
        return value
    if kind == "choice":
        choices = meta["choices"] or ()
        if not isinstance(value, str) or value not in choices:
            raise ValueError(f"{key_path} 必須為 {'/'.join(choices)} 其中之一")
        return value
    if kind == "str_list":
        if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
            raise ValueError(f"{key_path} 必須為字串陣列")
        return list(value)
    if kind == "str_map":
        if not isinstance(value, dict) or not all(
            isinstance(key, str) and isinstance(val, str) for key, val in value.items()
        ):
            raise ValueError(f"{key_path} 必須為字串對字串的表格")
        return dict(value)
    raise ValueError(f"{key_path} 型別未知：{kind}")


def _parse_section(name: str, payload: Any, section_type: type[Section]) -> Section:
    if not isinstance(payload, dict):
        raise ValueError(f"[{name}] 必須為表格")
    section = section_type()
    known = {item.name: item for item in fields(section_type)}
    for key, raw in payload.items():
        item = known.get(key)
        if item is None:
            logger.warning("忽略未知設定鍵：%s.%s", name, key)
            continue
        value = _check_kind(f"{name}.{key}", raw, item.metadata)
        validator = item.metadata.get("validator")
        if validator is not None:
            validator(value)
        item_validator = item.metadata.get("item_validator")
        if item_validator is not None:
            for entry in value:
                item_validator(entry)
        setattr(section, key, value)
    return section


def document_from_dict(data: Mapping[str, Any]) -> ConfigDocument:
    """Build a sparse document from parsed TOML. Raises ``ValueError`` on bad input."""

    document = ConfigDocument()
    for key, raw in data.items():
        if key == "default_profile":
            if not isinstance(raw, str) or not raw.strip():
                raise ValueError("default_profile 必須為非空字串")
            document.default_profile = raw
            continue
        section_type = SECTION_TYPES.get(key)
        if section_type is None:
            logger.warning("忽略未知設定區段：%s", key)
            continue
        setattr(document, key, _parse_section(key, raw, section_type))
    return document


def document_to_dict(document: ConfigDocument) -> dict[str, Any]:
    """Serialize only the set fields. ``None`` has no TOML form and is omitted."""

    data: dict[str, Any] = {}
    for key in TOP_LEVEL_KEYS:
        value = getattr(document, key)
        if is_set(value) and value is not None:
            data[key] = value
    for name, section in document.sections():
        payload = {key: value for key, value in section.set_leaves().items() if value is not None}
        if payload:
            data[name] = payload
    return data


def fill_defaults(document: ConfigDocument) -> ConfigDocument:
    """Fill every unset field of ``document`` from the built-in defaults."""

    filled = default_document()
    if is_set(document.default_profile):
        filled.default_profile = document.default_profile
    for name, section in document.sections():
        target = getattr(filled, name)
        for key, value in section.set_leaves().items():
            setattr(target, key, value)
    return filled


def _read_document(path: Path) -> ConfigDocument | None:
    if not path.exists():
        return None
    try:
        content = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigIOError(path) from exc
    except UnicodeDecodeError as exc:
        raise ConfigMalformedError(path, f"不是有效的 UTF-8：{exc}") from exc
    if not content.strip():
        return ConfigDocument()
    try:
        data = tomllib.loads(content)
    except tomllib.TOMLDecodeError as exc:
        raise ConfigMalformedError(path, str(exc)) from exc
    try:
        return document_from_dict(data)
    except ValueError as exc:
        raise ConfigMalformedError(path, str(exc)) from exc


class LayerStore:
    """Reads and writes the three configuration layers.

    A missing global file yields defaults, a missing profile file yields an
    empty document, and a missing repo file yields ``None`` so callers can tell
    "not configured" from "configured with nothing overridden".
    """

    def __init__(self, data_dir: Path | None = None) -> None:
        self.data_dir = resolve_data_dir(data_dir)

    def global_path(self) -> Path:
        return global_config_path(self.data_dir)

    def profile_path(self, name: str) -> Path:
        return profile_config_path(name, self.data_dir)

    def repo_path(self, repo: Path) -> Path:
        return repo_config_path(repo)

    def load_global(self) -> ConfigDocument:
        document = _read_document(self.global_path())
        if document is None:
            return default_document()
        return fill_defaults(document)

    def load_profile(self, name: str) -> ConfigDocument:
        document = _read_document(self.profile_path(name))
        return document if document is not None else ConfigDocument()

    def load_repo(self, repo: Path) -> ConfigDocument | None:
        return _read_document(self.repo_path(repo))

    def list_profiles(self) -> list[str]:
        root = profiles_dir(self.data_dir)
        if not root.exists():
            return []
        return sorted(path.name for path in root.iterdir() if path.is_dir())

    def save(
        self,
        layer: Layer,
        document: ConfigDocument,
        *,
        profile: str | None = None,
        repo_path: Path | None = None,
    ) -> Path:
        target = self._target_path(layer, profile=profile, repo_path=repo_path)
        content = tomli_w.dumps(document_to_dict(document))
        try:
            atomic_write_text(target, content)
        except OSError as exc:
            raise ConfigIOError(target, action="寫入") from exc
        logger.info("已寫入 %s 設定：%s", layer.value, target)
        return target

    def _target_path(self, layer: Layer, *, profile: str | None, repo_path: Path | None) -> Path:
        if layer == Layer.GLOBAL:
            return self.global_path()
        if layer == Layer.PROFILE:
            if not profile:
                raise ValueError("儲存 profile 設定需要指定 profile 名稱")
            return self.profile_path(profile)
        if repo_path is None:
            raise ValueError("儲存 repo 設定需要指定 repo 路徑")
        return self.repo_path(repo_path)


__all__ = [
    "Layer",
    "LayerStore",
    "document_from_dict",
    "document_to_dict",
    "fill_defaults",
]
