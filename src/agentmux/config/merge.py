"""Merge engine: resolve global, profile and repo documents into one config.

Most fields follow plain per-field override (repo > profile > global). Two
groups follow different rules:

* environment collections (``sandbox.environment``/``environment_values`` and
  ``environment.names``/``values``) are merged: names are unioned and values
  are merged per key, the more specific layer winning a colliding key;
* ``hooks.on_create`` and ``hooks.on_launch`` are each overridden as a whole
  by the most specific layer that sets them, an explicit ``[]`` included.
"""

from __future__ import annotations

import copy

from .env import merge_names, merge_values
from .types import ConfigDocument, ResolvedConfig, default_document, is_set

_NAME_FIELDS = {("sandbox", "environment"), ("environment", "names")}
_VALUE_FIELDS = {("sandbox", "environment_values"), ("environment", "values")}


def _overlay(
    effective: ConfigDocument,
    sources: dict[str, str],
    layer: ConfigDocument,
    source: str,
    *,
    include_hooks: bool = True,
) -> None:
    if is_set(layer.default_profile):
        effective.default_profile = layer.default_profile
        sources["default_profile"] = source

    for name, section in layer.sections():
        if name == "hooks" and not include_hooks:
            continue
        target = getattr(effective, name)
        for key, value in section.set_leaves().items():
            current = getattr(target, key)
            if (name, key) in _NAME_FIELDS:
                merged = merge_names(current, value)
            elif (name, key) in _VALUE_FIELDS:
                merged = merge_values(current, value)
            else:
                merged = copy.deepcopy(value)
            setattr(target, key, merged)
            sources[f"{name}.{key}"] = source


def _initial_sources(document: ConfigDocument, source: str) -> dict[str, str]:
    sources = {"default_profile": source}
    for name, section in document.sections():
        for key, _ in section.leaves():
            sources[f"{name}.{key}"] = source
    return sources


def resolve(
    global_doc: ConfigDocument,
    profile_doc: ConfigDocument | None = None,
    repo_doc: ConfigDocument | None = None,
    *,
    repo_hooks: bool = True,
) -> ResolvedConfig:
    """Resolve the three layers into a ``ResolvedConfig``.

    ``global_doc`` is expected to be fully populated (``LayerStore.load_global``
    guarantees it); any field it leaves unset falls back to built-in defaults.
    Pass ``repo_hooks=False`` when the repo hooks were not trusted, so that
    each hook field falls back to profile/global.
    """

    effective = default_document()
    sources = _initial_sources(effective, "default")
    _overlay_replace(effective, sources, global_doc, "global")
    if profile_doc is not None:
        _overlay(effective, sources, profile_doc, "profile")
    if repo_doc is not None:
        _overlay(effective, sources, repo_doc, "repo", include_hooks=repo_hooks)
    return ResolvedConfig(document=effective, sources=sources)


def _overlay_replace(effective: ConfigDocument, sources: dict[str, str], layer: ConfigDocument, source: str) -> None:
    # The global layer replaces built-in defaults outright, env collections included.
    if is_set(layer.default_profile):
        effective.default_profile = layer.default_profile
        sources["default_profile"] = source
    for name, section in layer.sections():
        target = getattr(effective, name)
        for key, value in section.set_leaves().items():
            setattr(target, key, copy.deepcopy(value))
            sources[f"{name}.{key}"] = source

