"""Filesystem locations used by agentmux."""

from __future__ import annotations

import os
from pathlib import Path

from .fs.safety import validate_profile_name, validate_session_id

HOME_ENV = "AGENTMUX_HOME"
REPO_CONFIG_DIR = ".agentmux"
CONFIG_FILENAME = "config.toml"


def resolve_data_dir(data_dir: Path | None = None) -> Path:
    if data_dir:
        return Path(data_dir).expanduser()
    env_path = os.environ.get(HOME_ENV)
    if env_path:
        return Path(env_path).expanduser()
    return Path("~/.agentmux").expanduser()


def global_config_path(data_dir: Path | None = None) -> Path:
    return resolve_data_dir(data_dir) / CONFIG_FILENAME


def profiles_dir(data_dir: Path | None = None) -> Path:
    return resolve_data_dir(data_dir) / "profiles"


def profile_config_path(profile: str, data_dir: Path | None = None) -> Path:
    validate_profile_name(profile)
    return profiles_dir(data_dir) / profile / CONFIG_FILENAME


def repo_config_path(repo_path: Path) -> Path:
    return Path(repo_path).expanduser() / REPO_CONFIG_DIR / CONFIG_FILENAME


def trust_store_path(data_dir: Path | None = None) -> Path:
    return resolve_data_dir(data_dir) / "trust" / "hooks.json"


def logs_dir(data_dir: Path | None = None) -> Path:
    return resolve_data_dir(data_dir) / "logs"


def session_log_path(session_id: str, data_dir: Path | None = None) -> Path:
    validate_session_id(session_id)
    return logs_dir(data_dir) / "sessions" / f"{session_id}.jsonl"
