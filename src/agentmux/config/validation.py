"""Value validators applied when a config document is loaded.

Each validator raises ``ValueError`` with a user-facing message; the layer
store wraps it into ``ConfigMalformedError`` together with the file path.
"""

from __future__ import annotations

import re

_MEMORY_LIMIT_RE = re.compile(r"^\d+[bkmgBKMG]?$")
_ENV_NAME_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def validate_volume_format(volume: str) -> None:
    """Docker volume syntax: ``host:container[:options]``."""

    if not volume:
        raise ValueError("volume 不可為空")
    parts = volume.split(":")
    if len(parts) < 2 or len(parts) > 3:
        raise ValueError(f"volume 格式必須為 host:container[:options]：{volume}")
    if not parts[0] or not parts[1]:
        raise ValueError(f"volume 的 host 與 container 路徑不可為空：{volume}")


def validate_memory_limit(limit: str | None) -> None:
    if not limit:
        return
    if not _MEMORY_LIMIT_RE.match(limit):
        raise ValueError(f"memory_limit 必須為數字，可加上 b/k/m/g 單位：{limit}")


def validate_check_interval(hours: int) -> None:
    if hours <= 0:
        raise ValueError("check_interval_hours 必須大於 0")


def validate_env_name(name: str) -> None:
    if not _ENV_NAME_RE.match(name):
        raise ValueError(f"環境變數名稱不合法：{name}")

