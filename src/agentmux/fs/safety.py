"""Validation for user-supplied names that end up as a single path segment."""

from __future__ import annotations

import re

_MAX_SEGMENT_LENGTH = 128
_SEGMENT_RE = re.compile(r"^[A-Za-z0-9._-]+$")


def validate_path_segment(value: str, label: str) -> None:
    if not isinstance(value, str) or not value:
        raise ValueError(f"{label} 不可為空")
    if len(value) > _MAX_SEGMENT_LENGTH:
        raise ValueError(f"{label} 過長（上限 {_MAX_SEGMENT_LENGTH} 字元）")
    if ".." in value:
        raise ValueError(f"{label} 不可包含 ..：{value}")
    if not _SEGMENT_RE.match(value):
        raise ValueError(f"{label} 只允許英數字、點、底線與連字號：{value}")


def validate_profile_name(name: str) -> None:
    validate_path_segment(name, "profile 名稱")


def validate_session_id(session_id: str) -> None:
    validate_path_segment(session_id, "session_id")
