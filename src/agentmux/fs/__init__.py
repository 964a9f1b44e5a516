"""Filesystem helpers."""

from .atomic import append_jsonl, atomic_write_text, locked
from .safety import validate_path_segment, validate_profile_name, validate_session_id

__all__ = [
    "append_jsonl",
    "atomic_write_text",
    "locked",
    "validate_path_segment",
    "validate_profile_name",
    "validate_session_id",
]
