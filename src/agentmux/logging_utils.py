"""Application log setup: JSON lines on disk, short lines on stderr."""

from __future__ import annotations

import json
import logging
from datetime import datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path

APP_LOG_FILENAME = "agentmux.log"
STREAM_FORMAT = "%(levelname)s %(name)s: %(message)s"

# Passed by callers through ``extra=`` and copied into the JSON record.
CONTEXT_FIELDS = ("session_id", "hook", "repo_path")


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "ts": datetime.fromtimestamp(record.created).astimezone().isoformat(timespec="seconds"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key in CONTEXT_FIELDS:
            value = getattr(record, key, None)
            if value is not None:
                entry[key] = str(value)
        if record.exc_info:
            entry["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False)


def setup_logger(
    name: str,
    log_dir: Path,
    *,
    stream_level: int = logging.WARNING,
    max_bytes: int = 5 * 1024 * 1024,
    backup_count: int = 3,
) -> logging.Logger:
    """Attach a rotating JSON file handler and a stderr handler to ``name``.

    Child loggers (``agentmux.hooks.runner`` and so on) propagate into it.
    Calling it again for an already configured logger returns it unchanged.
    """

    logger = logging.getLogger(name)
    if any(isinstance(handler, RotatingFileHandler) for handler in logger.handlers):
        return logger

    log_dir.mkdir(parents=True, exist_ok=True)
    logger.setLevel(logging.INFO)

    file_handler = RotatingFileHandler(
        log_dir / APP_LOG_FILENAME,
        maxBytes=max_bytes,
        backupCount=backup_count,
        encoding="utf-8",
    )
    file_handler.setLevel(logging.INFO)
    file_handler.setFormatter(JsonFormatter())

    stream_handler = logging.StreamHandler()
    stream_handler.setLevel(stream_level)
    stream_handler.setFormatter(logging.Formatter(STREAM_FORMAT))

    logger.addHandler(file_handler)
    logger.addHandler(stream_handler)
    return logger
