"""Logging helpers with secret redaction."""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Iterable

_REDACTIONS = [
    re.compile(r"Bearer\s+[A-Za-z0-9\-_.]+"),
    re.compile(r"sk-[A-Za-z0-9]+"),
]
_ROOT_LOGGER = "taskpilot"
_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def redact(text: str, extra_secrets: Iterable[str] | None = None) -> str:
    """Redact known secret patterns and explicit secrets from text."""
    redacted = text
    for pattern in _REDACTIONS:
        redacted = pattern.sub("Bearer [REDACTED]", redacted)
    if extra_secrets:
        for secret in extra_secrets:
            if secret:
                redacted = redacted.replace(secret, "[REDACTED]")
    return redacted


class RedactingFilter(logging.Filter):
    """Scrub bearer tokens out of rendered log messages."""

    def filter(self, record: logging.LogRecord) -> bool:  # noqa: A003
        message = record.getMessage()
        cleaned = redact(message)
        if cleaned != message:
            record.msg = cleaned
            record.args = None
        return True


def _console_handler() -> logging.Handler:
    root = logging.getLogger(_ROOT_LOGGER)
    for handler in root.handlers:
        if getattr(handler, "_taskpilot_console", False):
            return handler
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(_FORMAT))
    handler.addFilter(RedactingFilter())
    handler.setLevel(logging.WARNING)
    handler._taskpilot_console = True  # type: ignore[attr-defined]
    root.addHandler(handler)
    root.setLevel(logging.DEBUG)
    return handler


def get_logger(name: str) -> logging.Logger:
    """Return a logger; handlers live on the shared taskpilot root."""
    _console_handler()
    return logging.getLogger(name)


def set_level(level: str) -> None:
    """Set the console verbosity."""
    _console_handler().setLevel(level.upper())


def configure_file_logging(path: str | Path, level: str = "DEBUG") -> Path:
    """Mirror taskpilot logs into a debug file, truncating it first."""
    _console_handler()
    log_path = Path(path)
    log_path.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(log_path, mode="w", encoding="utf-8")
    handler.setFormatter(logging.Formatter(_FORMAT))
    handler.addFilter(RedactingFilter())
    handler.setLevel(level.upper())
    logging.getLogger(_ROOT_LOGGER).addHandler(handler)
    return log_path
