"""Logging setup for release-tools.

Every record carries a correlation id that ties together one CLI invocation
or one daemon sweep. Inside ``release_context`` records also carry the
release id and repository being worked on, so a tracker sweep over many
repositories can be followed per repo.
"""

from __future__ import annotations

import json
import logging
import os
import sys
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, Optional

_correlation_id: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)
_release_fields: ContextVar[Optional[Dict[str, str]]] = ContextVar(
    "release_fields", default=None
)

# Attributes every LogRecord has; anything else on a record is an extra
_STANDARD_ATTRS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", None, None))
) | {"message", "asctime"}

CONTEXT_FIELDS = ("release_id", "repo")


def get_correlation_id() -> str:
    """Current correlation id, generating one on first use."""
    cid = _correlation_id.get()
    if cid is None:
        cid = uuid.uuid4().hex[:8]
        _correlation_id.set(cid)
    return cid


def set_correlation_id(cid: str) -> None:
    _correlation_id.set(cid)


def new_correlation_id(prefix: str) -> str:
    """Start a new trace, e.g. ``ci-3f9a1c`` for one CI sweep."""
    cid = f"{prefix}-{uuid.uuid4().hex[:6]}"
    _correlation_id.set(cid)
    return cid


@contextmanager
def release_context(release_id: str, repo: Optional[str] = None) -> Iterator[None]:
    """Tag records logged inside the block with a release and repository.

    Contexts nest: an inner ``repo`` is added to the outer release id.
    """
    fields = dict(_release_fields.get() or {})
    fields["release_id"] = release_id
    if repo:
        fields["repo"] = repo
    token = _release_fields.set(fields)
    try:
        yield
    finally:
        _release_fields.reset(token)


class ReleaseContextFilter(logging.Filter):
    """Copies the active release context onto each record."""

    def filter(self, record: logging.LogRecord) -> bool:
        for key, value in (_release_fields.get() or {}).items():
            if not hasattr(record, key):
                setattr(record, key, value)
        return True


class JSONFormatter(logging.Formatter):
    """One JSON object per line, for production and log files."""

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "correlation_id": get_correlation_id(),
        }

        if record.levelno >= logging.ERROR:
            log_data["location"] = {
                "file": record.filename,
                "line": record.lineno,
                "function": record.funcName,
            }
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        for key, value in record.__dict__.items():
            if key in _STANDARD_ATTRS or key.startswith("_"):
                continue
            try:
                json.dumps(value)
                log_data[key] = value
            except (TypeError, ValueError):
                log_data[key] = str(value)

        return json.dumps(log_data, default=str)


class ConsoleFormatter(logging.Formatter):
    """Coloured single-line output for terminals."""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, "")
        timestamp = datetime.now().strftime("%H:%M:%S")

        # [HH:MM:SS] L [cid] logger: message (release=.. repo=..)
        msg = (
            f"{color}[{timestamp}] {record.levelname[0]}{self.RESET} "
            f"[{get_correlation_id()}] {record.name}: {record.getMessage()}"
        )

        tags = [
            f"{key.replace('_id', '')}={getattr(record, key)}"
            for key in CONTEXT_FIELDS
            if getattr(record, key, None)
        ]
        if tags:
            msg += f" ({' '.join(tags)})"

        if record.exc_info:
            msg += "\n" + self.formatException(record.exc_info)
        return msg


def configure_logging(
    level: str = "INFO",
    json_output: bool = False,
    log_file: Optional[str] = None,
) -> None:
    """Configure root logging.

    Args:
        level: Log level name.
        json_output: Use JSON on stderr instead of the console format.
        log_file: Optional path that receives JSON records as well.
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    root_logger.handlers.clear()

    # stderr keeps stdout clean for --json command output
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    handlers[0].setFormatter(JSONFormatter() if json_output else ConsoleFormatter())

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(JSONFormatter())
        handlers.append(file_handler)

    for handler in handlers:
        handler.addFilter(ReleaseContextFilter())
        root_logger.addHandler(handler)

    for noisy in ("urllib3", "github", "asyncio"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


configure_logging(
    level=os.environ.get("LOG_LEVEL", "INFO"),
    json_output=os.environ.get("LOG_FORMAT", "").lower() == "json",
    log_file=os.environ.get("LOG_FILE"),
)
