# =============================================================================
# File: inviter/config/logging_config.py
# Description: Rich console logging, JSON lines for production, per-logger levels
# =============================================================================

import json
import logging
import logging.handlers
import os
import sys
from datetime import datetime, timezone
from typing import Dict, Optional

from rich.console import Console
from rich.logging import RichHandler
from rich.theme import Theme

INVITER_THEME = Theme({
    "debug": "magenta dim",
    "info": "green",
    "warning": "dark_goldenrod",
    "error": "red",
    "critical": "bold red",
    "logger_name": "grey35",
    "message": "grey85",
})

PLAIN_FORMAT = "[%(asctime)s] [%(levelname)-8s] [%(name)-36s] %(message)s"
PLAIN_DATEFMT = "%Y-%m-%d %H:%M:%S"

# Record attributes copied into JSON lines when a call passes them via extra=
CONTEXT_FIELDS = ("group_id", "hangout_id", "series_id", "reason")

# Default levels for chatty loggers; LOGLEVEL_<NAME> overrides each one
DEFAULT_LEVELS: Dict[str, int] = {
    "asyncio": logging.WARNING,
    "asyncpg": logging.WARNING,
    "inviter.retry": logging.WARNING,
    "inviter.projections.sync": logging.INFO,
    "inviter.projections.transactions": logging.INFO,
    "inviter.projections.feed": logging.INFO,
}


def _env_flag(key: str, default: bool = False) -> bool:
    raw = os.getenv(key, "").strip().lower()
    if not raw:
        return default
    return raw in ("1", "true", "yes", "on")


def _env_int(key: str, default: int) -> int:
    try:
        return int(os.getenv(key, default))
    except ValueError:
        return default


def level_for(logger_name: str, default: int) -> int:
    """``inviter.projections.sync`` reads ``LOGLEVEL_INVITER_PROJECTIONS_SYNC``."""
    raw = os.getenv(f"LOGLEVEL_{logger_name.replace('.', '_').upper()}", "").upper()
    if raw == "WARN":
        raw = "WARNING"
    level = logging.getLevelName(raw) if raw else default
    return level if isinstance(level, int) else default


class JsonLineFormatter(logging.Formatter):
    """One JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "function": record.funcName,
            "line": record.lineno,
        }
        for field in CONTEXT_FIELDS:
            if hasattr(record, field):
                payload[field] = getattr(record, field)
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def _console_handler(json_lines: bool, rich_tracebacks: bool) -> logging.Handler:
    if json_lines:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(JsonLineFormatter())
        return handler

    force_color = _env_flag("FORCE_COLOR")
    if sys.stdout.isatty() or force_color:
        console = Console(
            theme=INVITER_THEME,
            force_terminal=force_color,
            width=_env_int("LOG_CONSOLE_WIDTH", 0) or None,
        )
        return RichHandler(console=console, show_path=False, markup=False, rich_tracebacks=rich_tracebacks)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(PLAIN_FORMAT, datefmt=PLAIN_DATEFMT))
    return handler


def setup_logging(
        service_name: str = "inviter",
        log_level: Optional[str] = None,
        log_file: Optional[str] = None,
        enable_json: Optional[bool] = None,
        rich_tracebacks: bool = True,
) -> None:
    """
    Replace the root handlers for a process embedding the engine.

    The console gets rich output on a terminal, plain lines otherwise, or
    JSON lines when ``enable_json`` (or ``LOG_JSON_FORMAT``) is set. A
    rotating plain-text file is added when ``log_file`` or ``LOG_FILE`` is given.
    """
    if enable_json is None:
        enable_json = _env_flag("LOG_JSON_FORMAT")
    log_file = log_file or os.getenv("LOG_FILE")

    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel((log_level or os.getenv("LOG_LEVEL", "INFO")).upper())
    root.addHandler(_console_handler(enable_json, rich_tracebacks))

    if log_file:
        file_handler = logging.handlers.RotatingFileHandler(
            log_file,
            maxBytes=_env_int("LOG_MAX_SIZE_MB", 100) * 1024 * 1024,
            backupCount=_env_int("LOG_BACKUP_COUNT", 5),
            encoding="utf-8",
        )
        file_handler.setFormatter(logging.Formatter(PLAIN_FORMAT, datefmt=PLAIN_DATEFMT))
        root.addHandler(file_handler)

    for name, default in DEFAULT_LEVELS.items():
        logging.getLogger(name).setLevel(level_for(name, default))

    logging.getLogger(f"{service_name}.startup").info(f"Logging configured for {service_name}")


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
