"""Structured logging configuration for Playlister.

structlog renders through the stdlib ``logging`` tree so that events from
aiosqlite and other libraries land in the same files:

- ``app.log``: every event, rendered for people to read
- ``playback.log``: JSON lines from ``playlister.playback.*`` only, for
  reconstructing what the session did with an item

Files rotate at 10 MB and keep 5 backups.
"""

from __future__ import annotations

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

import structlog

_MAX_BYTES = 10 * 1024 * 1024  # 10 MB
_BACKUP_COUNT = 5

_APP_LOG = "app.log"
_PLAYBACK_LOG = "playback.log"
_PLAYBACK_LOGGER = "playlister.playback"

# Libraries that log every statement at DEBUG.
_QUIET_LOGGERS = ("aiosqlite",)

_shared_processors: list[structlog.types.Processor] = [
    structlog.contextvars.merge_contextvars,
    structlog.stdlib.add_logger_name,
    structlog.stdlib.add_log_level,
    structlog.stdlib.ExtraAdder(),
    structlog.processors.TimeStamper(fmt="iso"),
    structlog.processors.StackInfoRenderer(),
    structlog.processors.UnicodeDecoder(),
]


# -- building blocks ---------------------------------------------------------


def _formatter(renderer: structlog.types.Processor) -> structlog.stdlib.ProcessorFormatter:
    return structlog.stdlib.ProcessorFormatter(processor=renderer, foreign_pre_chain=_shared_processors)


def _rotating_handler(
    path: Path,
    formatter: logging.Formatter,
    only: str | None = None,
) -> RotatingFileHandler:
    handler = RotatingFileHandler(path, maxBytes=_MAX_BYTES, backupCount=_BACKUP_COUNT, encoding="utf-8")
    handler.setFormatter(formatter)
    if only is not None:
        handler.addFilter(logging.Filter(only))
    return handler


def _log_unhandled(
    exc_type: type[BaseException],
    exc_value: BaseException,
    exc_tb: object,
) -> None:
    if issubclass(exc_type, KeyboardInterrupt):
        sys.__excepthook__(exc_type, exc_value, exc_tb)  # type: ignore[arg-type]
        return
    logging.getLogger("playlister").critical("Unhandled exception", exc_info=(exc_type, exc_value, exc_tb))


# -- public entry point ------------------------------------------------------


def setup_logging(log_level: str = "info", log_dir: Path | None = None) -> None:
    """Configure structlog and stdlib logging.

    Parameters
    ----------
    log_level:
        Python log-level name (``debug``, ``info``, ``warning``, etc.).
    log_dir:
        Directory for log files.  When *None* no file handlers are created
        (useful for testing).
    """
    level = getattr(logging, log_level.upper(), logging.INFO)

    structlog.configure(
        processors=[*_shared_processors, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()

    if log_dir is not None:
        log_dir.mkdir(parents=True, exist_ok=True)
        root.addHandler(
            _rotating_handler(log_dir / _APP_LOG, _formatter(structlog.dev.ConsoleRenderer(colors=False)))
        )
        root.addHandler(
            _rotating_handler(
                log_dir / _PLAYBACK_LOG,
                _formatter(structlog.processors.JSONRenderer()),
                only=_PLAYBACK_LOGGER,
            )
        )

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    sys.excepthook = _log_unhandled  # type: ignore[assignment]
