"""structlog setup shared by the CLI commands.

Every record goes to ``<log_dir>/<name>.log`` as JSON lines. Stdout gets the
console renderer, or JSON too when the process runs under a log collector.
"""

from __future__ import annotations

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

import structlog

# Libraries that log every request or statement at INFO/DEBUG
_NOISY_LOGGERS = ("httpx", "httpcore", "sqlalchemy.engine", "redis")

_SHARED_PROCESSORS: list = [
    structlog.contextvars.merge_contextvars,
    structlog.stdlib.add_log_level,
    structlog.stdlib.add_logger_name,
    structlog.processors.TimeStamper(fmt="iso", utc=True),
    structlog.processors.StackInfoRenderer(),
    structlog.processors.format_exc_info,
]


def _file_handler(log_dir: str, name: str) -> logging.Handler:
    path = Path(log_dir)
    path.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(path / f"{name}.log", maxBytes=10 * 1024 * 1024, backupCount=5)
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(structlog.stdlib.ProcessorFormatter(processor=structlog.processors.JSONRenderer()))
    return handler


def _stdout_handler(level: str, json_stdout: bool) -> logging.Handler:
    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level.upper())
    renderer = structlog.processors.JSONRenderer() if json_stdout else structlog.dev.ConsoleRenderer()
    handler.setFormatter(structlog.stdlib.ProcessorFormatter(processor=renderer))
    return handler


def setup_logging(
    log_dir: str,
    log_name: str = "forumkit",
    *,
    level: str = "INFO",
    json_stdout: bool = False,
) -> structlog.stdlib.BoundLogger:
    """Route structlog through stdlib logging to a rotating JSON file and stdout.

    Safe to call more than once: root handlers are replaced, not appended.
    """
    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    root.handlers.clear()
    root.addHandler(_file_handler(log_dir, log_name))
    root.addHandler(_stdout_handler(level, json_stdout))
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    structlog.configure(
        processors=[*_SHARED_PROCESSORS, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
    return structlog.get_logger(log_name).bind(command=log_name)
