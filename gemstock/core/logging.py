"""structlog setup shared by the API and the CLI.

``LOG_FORMAT=json`` renders one JSON object per line; ``text`` uses the
coloured console renderer. Records go to stderr so CLI tables on stdout stay
clean, and additionally to ``LOG_FILE`` when it is set.
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Any

import structlog

from gemstock.config import AppConfig, get_config

LOG_FORMATS = ("json", "text")


def _renderer(log_format: str) -> Any:
    if log_format == "json":
        return structlog.processors.JSONRenderer()
    if log_format == "text":
        return structlog.dev.ConsoleRenderer()
    raise ValueError(f"LOG_FORMAT must be one of {', '.join(LOG_FORMATS)}, got {log_format!r}")


def configure_logging(config: AppConfig | None = None) -> None:
    """Route structlog and stdlib logging through one renderer at the configured level."""
    config = config or get_config()
    renderer = _renderer(config.log_format.lower())

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            renderer,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if config.log_file:
        log_path = Path(config.log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_path))

    # force: the CLI callback and the API lifespan may both run in one process
    logging.basicConfig(
        format="%(message)s",
        handlers=handlers,
        level=config.log_level.upper(),
        force=True,
    )
