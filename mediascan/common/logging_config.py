"""Logging configuration using structlog for structured logging."""

import logging
import logging.handlers
from pathlib import Path
from typing import Any, Optional

import structlog

from .config import LoggingConfig


def setup_logging(config: LoggingConfig, config_dir: Optional[Path] = None) -> None:
    """
    Configure structlog and standard library logging.

    Args:
        config: LoggingConfig object with logging settings
        config_dir: Directory for log file (if file logging enabled)

    Example:
        >>> from mediascan.common.config import LoggingConfig
        >>> setup_logging(LoggingConfig(level="DEBUG", format="text"))
    """
    log_level = getattr(logging, config.level.upper())

    logging.basicConfig(
        level=log_level,
        format="%(message)s",
        handlers=[],
        force=True,
    )

    default_third_party = {
        "aiosqlite": "WARNING",
        "asyncio": "WARNING",
        "uvicorn.access": "WARNING",
    }
    third_party_config = {**default_third_party, **config.third_party}

    for library, level in third_party_config.items():
        logging.getLogger(library).setLevel(getattr(logging, level.upper()))

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if config.format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))

    handlers = []

    console_handler = logging.StreamHandler()
    console_handler.setLevel(log_level)
    handlers.append(console_handler)

    # Daily rotation, 7 files kept: mediascan.log.2026-01-01
    if config.file and config.file.enabled and config_dir is not None:
        log_path = config_dir / "mediascan.log"
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.handlers.TimedRotatingFileHandler(
            filename=str(log_path),
            when="midnight",
            backupCount=7,
            encoding="utf-8",
        )
        file_handler.suffix = "%Y-%m-%d"
        file_handler.setLevel(log_level)
        handlers.append(file_handler)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    for handler in handlers:
        root_logger.addHandler(handler)
    root_logger.setLevel(log_level)

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def bind_context(**kwargs: Any) -> None:
    """
    Bind context variables included in all subsequent log messages.

    Example:
        >>> bind_context(scan_id="scan_1700000000000")
        >>> logger.info("scan_phase_changed")  # includes scan_id
    """
    structlog.contextvars.bind_contextvars(**kwargs)


def unbind_context(*keys: str) -> None:
    """Remove specific context variables."""
    structlog.contextvars.unbind_contextvars(*keys)
