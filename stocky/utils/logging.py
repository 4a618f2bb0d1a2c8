"""
Logging configuration for stocky.
"""

import logging
import sys
from pathlib import Path
from typing import Optional

import structlog

from stocky.config.settings import LoggingSettings


def setup_logging(config: Optional[LoggingSettings] = None):
    """Configure structured logging for stocky"""
    config = config or LoggingSettings()
    level = getattr(logging, str(config.level).upper())

    # Console output while debugging, JSON lines otherwise
    renderer = (structlog.processors.JSONRenderer()
                if config.json else structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=False,
    )

    handlers = [logging.StreamHandler(sys.stdout)]
    if config.file:
        log_path = Path(config.file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_path))

    # Configure standard logging
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=handlers,
        force=True,
    )

    # Reduce noise from external libraries
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)

    logger = structlog.get_logger(__name__)
    logger.debug("Logging configured", level=config.level, json=config.json, file=config.file)
