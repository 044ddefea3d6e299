"""structlog configuration shared by the CLI and embedding applications."""

import logging
import sys
from typing import Optional

import structlog


def init_logging(level: Optional[str] = None, json: bool = True) -> None:
    """Configure stdlib logging and structlog once, at process start."""
    if level is None:
        from research_qa.config.settings import get_settings
        s = get_settings()
        level, json = s.LOG_LEVEL, s.LOG_JSON
    level = level.upper()
    logging.basicConfig(level=level, stream=sys.stderr)
    renderer = structlog.processors.JSONRenderer() if json else structlog.dev.ConsoleRenderer()
    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(getattr(logging, level, logging.INFO)),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )
