"""structlog setup for hosts embedding the engine."""

import logging
import sys

import structlog


def configure_logging(level: str = "INFO", fmt: str = "json") -> None:
    """
    Route engine logs through the standard library logger.

    Args:
        level: standard logging level name
        fmt: "json" for machine-readable lines, "console" for development
    """
    logging.basicConfig(format="%(message)s", stream=sys.stdout)
    logging.getLogger().setLevel(getattr(logging, level.upper(), logging.INFO))

    renderer = structlog.dev.ConsoleRenderer() if fmt == "console" else structlog.processors.JSONRenderer()
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
