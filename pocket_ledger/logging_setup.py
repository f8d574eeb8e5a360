"""
Centralized logging configuration for Pocket Ledger.

Library modules never configure logging. They call
``structlog.get_logger(__name__)`` and rely on ``configure_logging`` being
called once by the host application (the composition root does this in
``AppComponents.start``).
"""

import logging
import sys
from typing import IO

import structlog


_CONFIGURED = False


def configure_logging(
    level: str = "INFO",
    json_output: bool = True,
    stream: IO[str] = sys.stderr,
) -> None:
    """
    Configure stdlib logging and structlog exactly once.

    Args:
        level: Minimum level name (e.g. "INFO")
        json_output: Render JSON lines; otherwise use the console renderer
        stream: Output stream for the single handler
    """
    global _CONFIGURED
    if _CONFIGURED:
        return

    handler = logging.StreamHandler(stream)
    handler.setFormatter(logging.Formatter("%(message)s"))
    root = logging.getLogger()
    root.addHandler(handler)
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    renderer = (
        structlog.processors.JSONRenderer()
        if json_output
        else structlog.dev.ConsoleRenderer()
    )
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    _CONFIGURED = True
