"""
Logging configuration for the RBAC graph connector.

structlog renders every record, including those emitted by the stdlib loggers
of uvicorn and the kubernetes client, through one root handler.
"""
import logging
import sys
from typing import Any, Optional

import structlog

from ..config import get_settings

_CONFIGURED = False

_SHARED_PROCESSORS: list[Any] = [
    structlog.contextvars.merge_contextvars,
    structlog.stdlib.add_logger_name,
    structlog.stdlib.add_log_level,
    structlog.processors.TimeStamper(fmt="iso"),
    structlog.processors.StackInfoRenderer(),
]


def setup_logging(level: Optional[str] = None, json_output: Optional[bool] = None) -> structlog.stdlib.BoundLogger:
    """Configure structlog and the stdlib root logger once per process.

    Args:
        level: log level name, defaults to ``Settings.log_level``
        json_output: render JSON lines instead of console output,
            defaults to ``Settings.log_json``

    Returns:
        the ``rbacgraph`` logger
    """
    global _CONFIGURED
    logger = structlog.get_logger("rbacgraph")

    if _CONFIGURED:
        return logger

    settings = get_settings()
    level_name = (level or settings.log_level).upper()
    use_json = settings.log_json if json_output is None else json_output

    structlog.configure(
        processors=_SHARED_PROCESSORS + [structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    if use_json:
        renderer: Any = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=_SHARED_PROCESSORS,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    root = logging.getLogger()
    root.setLevel(level_name)

    # Drop default handlers to avoid duplicate output
    for h in list(root.handlers):
        root.removeHandler(h)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)
    root.addHandler(handler)

    for log_name in ("uvicorn", "uvicorn.error", "uvicorn.access", "fastapi"):
        l = logging.getLogger(log_name)
        l.handlers = []
        l.propagate = True

    # urllib3 debug output carries bearer tokens in request headers
    logging.getLogger("urllib3").setLevel(max(logging.INFO, root.level))

    _CONFIGURED = True
    return logger


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Return a structlog logger bound to ``name``."""
    return structlog.get_logger(name)
