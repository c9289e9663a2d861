"""Structured logging for the face identification service."""
import logging
import sys
from typing import Dict, List, Optional

import structlog
from structlog.stdlib import ProcessorFormatter

from faceguard.core.config import settings

# Third-party loggers and the level they are capped at
DEPENDENCY_LEVELS: Dict[str, int] = {
    "aiohttp": logging.WARNING,
    "onnxruntime": logging.WARNING,
    "insightface": logging.WARNING,
    "uvicorn.access": logging.WARNING,
}


def _renderer(environment: str) -> structlog.types.Processor:
    if environment == "development":
        return structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())
    return structlog.processors.JSONRenderer()


def setup_logging(level: Optional[str] = None, environment: Optional[str] = None) -> None:
    """Route structlog and stdlib logging through one stdout handler.

    Development gets the console renderer, every other environment gets one
    JSON object per line. Records emitted by dependencies through plain
    ``logging`` go through the same pre-chain, so they carry timestamps and
    level names too.

    Args:
        level: Log level name (defaults to ``settings.LOG_LEVEL``)
        environment: Deployment environment (defaults to ``settings.ENVIRONMENT``)
    """
    environment = environment or settings.ENVIRONMENT
    level_name = (level or settings.LOG_LEVEL).upper()

    pre_chain: List[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
    ]
    if environment != "development":
        pre_chain.append(structlog.processors.format_exc_info)

    structlog.configure(
        processors=pre_chain + [ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        ProcessorFormatter(
            foreign_pre_chain=pre_chain,
            processors=[ProcessorFormatter.remove_processors_meta, _renderer(environment)],
        )
    )

    root_logger = logging.getLogger()
    root_logger.handlers[:] = [handler]
    root_logger.setLevel(getattr(logging, level_name, logging.INFO))

    for name, dep_level in DEPENDENCY_LEVELS.items():
        logging.getLogger(name).setLevel(dep_level)
    logging.getLogger("uvicorn.error").propagate = False

    get_logger(__name__).debug("Logging configured", environment=environment, level=level_name)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a structlog logger bound to ``name`` (typically ``__name__``)."""
    return structlog.get_logger(name)


def bind_context(**values: object) -> None:
    """Attach key-value pairs to every log event of the current task."""
    structlog.contextvars.bind_contextvars(**values)


def clear_context() -> None:
    structlog.contextvars.clear_contextvars()
