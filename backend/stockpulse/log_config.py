"""
Logging setup for StockPulse.

Plain messages go through loguru (console plus a rotating file); structured
events go through structlog. Both carry whatever context is bound with
``bind_log_context`` (prediction id, symbol, horizon) for the duration of the
block, and secrets never reach either sink.
"""

import logging
import sys
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, List

import structlog
from loguru import logger
from structlog.typing import EventDict, Processor, WrappedLogger

from stockpulse.config import settings

REDACTED = "[REDACTED]"

# Substrings of field names whose values are credentials
SECRET_FIELD_MARKERS = ("api_key", "apikey", "authorization", "bearer", "jwt", "password", "secret", "token")

NOISY_LOGGERS = ("urllib3", "httpx", "httpcore", "yfinance", "peewee", "apscheduler.executors")

TEXT_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{line}</cyan> | "
    "<level>{message}</level> {extra}"
)


def is_secret_field(name: str) -> bool:
    lowered = name.lower()
    return any(marker in lowered for marker in SECRET_FIELD_MARKERS)


def redact_secrets(_: WrappedLogger, __: str, event_dict: EventDict) -> EventDict:
    """structlog processor: blank out credential-looking fields."""
    for key in event_dict:
        if key != "event" and is_secret_field(key):
            event_dict[key] = REDACTED
    return event_dict


def _redact_loguru_extra(record: dict) -> bool:
    extra = record["extra"]
    for key in extra:
        if is_secret_field(key):
            extra[key] = REDACTED
    return True


class InterceptHandler(logging.Handler):
    """Routes stdlib logging (uvicorn, apscheduler, sqlalchemy) into loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        frame, depth = logging.currentframe(), 2
        while frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def _add_loguru_sinks(json_output: bool) -> None:
    logger.remove()
    sink_options = dict(
        format="{message}" if json_output else TEXT_FORMAT,
        level=settings.log_level,
        serialize=json_output,
        filter=_redact_loguru_extra,
        backtrace=True,
        diagnose=settings.is_development,
    )
    logger.add(sys.stderr, **sink_options)

    if settings.log_file:
        Path(settings.log_file).parent.mkdir(parents=True, exist_ok=True)
        logger.add(settings.log_file, rotation="50 MB", retention="14 days", compression="zip", **sink_options)


def _structlog_processors(json_output: bool) -> List[Processor]:
    processors: List[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.add_log_level,
        redact_secrets,
        structlog.processors.format_exc_info,
    ]
    processors.append(structlog.processors.JSONRenderer() if json_output else structlog.dev.ConsoleRenderer())
    return processors


def configure_logging() -> None:
    """Install loguru sinks, structlog processors and the stdlib bridge."""
    json_output = settings.log_format == "json"
    _add_loguru_sinks(json_output)

    structlog.configure(
        processors=_structlog_processors(json_output),
        wrapper_class=structlog.make_filtering_bound_logger(logging.getLevelName(settings.log_level)),
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logger.debug(f"Logging configured: level={settings.log_level} format={settings.log_format} env={settings.app_env}")


@contextmanager
def bind_log_context(**context: Any) -> Iterator[None]:
    """Attach ``context`` to every loguru and structlog record emitted inside the block."""
    with structlog.contextvars.bound_contextvars(**context), logger.contextualize(**context):
        yield


def get_logger(name: str) -> Any:
    return structlog.get_logger(name)


configure_logging()
