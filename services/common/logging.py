import logging
from contextvars import ContextVar
from typing import Literal

from opentelemetry import trace

from .config import ServiceSettings


_PLACEHOLDER = "-"
_LOG_FORMAT = (
    "%(asctime)s | %(levelname)s | %(name)s | owner=%(owner_id)s "
    "trace_id=%(trace_id)s span_id=%(span_id)s | %(message)s"
)
# Driver loggers that drown request logs at INFO.
_NOISY_LOGGERS = ("sqlalchemy.engine", "aiosqlite", "asyncio")

_CURRENT_OWNER: ContextVar[int | None] = ContextVar("vbms_owner_id", default=None)


def bind_owner(owner_id: int | None) -> None:
    """Tag log records emitted by the current request (and tasks it spawns) with the owner."""

    _CURRENT_OWNER.set(owner_id)


class RequestContextFilter(logging.Filter):
    """Stamp records with the calling owner and the active trace/span identifiers."""

    def filter(self, record: logging.LogRecord) -> bool:
        owner_id = _CURRENT_OWNER.get()
        record.owner_id = owner_id if owner_id is not None else _PLACEHOLDER

        span_context = trace.get_current_span().get_span_context()
        if span_context.is_valid:
            record.trace_id = format(span_context.trace_id, "032x")
            record.span_id = format(span_context.span_id, "016x")
        else:
            record.trace_id = _PLACEHOLDER
            record.span_id = _PLACEHOLDER
        return True


def configure_logging(settings: ServiceSettings) -> None:
    """Configure root logging level, format and request correlation."""

    logging_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = settings.log_level
    logging.basicConfig(level=logging_level, format=_LOG_FORMAT)
    root_logger = logging.getLogger()
    context_filter = next(
        (f for f in root_logger.filters if isinstance(f, RequestContextFilter)),
        None,
    )
    if context_filter is None:
        context_filter = RequestContextFilter()
        root_logger.addFilter(context_filter)
    for handler in root_logger.handlers:
        if not any(isinstance(f, RequestContextFilter) for f in handler.filters):
            handler.addFilter(context_filter)

    if logging_level != "DEBUG":
        for name in _NOISY_LOGGERS:
            logging.getLogger(name).setLevel(logging.WARNING)
