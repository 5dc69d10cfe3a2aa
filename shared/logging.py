"""
Structured logging for the Observer Rules service.

Every event is rendered as one JSON object carrying the service name and,
when bound, the request and observer correlation fields.
"""

import logging
import sys
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any, Dict, Iterator, List, Optional, TextIO

import structlog

# Correlation fields picked up by every log event in the current context
request_id_var: ContextVar[Optional[str]] = ContextVar('request_id', default=None)
observer_id_var: ContextVar[Optional[str]] = ContextVar('observer_id', default=None)
map_id_var: ContextVar[Optional[str]] = ContextVar('map_id', default=None)

_service_name: Optional[str] = None


def configure_logging(service_name: str, log_level: str = "info", stream: Optional[TextIO] = None) -> None:
    """Route structlog through stdlib logging as JSON lines on ``stream``."""
    global _service_name
    _service_name = service_name

    structlog.configure(
        processors=_processors(),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=stream or sys.stdout,
        level=getattr(logging, log_level.upper()),
    )


def _processors() -> List[Any]:
    return [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        add_service_context,
        add_correlation_context,
        structlog.processors.JSONRenderer(),
    ]


def add_service_context(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Tag the event with the configured service, else the logger's root name."""
    if _service_name:
        event_dict.setdefault("service", _service_name)
        return event_dict

    logger_name = event_dict.get("logger", "")
    if "." in logger_name:
        event_dict.setdefault("service", logger_name.split(".", 1)[0])
    return event_dict


def add_correlation_context(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Copy bound correlation fields onto the event.

    Fields passed explicitly to the log call win over the ambient context.
    """
    for key, var in (("request_id", request_id_var), ("observer_id", observer_id_var), ("map_id", map_id_var)):
        value = var.get()
        if value:
            event_dict.setdefault(key, value)
    return event_dict


def set_request_id(request_id: Optional[str] = None) -> str:
    """Bind a request id (a fresh UUID when none is given)."""
    request_id = request_id or str(uuid.uuid4())
    request_id_var.set(request_id)
    return request_id


@contextmanager
def observer_log_context(observer_id: Optional[Any] = None, map_id: Optional[Any] = None) -> Iterator[None]:
    """Bind observer context for the duration of a block, then restore it."""
    observer_token = observer_id_var.set(str(observer_id) if observer_id is not None else None)
    map_token = map_id_var.set(str(map_id) if map_id is not None else None)
    try:
        yield
    finally:
        observer_id_var.reset(observer_token)
        map_id_var.reset(map_token)


def get_logger(name: str) -> structlog.BoundLogger:
    return structlog.get_logger(name)
