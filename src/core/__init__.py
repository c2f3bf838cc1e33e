# Core infrastructure
from src.core.context import (
    RequestContext,
    clear_context,
    get_context,
    get_learner_id,
    get_request_id,
    get_trace_id,
    set_learner_id,
    set_request_id,
    set_trace_id,
)
from src.core.logging import configure_structlog, get_logger
from src.core.middleware import RequestContextMiddleware


__all__ = [
    "RequestContext",
    "RequestContextMiddleware",
    "clear_context",
    "configure_structlog",
    "get_context",
    "get_learner_id",
    "get_logger",
    "get_request_id",
    "get_trace_id",
    "set_learner_id",
    "set_request_id",
    "set_trace_id",
]
