"""Observability for InvoiceLearn: structured logging and request correlation."""

from .logging_config import configure_logging, get_logger, JSONFormatter, RequestIDFilter
from .request_id import (
    request_id_var,
    actor_id_var,
    generate_request_id,
    get_request_id,
    set_request_id,
    get_actor_id,
    set_actor_id,
)
from .middleware import RequestIDMiddleware

__all__ = [
    # Logging
    "configure_logging",
    "get_logger",
    "JSONFormatter",
    "RequestIDFilter",
    # Request context
    "request_id_var",
    "actor_id_var",
    "generate_request_id",
    "get_request_id",
    "set_request_id",
    "get_actor_id",
    "set_actor_id",
    # Middleware
    "RequestIDMiddleware",
]
