"""Request correlation for log records.

Holds the request id and the calling actor in context variables so every
log line written while serving a request can be tied back to it, including
lines written from worker threads started with asyncio.to_thread.
"""

import uuid
from contextvars import ContextVar
from typing import Optional

request_id_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)
actor_id_var: ContextVar[Optional[str]] = ContextVar("actor_id", default=None)


def generate_request_id() -> str:
    return str(uuid.uuid4())


def get_request_id() -> str:
    """Current request id, or "no-request-id" outside a request."""
    return request_id_var.get() or "no-request-id"


def set_request_id(request_id: str) -> None:
    request_id_var.set(request_id)


def get_actor_id() -> Optional[str]:
    return actor_id_var.get()


def set_actor_id(actor_id: Optional[str]) -> None:
    """Bind the authenticated caller to the current context.

    Args:
        actor_id: Value of the X-User-Id header, None for anonymous calls
    """
    actor_id_var.set(actor_id)
