"""
Correlation IDs for tracing one report through logs, events and errors.

HTTP requests take the ID from the X-Correlation-ID header (or mint one);
background jobs open their own scope so every merge logged by a nightly
scan can be traced back to that run.
"""

import re
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar

correlation_id_var: ContextVar[str] = ContextVar("correlation_id", default="")

_CORRELATION_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]{1,64}$")


def generate_correlation_id() -> str:
    """
    Generate a short correlation ID.

    Returns:
        8 hex characters, short enough to read out over the phone.
    """
    return uuid.uuid4().hex[:8]


def is_valid_correlation_id(value: str | None) -> bool:
    """Accept client-supplied IDs only if they are short and header-safe."""
    return bool(value) and bool(_CORRELATION_ID_PATTERN.match(value or ""))


def get_correlation_id() -> str:
    """Return the current context's correlation ID, or empty string."""
    return correlation_id_var.get()


def set_correlation_id(correlation_id: str) -> None:
    correlation_id_var.set(correlation_id)


@contextmanager
def correlation_scope(prefix: str = "job") -> Iterator[str]:
    """
    Bind a fresh correlation ID for the duration of a block.

    Used by scheduled jobs and CLI tasks, which have no request to inherit
    an ID from. The previous value is restored on exit.

    Args:
        prefix: Short label prepended to the generated ID (e.g. "retro")

    Yields:
        The bound correlation ID
    """
    correlation_id = f"{prefix}-{generate_correlation_id()}"
    token = correlation_id_var.set(correlation_id)
    try:
        yield correlation_id
    finally:
        correlation_id_var.reset(token)
