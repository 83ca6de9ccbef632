"""Bounded-concurrency dispatch and resilient external calls."""

from .dispatcher import dispatch, dispatch_groups
from .resilience import (
    calculate_timeout,
    call_with_deadline,
    is_transient,
    resilient_call,
    retry_with_backoff,
)

__all__ = [
    "calculate_timeout",
    "call_with_deadline",
    "dispatch",
    "dispatch_groups",
    "is_transient",
    "resilient_call",
    "retry_with_backoff",
]
