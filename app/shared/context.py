"""Request context management using contextvars.

Provides async-safe storage for request-scoped data. The request id is set
by RequestIDMiddleware so that log lines written deep in the sync engine
(e.g. reconciliation failures) can be tied back to the request that caused
them.

Usage:
    token = set_request_id("abc123")
    ...
    reset_request_id(token)
"""

from contextvars import ContextVar, Token

_current_request_id: ContextVar[str | None] = ContextVar(
    "current_request_id", default=None
)


def set_request_id(request_id: str | None) -> Token:
    """Set the request id for the current async task; return a reset token."""
    return _current_request_id.set(request_id)


def reset_request_id(token: Token) -> None:
    """Restore the request id that was active before set_request_id."""
    _current_request_id.reset(token)


def get_request_id() -> str | None:
    """Return the current request id, or None outside a request."""
    return _current_request_id.get()
