"""Session ID logging context for tracing a conversation across modules.

Provides a session-aware logger that attaches the chat session ID to every
log message, making it easy to follow one visitor's booking from the first
message to the saved appointment.

Usage:
    from vetchat.logging_context import get_session_logger, set_session_id

    set_session_id("6f1c...")
    logger = get_session_logger(__name__)
    logger.info("Processing message")  # record.session_id == "6f1c..."

``load_config`` installs the filter on the root handlers and formats every
line with ``LOG_FORMAT``, so records from any module carry the id.
"""

import logging
from contextvars import ContextVar
from typing import Iterable, Optional

LOG_FORMAT = "%(asctime)s [%(name)s] [%(session_id)s] %(levelname)s: %(message)s"

_session_id: ContextVar[str] = ContextVar("session_id", default="NO_SESSION")


def set_session_id(session_id: str) -> None:
    """Set the session ID for the current async context."""
    _session_id.set(session_id)


def get_session_id() -> str:
    """Retrieve the current session ID."""
    return _session_id.get()


class SessionIdFilter(logging.Filter):
    """Injects session_id into every log record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.session_id = get_session_id()  # type: ignore[attr-defined]
        return True


def get_session_logger(name: str) -> logging.Logger:
    """Return a logger with the SessionIdFilter attached.

    The filter adds ``session_id`` to each record so formatters can
    include ``%(session_id)s`` in their format string.
    """
    logger = logging.getLogger(name)
    if not any(isinstance(f, SessionIdFilter) for f in logger.filters):
        logger.addFilter(SessionIdFilter())
    return logger


def install_session_filter(handlers: Optional[Iterable[logging.Handler]] = None) -> None:
    """Attach a SessionIdFilter to ``handlers`` (default: the root handlers).

    Handler-level filters also see records propagated from loggers that
    never called ``get_session_logger``, so ``LOG_FORMAT`` is always safe.
    """
    targets = logging.getLogger().handlers if handlers is None else handlers
    for handler in targets:
        if not any(isinstance(f, SessionIdFilter) for f in handler.filters):
            handler.addFilter(SessionIdFilter())
