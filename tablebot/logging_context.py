"""Per-message log tagging for tablebot.

``ConversationOrchestrator.process_inbound`` stores
``<tenant id>:<normalized phone>:<provider message id>`` in a context
variable before anything else runs, so every line logged while that message
is handled (guard, availability, storage, outbound send) carries the same
tag. Outside a message, e.g. at startup, the tag is ``-``.

``config.load_config`` installs the filter on the root handlers and prints the
tag through ``[%(conversation_id)s]`` in the format string.
"""

import logging
from contextvars import ContextVar

_conversation_id: ContextVar[str] = ContextVar("conversation_id", default="-")


def set_conversation_id(conversation_id: str) -> None:
    """Tag the current task; asyncio tasks each see their own value."""
    _conversation_id.set(conversation_id)


def get_conversation_id() -> str:
    return _conversation_id.get()


class ConversationIdFilter(logging.Filter):
    """Copies the current message tag onto ``record.conversation_id``."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.conversation_id = _conversation_id.get()  # type: ignore[attr-defined]
        return True


def install_conversation_filter() -> None:
    """Attach the filter to every root handler.

    Records from third-party loggers reach the root handlers too, so the
    format string may reference ``%(conversation_id)s`` unconditionally.
    """
    for handler in logging.getLogger().handlers:
        if not any(isinstance(f, ConversationIdFilter) for f in handler.filters):
            handler.addFilter(ConversationIdFilter())


def get_conversation_logger(name: str) -> logging.Logger:
    """Module logger whose records carry the message tag even without root handlers."""
    logger = logging.getLogger(name)
    if not any(isinstance(f, ConversationIdFilter) for f in logger.filters):
        logger.addFilter(ConversationIdFilter())
    return logger
