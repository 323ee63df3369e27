"""
At-most-once admission of inbound messages.

Before anything else happens for a message, its ``(tenant, provider,
message_id)`` key is written to the processed-message log. A key already
present means the provider redelivered a message we handled; any other
storage failure drops the message as well, since there is no retry queue.
"""

from tablebot.logging_context import get_conversation_logger
from tablebot.storage.repository import (
    DuplicateMessageError,
    ReservationRepository,
    StorageError,
)

logger = get_conversation_logger(__name__)


class IdempotencyGuard:
    """Admits each inbound message id once per tenant and provider."""

    def __init__(self, repository: ReservationRepository) -> None:
        self.repository = repository

    def admit(self, tenant_id: str, provider: str, message_id: str) -> bool:
        """Record the message; False means it must not be processed."""
        try:
            self.repository.record_processed_message(tenant_id, provider, message_id)
        except DuplicateMessageError:
            logger.info("Duplicate message %s:%s ignored", provider, message_id)
            return False
        except StorageError:
            logger.error("Could not record message %s:%s, dropping it", provider, message_id,
                         exc_info=True)
            return False
        return True
