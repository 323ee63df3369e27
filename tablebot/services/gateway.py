"""
Uniform, failure-tolerant access to the external collaborators.

Every NLU, reply-generation and outbound-send call goes through
CollaboratorGateway, which never raises: it returns an Outcome carrying
either the value or the captured error. The canned text used when a
capability fails is defined once, in FALLBACK_REPLIES.
"""

import logging
from dataclasses import dataclass
from typing import Awaitable, Generic, Optional, TypeVar

from tablebot.prompts.prompt_templates import say
from tablebot.schemas.booking_schema import ParsedIntent
from tablebot.services.base import (
    IntentParser,
    Messenger,
    ParseContext,
    ReplyGenerator,
    ReplyRequest,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

# capability -> canned reply key
FALLBACK_REPLIES: dict[str, str] = {
    "parse": "nlu_fallback",
    "generate": "reply_fallback",
}


@dataclass(frozen=True)
class Outcome(Generic[T]):
    """Result of a collaborator call: a value or the error that replaced it."""

    value: Optional[T] = None
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap_or(self, default: T) -> T:
        return self.value if self.ok and self.value is not None else default


def fallback_text(capability: str) -> str:
    """Canned reply used when ``capability`` is unavailable."""
    return say(FALLBACK_REPLIES.get(capability, "error_retry"))


async def _capture(capability: str, call: Awaitable[T]) -> Outcome[T]:
    try:
        return Outcome(value=await call)
    except Exception as exc:  # collaborator failures must never reach the engine
        logger.warning("Collaborator '%s' failed: %s", capability, exc, exc_info=True)
        return Outcome(error=exc)


class CollaboratorGateway:
    """Wraps the parser, reply generator and messenger behind one failure policy."""

    def __init__(
        self, parser: IntentParser, replier: ReplyGenerator, messenger: Messenger
    ) -> None:
        self.parser = parser
        self.replier = replier
        self.messenger = messenger

    async def parse(self, text: str, context: ParseContext) -> Outcome[ParsedIntent]:
        return await _capture("parse", self.parser.parse(text, context))

    async def generate(self, request: ReplyRequest) -> str:
        """Reply text, or the canned fallback when generation fails or returns nothing."""
        outcome = await _capture("generate", self.replier.generate(request))
        text = outcome.unwrap_or("")
        return text.strip() or fallback_text("generate")

    async def send_text(self, to: str, body: str) -> Outcome[bool]:
        return await _capture("send_text", self.messenger.send_text(to, body))

    async def send_confirm_buttons(self, to: str, body: str) -> Outcome[bool]:
        return await _capture("send_confirm_buttons", self.messenger.send_confirm_buttons(to, body))

    async def send_time_options(self, to: str, title: str, options: list[str]) -> Outcome[bool]:
        return await _capture(
            "send_time_options", self.messenger.send_time_options(to, title, options)
        )

    async def send_booking_list(
        self, to: str, title: str, reservations: list[dict]
    ) -> Outcome[bool]:
        return await _capture(
            "send_booking_list", self.messenger.send_booking_list(to, title, reservations)
        )
