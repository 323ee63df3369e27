"""
Contracts of the external collaborators the conversation engine consumes.

The engine never depends on a concrete LLM vendor or messaging provider; it
talks to these protocols. Concrete implementations live next to this module
(``nlu``, ``dialogue``, ``whatsapp``); tests and the console demo plug in
their own.
"""

from dataclasses import dataclass, field
from typing import Optional, Protocol, runtime_checkable

from tablebot.schemas.booking_schema import ParsedIntent


@dataclass
class ParseContext:
    """Dialogue context handed to the intent parser."""

    history: list[dict] = field(default_factory=list)
    reservations: list[dict] = field(default_factory=list)
    locale: str = "it-IT"
    timezone: str = "Europe/Rome"
    tenant_name: Optional[str] = None
    phone: Optional[str] = None


@dataclass
class ReplyRequest:
    """Everything the reply generator may use to write a free-form answer."""

    intent: str
    history: list[dict] = field(default_factory=list)
    fields: dict = field(default_factory=dict)
    reservations: list[dict] = field(default_factory=list)
    customer: str = ""


@runtime_checkable
class IntentParser(Protocol):
    async def parse(self, text: str, context: ParseContext) -> ParsedIntent:
        """Extract intent and booking fields from one customer message."""
        ...


@runtime_checkable
class ReplyGenerator(Protocol):
    async def generate(self, request: ReplyRequest) -> str:
        """Write a short reply for informational or unrecognized messages."""
        ...


@runtime_checkable
class Messenger(Protocol):
    """Outbound channel. Every method returns True when the provider accepted the message."""

    async def send_text(self, to: str, body: str) -> bool:
        ...

    async def send_confirm_buttons(self, to: str, body: str) -> bool:
        ...

    async def send_time_options(self, to: str, title: str, options: list[str]) -> bool:
        ...

    async def send_booking_list(self, to: str, title: str, reservations: list[dict]) -> bool:
        ...
