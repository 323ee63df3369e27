"""Shared test fixtures and helpers."""

from datetime import datetime, timedelta
from itertools import count
from typing import Callable, Optional, Union

import pytest

from tablebot.conversation.orchestrator import ConversationOrchestrator
from tablebot.conversation.state_machine import ConversationStateMachine
from tablebot.scheduling.rules import TenantRules, register_rules
from tablebot.schemas.booking_schema import (
    BookingFields,
    InboundMessage,
    NextAction,
    ParsedIntent,
    Tenant,
)
from tablebot.services.base import ParseContext, ReplyRequest
from tablebot.session.store import SessionStore
from tablebot.storage.database import create_session_factory
from tablebot.storage.repository import ReservationRepository

TEST_TENANT = "test-trattoria"
PHONE = "393331112222"
OTHER_PHONE = "393339998888"

# 2030-01-01 is a Tuesday
TODAY = "2030-01-01"
TOMORROW = "2030-01-02"
NOW = datetime(2030, 1, 1, 12, 0)

TEST_RULES = TenantRules(
    slot_minutes=15,
    table_duration=120,
    capacity=8,
    opening_hours={
        "tue": ("19:00-23:00",),
        "wed": ("19:00-23:00",),
        "sat": ("12:00-15:00", "19:00-23:59"),
    },
)

register_rules(TEST_TENANT, TEST_RULES)


class FakeClock:
    """Epoch-millisecond clock advanced by hand."""

    def __init__(self, start_ms: float = 1_000_000.0) -> None:
        self.now_ms = start_ms

    def __call__(self) -> float:
        return self.now_ms

    def advance(self, ms: float) -> None:
        self.now_ms += ms


class ScriptedParser:
    """Intent parser returning queued results; raises when given an exception."""

    def __init__(self) -> None:
        self.queue: list[Union[ParsedIntent, Exception]] = []
        self.calls: list[tuple[str, ParseContext]] = []

    def push(self, item: Union[ParsedIntent, Exception]) -> None:
        self.queue.append(item)

    async def parse(self, text: str, context: ParseContext) -> ParsedIntent:
        self.calls.append((text, context))
        if not self.queue:
            return ParsedIntent(intent="smalltalk", next_action=NextAction.SMALLTALK)
        item = self.queue.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


class FakeReplier:
    def __init__(self, text: str = "Risposta generata", error: Optional[Exception] = None) -> None:
        self.text = text
        self.error = error
        self.requests: list[ReplyRequest] = []

    async def generate(self, request: ReplyRequest) -> str:
        self.requests.append(request)
        if self.error:
            raise self.error
        return self.text


class FakeMessenger:
    """Records every outbound message as (kind, to, body, extra)."""

    def __init__(self, fail: bool = False) -> None:
        self.sent: list[tuple[str, str, str, object]] = []
        self.fail = fail

    async def _record(self, kind: str, to: str, body: str, extra: object = None) -> bool:
        if self.fail:
            raise ConnectionError("provider down")
        self.sent.append((kind, to, body, extra))
        return True

    async def send_text(self, to: str, body: str) -> bool:
        return await self._record("text", to, body)

    async def send_confirm_buttons(self, to: str, body: str) -> bool:
        return await self._record("confirm", to, body)

    async def send_time_options(self, to: str, title: str, options: list[str]) -> bool:
        return await self._record("options", to, title, list(options))

    async def send_booking_list(self, to: str, title: str, reservations: list[dict]) -> bool:
        return await self._record("bookings", to, title, list(reservations))

    @property
    def kinds(self) -> list[str]:
        return [kind for kind, *_ in self.sent]

    @property
    def last_body(self) -> str:
        return self.sent[-1][2]


def create_intent(
    next_action: NextAction = NextAction.CHECK_AVAILABILITY,
    intent: str = "booking.create",
    reply: Optional[str] = None,
    **fields,
) -> ParsedIntent:
    """Helper to create a ParsedIntent with the given booking fields."""
    return ParsedIntent(
        intent=intent,
        confidence=0.9,
        fields=BookingFields(**fields),
        next_action=next_action,
        reply=reply,
    )


@pytest.fixture
def state_machine():
    return ConversationStateMachine()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    return SessionStore(default_ttl_ms=600_000, history_limit=12, clock=clock)


@pytest.fixture
def repository():
    return ReservationRepository(create_session_factory("sqlite:///:memory:"))


@pytest.fixture
def tenant():
    return Tenant(id="t1", slug=TEST_TENANT, name="Trattoria Test")


@pytest.fixture
def parser():
    return ScriptedParser()


@pytest.fixture
def replier():
    return FakeReplier()


@pytest.fixture
def messenger():
    return FakeMessenger()


@pytest.fixture
def orchestrator(repository, store, parser, replier, messenger):
    return ConversationOrchestrator(
        repository=repository,
        sessions=store,
        parser=parser,
        replier=replier,
        messenger_factory=lambda tenant: messenger,
        reply_dedupe_ms=750,
        now=lambda: NOW,
    )


@pytest.fixture
def chat(orchestrator, tenant, clock):
    """Send one customer message, a couple of seconds after the previous one."""
    ids = count(1)

    async def send(body: str, sender: str = PHONE, message_id: Optional[str] = None):
        clock.advance(2000)
        message = InboundMessage(
            message_id=message_id or f"wamid.{next(ids)}", sender=sender, body=body
        )
        return await orchestrator.process_inbound(tenant, message)

    return send


@pytest.fixture
def book(repository, tenant) -> Callable:
    """Insert a confirmed reservation directly into storage."""

    def insert(date: str, time: str, people: int, phone: str = OTHER_PHONE, name: str = "Mario"):
        start = datetime.fromisoformat(f"{date}T{time}")
        return repository.create_reservation(
            tenant.id, phone, name, people, start,
            start + timedelta(minutes=TEST_RULES.table_duration),
        )

    return insert
