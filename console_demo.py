"""
Offline console demo: runs booking conversations without any API keys.

Uses the real orchestrator, session store, availability engine and an
in-memory SQLite database. The intent parser is a small keyword matcher
and outbound messages are printed instead of sent. No LLM, no WhatsApp,
no network calls.

Usage:
    python console_demo.py
    python console_demo.py --scenario booking
    python console_demo.py --scenario cancel
    python console_demo.py --scenario modify
    python console_demo.py --scenario busy
"""

import argparse
import asyncio
import re
import sys
from datetime import datetime, timedelta
from itertools import count
from typing import Callable, Optional

from tablebot.config import settings
from tablebot.conversation.orchestrator import ConversationOrchestrator, TurnResult
from tablebot.scheduling.rules import get_rules
from tablebot.schemas.booking_schema import (
    BookingFields,
    InboundMessage,
    NextAction,
    ParsedIntent,
    Tenant,
)
from tablebot.services.base import IntentParser, ParseContext, ReplyGenerator, ReplyRequest
from tablebot.session.store import SessionStore
from tablebot.storage.database import create_session_factory
from tablebot.storage.repository import ReservationRepository

BLUE = "\033[94m"
GREEN = "\033[92m"
YELLOW = "\033[93m"
RED = "\033[91m"
DIM = "\033[2m"
RESET = "\033[0m"
BOLD = "\033[1m"

DEMO_PHONE = "393331112222"
OTHER_PHONE = "393339998888"
# Tuesday noon: "domani" is a Wednesday, open 19:00-23:00
DEMO_NOW = datetime(2030, 1, 1, 12, 0)

_PEOPLE = re.compile(r"\b(?:per|siamo(?:\s+in)?)\s+(\d{1,2})\b|\b(\d{1,2})\s+persone\b")
_TIME = re.compile(r"\b(?:alle|ore)\s+(\d{1,2})(?::(\d{2}))?\b")
_DATE = re.compile(
    r"\b(\d{4}-\d{2}-\d{2}|oggi|stasera|domani|dopodomani|"
    r"(?:lun|mar|mer|gio|ven|sab|dom)\w*(?:\s+prossim\w*)?)\b"
)
_NAME = re.compile(r"\ba nome (?:di )?([A-Za-zÀ-ÿ' ]{2,40})$", re.IGNORECASE)


class KeywordIntentParser:
    """Deterministic stand-in for the LLM intent parser."""

    async def parse(self, text: str, context: ParseContext) -> ParsedIntent:
        lower = text.lower()
        fields = BookingFields()

        match = _PEOPLE.search(lower)
        if match:
            fields.people = int(match.group(1) or match.group(2))
        match = _TIME.search(lower)
        if match:
            fields.time = f"{int(match.group(1)):02d}:{match.group(2) or '00'}"
        match = _DATE.search(lower)
        if match:
            fields.date = match.group(1)
        match = _NAME.search(text.strip())
        if match:
            fields.name = match.group(1).strip().title()

        if re.search(r"\b(spost|modific|cambi)", lower):
            return ParsedIntent(intent="booking.modify", confidence=0.9, fields=fields,
                                next_action=NextAction.CHECK_AVAILABILITY)
        if "prenotazioni" in lower:
            return ParsedIntent(intent="booking.list", confidence=0.9,
                                next_action=NextAction.LIST_SHOW)
        if re.search(r"\b(orari|aperti|menu|parcheggio|dove)\b", lower):
            return ParsedIntent(intent="info.hours", confidence=0.8,
                                next_action=NextAction.SEND_INFO)
        if fields.known() or "prenot" in lower or "tavolo" in lower:
            return ParsedIntent(intent="booking.create", confidence=0.9, fields=fields,
                                next_action=NextAction.CHECK_AVAILABILITY)
        return ParsedIntent(intent="smalltalk", confidence=0.5, next_action=NextAction.SMALLTALK)


class ProfileReplyGenerator:
    """Answers informational questions from the configured restaurant profile."""

    async def generate(self, request: ReplyRequest) -> str:
        profile = settings.restaurant
        if request.intent.startswith("info"):
            return f"Siamo aperti {profile.opening}. Ci trovi in {profile.address}."
        return f"Ciao! Sono l'assistente di {profile.name}, vuoi prenotare un tavolo?"


class ConsoleMessenger:
    """Prints outbound messages instead of sending them."""

    def _print(self, text: str) -> None:
        print(f"{GREEN}{BOLD}[{settings.restaurant.name}]{RESET} {GREEN}{text}{RESET}")

    async def send_text(self, to: str, body: str) -> bool:
        self._print(body)
        return True

    async def send_confirm_buttons(self, to: str, body: str) -> bool:
        self._print(f"{body}\n    [ Confermo ]  [ Annulla ]")
        return True

    async def send_time_options(self, to: str, title: str, options: list[str]) -> bool:
        rows = "\n".join(f"    - slot_{o}" for o in options)
        self._print(f"{title}\n{rows}")
        return True

    async def send_booking_list(self, to: str, title: str, reservations: list[dict]) -> bool:
        rows = "\n".join(
            f"    - booking_{r['id']}  {r['date']} {r['time']} ({r['people']} persone)"
            for r in reservations
        )
        self._print(f"{title}\n{rows}")
        return True


class ConsoleSession:
    """Plays a customer conversation against the real orchestrator in the terminal."""

    # Pre-scripted scenarios for --scenario flag
    SCENARIOS: dict[str, list[str]] = {
        "booking": [
            "Ciao!",
            "Vorrei prenotare un tavolo domani",
            "per 4",
            "alle 20:30",
            "a nome Anna",
            "confermo",
            "Quali prenotazioni ho?",
        ],
        "cancel": [
            "Quali prenotazioni ho?",
            "annulla",
            "confermo",
        ],
        "modify": [
            "Posso spostare la prenotazione alle 21:00?",
            "confermo",
        ],
        "busy": [
            "Tavolo per 4 domani alle 19:30 a nome Luca",
            "alle 21:00",
            "confermo",
        ],
    }

    MAX_INPUT_LENGTH = 500

    def __init__(
        self,
        parser: Optional[IntentParser] = None,
        replier: Optional[ReplyGenerator] = None,
        database_url: str = "sqlite:///:memory:",
        now: Optional[Callable[[], datetime]] = None,
        reply_dedupe_ms: int = settings.session.reply_dedupe_ms,
    ) -> None:
        self.tenant = Tenant(id=settings.restaurant.default_tenant,
                             slug=settings.restaurant.default_tenant,
                             name=settings.restaurant.name)
        self.repository = ReservationRepository(create_session_factory(database_url))
        self.sessions = SessionStore()
        messenger = ConsoleMessenger()
        self.orchestrator = ConversationOrchestrator(
            repository=self.repository,
            sessions=self.sessions,
            parser=parser or KeywordIntentParser(),
            replier=replier or ProfileReplyGenerator(),
            messenger_factory=lambda tenant: messenger,
            reply_dedupe_ms=reply_dedupe_ms,
            now=now,
        )
        self._message_ids = count(1)
        self.trace: list[str] = []

    def system_log(self, text: str) -> None:
        print(f"{DIM}  >> {text}{RESET}")

    def _seed(self, scenario: str) -> None:
        """Existing reservations some scenarios start from."""
        rules = get_rules(self.tenant.slug)
        tomorrow = DEMO_NOW.date() + timedelta(days=1)

        def add(phone: str, name: str, people: int, hhmm: str) -> None:
            start = datetime.combine(tomorrow, datetime.strptime(hhmm, "%H:%M").time())
            self.repository.create_reservation(
                self.tenant.id, phone, name, people, start,
                start + timedelta(minutes=rules.table_duration), source="demo",
            )

        if scenario in ("cancel", "modify"):
            add(DEMO_PHONE, "Anna", 4, "20:00")
        elif scenario == "busy":
            add(OTHER_PHONE, "Gruppo aziendale", rules.capacity - 2, "19:00")

    async def _send(self, text: str) -> TurnResult:
        message = InboundMessage(message_id=f"console-{next(self._message_ids)}",
                                 sender=DEMO_PHONE, body=text)
        result = await self.orchestrator.process_inbound(self.tenant, message)
        self.trace.extend(result.trace[1:] if self.trace else result.trace)
        self.system_log(f"State: {result.final_state}")
        return result

    def _banner(self, title: str) -> None:
        print()
        print(f"{BOLD}{'=' * 60}{RESET}")
        print(f"{BOLD}  TABLEBOT - {title}{RESET}")
        print(f"{BOLD}  Restaurant: {settings.restaurant.name}{RESET}")
        print(f"{BOLD}{'=' * 60}{RESET}")
        print()

    def _footer(self, title: str) -> None:
        print(f"\n{BOLD}{'=' * 60}{RESET}")
        print(f"{BOLD}  {title}{RESET}")
        print(f"{DIM}  State trace: {' -> '.join(self.trace)}{RESET}")
        print(f"{BOLD}{'=' * 60}{RESET}")

    async def run_scenario(self, scenario: str) -> None:
        """Auto-play a pre-scripted scenario for demo purposes."""
        steps = self.SCENARIOS.get(scenario)
        if not steps:
            print(f"{RED}Unknown scenario: {scenario}{RESET}")
            return

        self._banner(f"Scenario: {scenario}")
        self._seed(scenario)
        for step in steps:
            print(f"\n{BLUE}[Cliente] {RESET}{step}")
            await self._send(step)
        self._footer(f"Scenario '{scenario}' complete.")

    async def run(self) -> None:
        self._banner("Console Demo")
        print(f"{YELLOW}  Type 'quit' to exit{RESET}")
        while True:
            user_input = input(f"\n{BLUE}[Cliente] {RESET}").strip()
            if not user_input:
                continue
            if user_input.lower() in ("quit", "exit", "q"):
                print(f"\n{DIM}Session ended.{RESET}")
                break
            if len(user_input) > self.MAX_INPUT_LENGTH:
                print(f"{RED}Messaggio troppo lungo.{RESET}")
                continue
            await self._send(user_input)
        self._footer("Conversation complete.")


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Offline booking conversation demo")
    parser.add_argument("--scenario", choices=sorted(ConsoleSession.SCENARIOS))
    args = parser.parse_args(argv)

    if args.scenario:
        # scripted turns arrive faster than the reply dedupe window
        session = ConsoleSession(now=lambda: DEMO_NOW, reply_dedupe_ms=0)
        asyncio.run(session.run_scenario(args.scenario))
    else:
        asyncio.run(ConsoleSession().run())
    return 0


if __name__ == "__main__":
    sys.exit(main())
