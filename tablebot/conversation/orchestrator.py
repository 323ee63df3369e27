"""
Conversation orchestrator: one inbound message in, one reply out.

Every message is first admitted by the idempotency guard, then routed:

    interactive selection  ->  booking_<id> (cancel that one) / slot_HH:MM (pick a time)
    affirmative            ->  commit the open proposal (cancel > modify > create)
    negative               ->  drop the open proposal, or offer to cancel a booking
    anything else          ->  short numeric answer for the draft, or the intent parser

Proposals are only committed after the customer confirms them, and every
commit re-checks availability against storage, since other customers may
have booked in between. No exception leaves ``process_inbound``: failures
end in a user-visible message or a logged drop.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable, Optional

from tablebot.config import settings
from tablebot.conversation.confirmation import is_affirmative, is_negative
from tablebot.conversation.idempotency import IdempotencyGuard
from tablebot.conversation.slot_manager import (
    first_missing,
    guess_short_token_kind,
    is_short_whitelisted,
    merge_fields,
)
from tablebot.conversation.state_machine import ConversationStateMachine, TransitionTrigger
from tablebot.logging_context import get_conversation_logger, set_conversation_id
from tablebot.prompts.prompt_templates import (
    build_alternatives_text,
    build_proposal_text,
    build_reservation_list_text,
    say,
)
from tablebot.scheduling.availability import (
    AvailabilityReason,
    Occupancy,
    check_availability,
    list_free_slots,
    suggest_alternatives,
)
from tablebot.scheduling.rules import TenantRules, get_rules
from tablebot.scheduling.timeslots import (
    align_to_slot,
    format_human,
    is_valid_time,
    local_now,
    parse_relative_date_token,
    to_datetime,
)
from tablebot.schemas.booking_schema import (
    INFO_ACTIONS,
    InboundMessage,
    NextAction,
    ParsedIntent,
    ReservationStatus,
    ReservationView,
    Tenant,
)
from tablebot.schemas.conversation_schema import HistoryItem, Speaker
from tablebot.services.base import IntentParser, Messenger, ParseContext, ReplyGenerator, ReplyRequest
from tablebot.services.gateway import CollaboratorGateway, fallback_text
from tablebot.services.whatsapp import WhatsAppMessenger
from tablebot.session.store import PendingCancel, PendingCreate, PendingModify, SessionStore
from tablebot.storage.repository import (
    CapacityExceededError,
    ReservationNotFoundError,
    ReservationRepository,
    StorageError,
)
from tablebot.utils import normalize_phone

logger = get_conversation_logger(__name__)

BOOKING_SELECTION_PREFIX = "booking_"
SLOT_SELECTION_PREFIX = "slot_"
# ids of the confirm buttons, as delivered when the customer taps one
BUTTON_ALIASES = {"confirm": "confermo", "cancel": "annulla"}

INTENT_CANCEL = "booking.cancel"


@dataclass
class TurnResult:
    """What happened to one inbound message."""

    admitted: bool
    replies: list[str] = field(default_factory=list)
    trace: list[str] = field(default_factory=list)

    @property
    def final_state(self) -> Optional[str]:
        return self.trace[-1] if self.trace else None


@dataclass
class _Turn:
    tenant: Tenant
    phone: str
    message: InboundMessage
    gateway: CollaboratorGateway
    machine: ConversationStateMachine
    replies: list[str] = field(default_factory=list)

    def move(self, trigger: TransitionTrigger) -> None:
        self.machine.transition(trigger)

    def result(self) -> TurnResult:
        return TurnResult(admitted=True, replies=list(self.replies),
                          trace=self.machine.get_state_trace())


class ConversationOrchestrator:
    """Drives the booking negotiation for every customer of every tenant."""

    def __init__(
        self,
        repository: ReservationRepository,
        sessions: SessionStore,
        parser: IntentParser,
        replier: ReplyGenerator,
        messenger_factory: Callable[[Tenant], Messenger] = WhatsAppMessenger.for_tenant,
        guard: Optional[IdempotencyGuard] = None,
        timezone: str = settings.locale.timezone,
        locale: str = settings.locale.locale,
        reply_dedupe_ms: int = settings.session.reply_dedupe_ms,
        now: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.repository = repository
        self.sessions = sessions
        self.parser = parser
        self.replier = replier
        self.messenger_factory = messenger_factory
        self.guard = guard or IdempotencyGuard(repository)
        self.timezone = timezone
        self.locale = locale
        self.reply_dedupe_ms = reply_dedupe_ms
        self._now = now or (lambda: local_now(self.timezone))

    def now(self) -> datetime:
        """Tenant-local wall clock (naive)."""
        return self._now()

    # ------------------------------------------------------------------ #
    # Entry points
    # ------------------------------------------------------------------ #

    async def process_inbound(self, tenant: Tenant, message: InboundMessage) -> TurnResult:
        """Admit the message through the idempotency guard, then handle it."""
        phone = normalize_phone(message.sender)
        set_conversation_id(f"{tenant.id}:{phone}:{message.message_id}")

        if not self.guard.admit(tenant.id, message.provider, message.message_id):
            return TurnResult(admitted=False)

        try:
            return await self.handle_message(tenant, message)
        except Exception:
            logger.error("Unhandled failure while processing message", exc_info=True)
            self.sessions.clear_session(tenant.id, phone)
            text = say("error_retry")
            gateway = CollaboratorGateway(self.parser, self.replier, self.messenger_factory(tenant))
            await gateway.send_text(phone, text)
            return TurnResult(admitted=True, replies=[text])

    async def handle_message(self, tenant: Tenant, message: InboundMessage) -> TurnResult:
        """Route one already-admitted message and send the reply."""
        phone = normalize_phone(message.sender)
        text = message.body.strip()
        text = BUTTON_ALIASES.get(text, text)

        turn = _Turn(
            tenant=tenant,
            phone=phone,
            message=message,
            gateway=CollaboratorGateway(self.parser, self.replier, self.messenger_factory(tenant)),
            machine=ConversationStateMachine(self.sessions.describe_state(tenant.id, phone)),
        )
        logger.info("Inbound in state %s: %r", turn.machine.current_state.value, text)
        self.sessions.append_history(
            tenant.id, phone, HistoryItem(role=Speaker.USER, text=text, timestamp=self.sessions.now())
        )

        if text.startswith(BOOKING_SELECTION_PREFIX):
            await self._select_booking(turn, text[len(BOOKING_SELECTION_PREFIX):])
        elif text.startswith(SLOT_SELECTION_PREFIX):
            await self._select_slot(turn, text[len(SLOT_SELECTION_PREFIX):])
        elif is_affirmative(text):
            await self._handle_affirmative(turn)
        elif is_negative(text):
            await self._handle_negative(turn)
        else:
            await self._handle_free_text(turn, text)

        return turn.result()

    # ------------------------------------------------------------------ #
    # Replies
    # ------------------------------------------------------------------ #

    async def _reply(
        self,
        turn: _Turn,
        text: str,
        confirm: bool = False,
        options: Optional[list[str]] = None,
        reservations: Optional[list[dict]] = None,
    ) -> bool:
        """Send one reply unless another went out within the dedupe window.

        Structured variants record their text equivalent in the history.
        """
        tenant_id, phone = turn.tenant.id, turn.phone
        if self.sessions.should_suppress_reply(tenant_id, phone, self.reply_dedupe_ms):
            logger.info("Reply suppressed, another was sent within %d ms", self.reply_dedupe_ms)
            return False

        if options:
            outcome = await turn.gateway.send_time_options(phone, text, options)
            recorded = f"{text} {', '.join(options)}"
        elif reservations:
            outcome = await turn.gateway.send_booking_list(phone, text, reservations)
            recorded = build_reservation_list_text(reservations, intro=text)
        elif confirm:
            outcome = await turn.gateway.send_confirm_buttons(phone, text)
            recorded = text
        else:
            outcome = await turn.gateway.send_text(phone, text)
            recorded = text

        if not outcome.unwrap_or(False):
            logger.warning("Reply to %s was not delivered", phone)

        self.sessions.set_last_outbound_now(tenant_id, phone)
        self.sessions.append_history(
            tenant_id, phone,
            HistoryItem(role=Speaker.ASSISTANT, text=recorded, timestamp=self.sessions.now()),
        )
        turn.replies.append(recorded)
        return True

    # ------------------------------------------------------------------ #
    # Storage helpers
    # ------------------------------------------------------------------ #

    @staticmethod
    def _interval(rules: TenantRules, date: str, time: str) -> tuple[datetime, datetime]:
        start_at = to_datetime(date, time)
        return start_at, start_at + timedelta(minutes=rules.table_duration)

    def _occupancy(self, tenant_id: str, date: str, exclude_id: Optional[str] = None) -> list[Occupancy]:
        """Reservations that may hold covers on ``date``, including late ones from the day before."""
        day_start = to_datetime(date, "00:00")
        return self.repository.occupancy_between(
            tenant_id, day_start - timedelta(days=1), day_start + timedelta(days=2), exclude_id
        )

    def _upcoming(self, turn: _Turn) -> list[ReservationView]:
        return self.repository.list_upcoming(turn.tenant.id, turn.phone, self.now())

    def _replace_draft(self, turn: _Turn, values: dict[str, Any]) -> None:
        self.sessions.clear_draft(turn.tenant.id, turn.phone)
        self.sessions.set_draft(turn.tenant.id, turn.phone, values)

    def _is_past(self, date: str, time: str) -> bool:
        return to_datetime(date, time) < self.now()

    # ------------------------------------------------------------------ #
    # Affirmative: commit the open proposal
    # ------------------------------------------------------------------ #

    async def _handle_affirmative(self, turn: _Turn) -> None:
        tenant_id, phone = turn.tenant.id, turn.phone

        pending_cancel = self.sessions.get_pending_cancel_if_valid(tenant_id, phone)
        if pending_cancel:
            await self._commit_cancel(turn, pending_cancel)
            return

        pending_modify = self.sessions.get_pending_modify_if_valid(tenant_id, phone)
        if pending_modify:
            await self._commit_modify(turn, pending_modify)
            return

        pending_create = self.sessions.get_pending_if_valid(tenant_id, phone)
        if pending_create:
            await self._commit_create(turn, pending_create)
            return

        turn.move(TransitionTrigger.INFO_SERVED)
        await self._reply(turn, say("nothing_to_confirm"))

    async def _commit_cancel(self, turn: _Turn, pending: PendingCancel) -> None:
        self.sessions.clear_pending_cancel(turn.tenant.id, turn.phone)
        try:
            self.repository.cancel_reservation(turn.tenant.id, pending.reservation_id)
        except ReservationNotFoundError:
            turn.move(TransitionTrigger.STALE)
            await self._reply(turn, say("reservation_not_found"))
            return
        except StorageError:
            logger.error("Cancelling %s failed", pending.reservation_id, exc_info=True)
            turn.move(TransitionTrigger.PERSIST_FAILED)
            await self._reply(turn, say("error_retry"))
            return
        turn.move(TransitionTrigger.CONFIRMED)
        await self._reply(turn, say("cancel_done"))

    async def _commit_modify(self, turn: _Turn, pending: PendingModify) -> None:
        tenant_id, phone = turn.tenant.id, turn.phone
        rules = get_rules(turn.tenant.slug)
        current = self.repository.get_reservation(tenant_id, pending.reservation_id, phone)
        if current is None or current.status != ReservationStatus.CONFIRMED:
            self.sessions.clear_pending_modify(tenant_id, phone)
            turn.move(TransitionTrigger.STALE)
            await self._reply(turn, say("reservation_not_found"))
            return

        if self._is_past(pending.date, pending.time):
            self.sessions.clear_pending_modify(tenant_id, phone)
            turn.move(TransitionTrigger.STALE)
            await self._reply(turn, say("date_in_past"))
            return

        existing = self._occupancy(tenant_id, pending.date, exclude_id=pending.reservation_id)
        result = check_availability(turn.tenant.slug, pending.date, pending.time, pending.people, existing)
        if rules is None or not result["ok"]:
            logger.info("Modify of %s no longer possible: %s", pending.reservation_id, result["reason"].value)
            self.sessions.clear_pending_modify(tenant_id, phone)
            turn.move(TransitionTrigger.STALE)
            await self._reply(turn, say("modify_unavailable"))
            return

        start_at, end_at = self._interval(rules, pending.date, pending.time)
        try:
            self.repository.update_reservation(
                tenant_id, pending.reservation_id, start_at, end_at, pending.people,
                notes=pending.notes, capacity=rules.capacity,
            )
        except (CapacityExceededError, ReservationNotFoundError):
            self.sessions.clear_pending_modify(tenant_id, phone)
            turn.move(TransitionTrigger.STALE)
            await self._reply(turn, say("modify_unavailable"))
            return
        except StorageError:
            logger.error("Updating %s failed", pending.reservation_id, exc_info=True)
            self.sessions.clear_session(tenant_id, phone)
            turn.move(TransitionTrigger.PERSIST_FAILED)
            await self._reply(turn, say("error_retry"))
            return

        self.sessions.clear_session(tenant_id, phone)
        turn.move(TransitionTrigger.CONFIRMED)
        await self._reply(turn, say("modify_done", when=format_human(pending.date, pending.time)))

    async def _commit_create(self, turn: _Turn, pending: PendingCreate) -> None:
        tenant_id, phone = turn.tenant.id, turn.phone
        rules = get_rules(turn.tenant.slug)
        if self._is_past(pending.date, pending.time):
            self.sessions.clear_pending(tenant_id, phone)
            kept = {"people": pending.people, "name": pending.name, "notes": pending.notes}
            if pending.date >= self.now().date().isoformat():
                kept["date"] = pending.date
            self._replace_draft(turn, kept)
            turn.move(TransitionTrigger.STALE)
            await self._reply(turn, say("date_in_past"))
            return

        existing = self._occupancy(tenant_id, pending.date)
        result = check_availability(turn.tenant.slug, pending.date, pending.time, pending.people, existing)
        if rules is None or not result["ok"]:
            logger.info("Proposal for %s %s went stale: %s", pending.date, pending.time, result["reason"].value)
            await self._reject_stale_create(turn, pending, existing)
            return

        start_at, end_at = self._interval(rules, pending.date, pending.time)
        if self.repository.has_overlap_for_customer(tenant_id, phone, start_at, end_at):
            self.sessions.clear_pending(tenant_id, phone)
            turn.move(TransitionTrigger.STALE)
            await self._reply(turn, say("overlap_existing"))
            return

        try:
            self.repository.create_reservation(
                tenant_id, phone, pending.name, pending.people, start_at, end_at,
                notes=pending.notes, message_id=turn.message.message_id, capacity=rules.capacity,
            )
        except CapacityExceededError:
            await self._reject_stale_create(turn, pending, self._occupancy(tenant_id, pending.date))
            return
        except StorageError:
            logger.error("Creating reservation for %s failed", phone, exc_info=True)
            self.sessions.clear_session(tenant_id, phone)
            turn.move(TransitionTrigger.PERSIST_FAILED)
            await self._reply(turn, say("error_retry"))
            return

        self.sessions.clear_session(tenant_id, phone)
        turn.move(TransitionTrigger.CONFIRMED)
        await self._reply(turn, say("booking_confirmed", when=format_human(pending.date, pending.time)))

    async def _reject_stale_create(
        self, turn: _Turn, pending: PendingCreate, existing: list[Occupancy]
    ) -> None:
        """Drop a proposal someone else's booking invalidated, keeping the rest of the draft."""
        self.sessions.clear_pending(turn.tenant.id, turn.phone)
        self._replace_draft(turn, {
            "date": pending.date, "people": pending.people,
            "name": pending.name, "notes": pending.notes,
        })
        turn.move(TransitionTrigger.STALE)
        alternatives = suggest_alternatives(
            turn.tenant.slug, pending.date, pending.time, pending.people, existing
        )
        if alternatives:
            await self._reply(turn, say("proposal_stale"), options=alternatives)
        else:
            await self._reply(turn, say("proposal_stale"))

    # ------------------------------------------------------------------ #
    # Negative: drop the proposal or offer a cancellation
    # ------------------------------------------------------------------ #

    async def _handle_negative(self, turn: _Turn) -> None:
        tenant_id, phone = turn.tenant.id, turn.phone

        if self.sessions.get_pending_cancel_if_valid(tenant_id, phone):
            self.sessions.clear_pending_cancel(tenant_id, phone)
            turn.move(TransitionTrigger.DENIED)
            await self._reply(turn, say("pending_cancel_denied"))
            return

        if self.sessions.get_pending_modify_if_valid(tenant_id, phone):
            self.sessions.clear_pending_modify(tenant_id, phone)
            turn.move(TransitionTrigger.DENIED)
            await self._reply(turn, say("pending_modify_denied"))
            return

        if self.sessions.get_pending_if_valid(tenant_id, phone):
            self.sessions.clear_pending(tenant_id, phone)
            self.sessions.clear_draft(tenant_id, phone)
            turn.move(TransitionTrigger.DENIED)
            await self._reply(turn, say("pending_create_denied"))
            return

        await self._propose_cancel(turn, self._upcoming(turn))

    async def _propose_cancel(
        self, turn: _Turn, upcoming: list[ReservationView], reservation_id: Optional[str] = None
    ) -> None:
        """Ask to confirm the cancellation, or let the customer pick when several match."""
        target = next((r for r in upcoming if r.id == reservation_id), None) if reservation_id else None
        if target is None and len(upcoming) == 1:
            target = upcoming[0]

        if target is not None:
            await self._ask_cancel(turn, target)
        elif upcoming:
            turn.move(TransitionTrigger.INFO_SERVED)
            await self._reply(
                turn, say("choose_booking_to_cancel"),
                reservations=[r.summary() for r in upcoming],
            )
        else:
            turn.move(TransitionTrigger.INFO_SERVED)
            await self._reply(turn, say("nothing_to_cancel"))

    async def _ask_cancel(self, turn: _Turn, reservation: ReservationView) -> None:
        self.sessions.set_pending_cancel(turn.tenant.id, turn.phone, reservation.id)
        turn.move(TransitionTrigger.CANCEL_PROPOSED)
        text = say(
            "cancel_ask",
            when=format_human(reservation.date, reservation.time),
            people=reservation.party_size,
        )
        await self._reply(turn, text, confirm=True)

    # ------------------------------------------------------------------ #
    # Interactive selections
    # ------------------------------------------------------------------ #

    async def _select_booking(self, turn: _Turn, reservation_id: str) -> None:
        reservation = self.repository.get_reservation(turn.tenant.id, reservation_id, turn.phone)
        if reservation is None or reservation.status != ReservationStatus.CONFIRMED:
            turn.move(TransitionTrigger.INFO_SERVED)
            await self._reply(turn, say("reservation_not_found"))
            return
        await self._ask_cancel(turn, reservation)

    async def _select_slot(self, turn: _Turn, time: str) -> None:
        if not is_valid_time(time):
            turn.move(TransitionTrigger.INFO_SERVED)
            await self._reply(turn, fallback_text("parse"))
            return
        await self._advance_create(turn, {"time": time})

    # ------------------------------------------------------------------ #
    # Free text
    # ------------------------------------------------------------------ #

    async def _handle_free_text(self, turn: _Turn, text: str) -> None:
        tenant_id, phone = turn.tenant.id, turn.phone
        draft = self.sessions.get_draft(tenant_id, phone)
        rules = get_rules(turn.tenant.slug)

        if draft and rules is not None and is_short_whitelisted(text):
            guess = guess_short_token_kind(text, draft, rules.capacity)
            if guess.kind != "ambiguous":
                logger.debug("Short reply %r read as %s=%s", text, guess.kind, guess.value)
                await self._advance_create(turn, {guess.kind: guess.value})
                return

        upcoming = self._upcoming(turn)
        summaries = [r.summary() for r in upcoming]
        history = [item.for_prompt() for item in self.sessions.get_history(tenant_id, phone)]
        context = ParseContext(
            history=history,
            reservations=summaries,
            locale=self.locale,
            timezone=self.timezone,
            tenant_name=turn.tenant.name or turn.tenant.slug,
            phone=phone,
        )
        outcome = await turn.gateway.parse(text, context)
        if not outcome.ok or outcome.value is None:
            turn.move(TransitionTrigger.INFO_SERVED)
            await self._reply(turn, fallback_text("parse"))
            return

        parsed = outcome.value
        fields = parsed.fields.known()
        reservation_id = fields.pop("reservation_id", None)
        action = parsed.next_action
        logger.info("Intent %s -> %s", parsed.intent, action.value)

        if parsed.intent == INTENT_CANCEL:
            await self._propose_cancel(turn, upcoming, reservation_id)
        elif action == NextAction.LIST_SHOW:
            await self._show_reservations(turn)
        elif action == NextAction.CHECK_AVAILABILITY and parsed.is_modify:
            await self._propose_modify(turn, fields, upcoming, reservation_id)
        elif action == NextAction.CHECK_AVAILABILITY:
            await self._advance_create(turn, fields)
        elif action == NextAction.ASK_CLARIFICATION:
            await self._ask_clarification(turn, parsed, fields)
        else:
            await self._generate_reply(turn, parsed, fields, summaries, history)

    async def _ask_clarification(self, turn: _Turn, parsed: ParsedIntent, fields: dict) -> None:
        if fields:
            self.sessions.set_draft(turn.tenant.id, turn.phone, fields)
            turn.move(TransitionTrigger.FIELDS_PARTIAL)
        else:
            turn.move(TransitionTrigger.INFO_SERVED)
        if parsed.reply:
            await self._reply(turn, parsed.reply)
            return
        missing = first_missing(self.sessions.get_draft(turn.tenant.id, turn.phone))
        await self._reply(turn, say(missing.prompt_key if missing else "ask_missing_generic"))

    async def _generate_reply(
        self,
        turn: _Turn,
        parsed: ParsedIntent,
        fields: dict,
        reservations: list[dict],
        history: list[dict],
    ) -> None:
        """Informational, small-talk and unrecognized messages go to the reply generator."""
        if parsed.next_action not in INFO_ACTIONS:
            logger.info("No engine action for intent %s, using reply generator", parsed.intent)
        request = ReplyRequest(
            intent=parsed.intent,
            history=history,
            fields=fields,
            reservations=reservations,
            customer=turn.phone,
        )
        text = await turn.gateway.generate(request)
        turn.move(TransitionTrigger.INFO_SERVED)
        await self._reply(turn, text)

    async def _show_reservations(self, turn: _Turn) -> None:
        upcoming = self._upcoming(turn)
        turn.move(TransitionTrigger.INFO_SERVED)
        if not upcoming:
            await self._reply(turn, say("list_empty"))
            return
        await self._reply(turn, build_reservation_list_text([r.summary() for r in upcoming]))

    # ------------------------------------------------------------------ #
    # Create and modify proposals
    # ------------------------------------------------------------------ #

    async def _advance_create(self, turn: _Turn, fields: dict[str, Any]) -> None:
        """Merge new fields into the draft and propose a booking once it is complete."""
        tenant_id, phone = turn.tenant.id, turn.phone
        draft = merge_fields(self.sessions.get_draft(tenant_id, phone), fields)
        self.sessions.set_draft(tenant_id, phone, draft)

        missing = first_missing(draft)
        if missing:
            turn.move(TransitionTrigger.FIELDS_PARTIAL)
            await self._reply(turn, say(missing.prompt_key))
            return

        now = self.now()
        date = parse_relative_date_token(str(draft["date"]), now=now, tz=self.timezone)
        if date is None or date < now.date().isoformat():
            self._replace_draft(turn, {k: v for k, v in draft.items() if k != "date"})
            turn.move(TransitionTrigger.FIELDS_PARTIAL)
            await self._reply(turn, say("invalid_date" if date is None else "date_in_past"))
            return
        draft["date"] = date

        rules = get_rules(turn.tenant.slug)
        if rules is None:
            logger.warning("Tenant %s has no booking rules", turn.tenant.slug)
            turn.move(TransitionTrigger.INFO_SERVED)
            await self._reply(turn, say("unavailable_generic"))
            return

        alignment = align_to_slot(draft["time"], rules.slot_minutes)
        if not alignment.ok:
            self._replace_draft(turn, {k: v for k, v in draft.items() if k != "time"})
            turn.move(TransitionTrigger.FIELDS_PARTIAL)
            await self._reply(
                turn, say("slot_not_aligned", slot=rules.slot_minutes, suggestion=alignment.time)
            )
            return

        if self._is_past(date, alignment.time):
            # today, but the hour is gone
            self._replace_draft(turn, {k: v for k, v in draft.items() if k != "time"})
            turn.move(TransitionTrigger.FIELDS_PARTIAL)
            await self._reply(turn, say("date_in_past"))
            return

        people = int(draft["people"])
        start_at, end_at = self._interval(rules, date, alignment.time)
        if self.repository.has_overlap_for_customer(tenant_id, phone, start_at, end_at):
            self.sessions.clear_pending(tenant_id, phone)
            self._replace_draft(turn, {k: v for k, v in draft.items() if k != "time"})
            turn.move(TransitionTrigger.PROPOSAL_REJECTED)
            await self._reply(turn, say("overlap_existing"))
            return

        existing = self._occupancy(tenant_id, date)
        result = check_availability(turn.tenant.slug, date, alignment.time, people, existing)
        if not result["ok"]:
            self.sessions.clear_pending(tenant_id, phone)
            self._replace_draft(turn, {k: v for k, v in draft.items() if k != "time"})
            turn.move(TransitionTrigger.PROPOSAL_REJECTED)
            await self._explain_unavailable(turn, result["reason"], rules, date, alignment.time, people, existing)
            return

        self._replace_draft(turn, draft)
        proposal = self.sessions.set_pending(tenant_id, phone, {
            "date": date, "time": alignment.time, "people": people,
            "name": draft["name"], "notes": draft.get("notes"),
        })
        turn.move(TransitionTrigger.PROPOSAL_MADE)
        text = build_proposal_text(proposal.date, proposal.time, proposal.people, proposal.name)
        await self._reply(turn, text, confirm=True)

    async def _explain_unavailable(
        self,
        turn: _Turn,
        reason: AvailabilityReason,
        rules: TenantRules,
        date: str,
        time: str,
        people: int,
        existing: list[Occupancy],
    ) -> None:
        slug = turn.tenant.slug
        if reason == AvailabilityReason.CLOSED:
            await self._reply(turn, say("unavailable_closed"))
        elif reason == AvailabilityReason.INVALID_SLOT:
            suggestion = align_to_slot(time, rules.slot_minutes).time
            await self._reply(turn, say("slot_not_aligned", slot=rules.slot_minutes, suggestion=suggestion))
        elif reason == AvailabilityReason.OUTSIDE_OPENING:
            free = list_free_slots(slug, date, people, existing=existing)
            if free:
                await self._reply(turn, say("unavailable_outside_opening"), options=free)
            else:
                await self._reply(turn, say("unavailable_outside_opening"))
        elif reason == AvailabilityReason.CAPACITY_EXCEEDED and people > rules.capacity:
            await self._reply(turn, say("unavailable_capacity"))
        elif reason == AvailabilityReason.CAPACITY_EXCEEDED:
            alternatives = suggest_alternatives(slug, date, time, people, existing)
            if alternatives:
                await self._reply(turn, say("alternatives_title"), options=alternatives)
            else:
                await self._reply(turn, build_alternatives_text(alternatives))
        else:
            await self._reply(turn, say("unavailable_generic"))

    async def _propose_modify(
        self,
        turn: _Turn,
        fields: dict[str, Any],
        upcoming: list[ReservationView],
        reservation_id: Optional[str],
    ) -> None:
        """Validate the requested change against availability and ask for confirmation."""
        tenant_id, phone = turn.tenant.id, turn.phone
        if reservation_id is None and len(upcoming) == 1:
            reservation_id = upcoming[0].id
        if reservation_id is None:
            turn.move(TransitionTrigger.INFO_SERVED)
            if not upcoming:
                await self._reply(turn, say("list_empty"))
            else:
                await self._reply(turn, build_reservation_list_text(
                    [r.summary() for r in upcoming], intro=say("choose_booking")
                ))
            return

        current = self.repository.get_reservation(tenant_id, reservation_id, phone)
        if current is None or current.status != ReservationStatus.CONFIRMED:
            turn.move(TransitionTrigger.INFO_SERVED)
            await self._reply(turn, say("reservation_not_found"))
            return

        merged = merge_fields(
            {"date": current.date, "time": current.time,
             "people": current.party_size, "notes": current.notes},
            fields,
        )
        date = parse_relative_date_token(str(merged["date"]), now=self.now(), tz=self.timezone)
        rules = get_rules(turn.tenant.slug)
        if date is None or rules is None or not is_valid_time(str(merged["time"])):
            turn.move(TransitionTrigger.INFO_SERVED)
            await self._reply(turn, say("modify_missing"))
            return

        alignment = align_to_slot(merged["time"], rules.slot_minutes)
        if not alignment.ok:
            turn.move(TransitionTrigger.INFO_SERVED)
            await self._reply(
                turn, say("slot_not_aligned", slot=rules.slot_minutes, suggestion=alignment.time)
            )
            return

        if self._is_past(date, alignment.time):
            turn.move(TransitionTrigger.INFO_SERVED)
            await self._reply(turn, say("date_in_past"))
            return

        people = int(merged["people"])
        existing = self._occupancy(tenant_id, date, exclude_id=reservation_id)
        result = check_availability(turn.tenant.slug, date, alignment.time, people, existing)
        if not result["ok"]:
            alternatives = suggest_alternatives(turn.tenant.slug, date, alignment.time, people, existing)
            text = say("modify_unavailable")
            if alternatives:
                text = f"{text} {build_alternatives_text(alternatives)}"
            turn.move(TransitionTrigger.INFO_SERVED)
            await self._reply(turn, text)
            return

        self.sessions.set_pending_modify(tenant_id, phone, {
            "reservation_id": reservation_id, "date": date, "time": alignment.time,
            "people": people, "notes": merged.get("notes"),
        })
        turn.move(TransitionTrigger.MODIFY_PROPOSED)
        text = say("modify_propose", when=format_human(date, alignment.time), people=people)
        await self._reply(turn, text, confirm=True)
