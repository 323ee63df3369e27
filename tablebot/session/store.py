"""
In-memory per-customer session store.

Holds the negotiation state of each (tenant, phone) pair: at most one
pending proposal, a draft of partially collected fields, a bounded dialogue
history and the time of the last reply sent. Entries live in process memory
only and are lost on restart; a multi-instance deployment needs an external
keyed store honouring the same contract.

Expiry is lazy: a pending proposal past its deadline is dropped when it is
next read, and there is no background sweep.

Usage:
    store = SessionStore()
    store.set_pending("t1", "39333", {"date": "2030-01-01", "time": "20:30",
                                      "people": 4, "name": "Anna"})
    proposal = store.get_pending_if_valid("t1", "39333")
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Union

from tablebot.config import settings
from tablebot.conversation.state_machine import ConversationState
from tablebot.schemas.conversation_schema import HistoryItem
from tablebot.utils import conversation_key

logger = logging.getLogger(__name__)

DRAFT_FIELDS = ("date", "time", "people", "name", "notes")


def _wall_clock_ms() -> float:
    return time.time() * 1000


@dataclass
class PendingCreate:
    """A new reservation awaiting the customer's confirmation."""

    date: str
    time: str
    people: int
    name: str
    notes: Optional[str] = None
    expires_at: float = 0.0


@dataclass
class PendingCancel:
    """A reservation the customer is about to cancel."""

    reservation_id: str
    expires_at: float = 0.0


@dataclass
class PendingModify:
    """Replacement values for an existing reservation."""

    reservation_id: str
    date: str
    time: str
    people: int
    notes: Optional[str] = None
    expires_at: float = 0.0


PendingProposal = Union[PendingCreate, PendingCancel, PendingModify]


@dataclass
class SessionData:
    """State of one customer conversation.

    ``pending`` is a single tagged slot, so proposing one action replaces
    any other proposal still open.
    """

    pending: Optional[PendingProposal] = None
    draft: dict[str, Any] = field(default_factory=dict)
    history: list[HistoryItem] = field(default_factory=list)
    last_outbound_at: Optional[float] = None


class SessionStore:
    """Keyed session state with per-proposal TTLs and read-time expiry."""

    def __init__(
        self,
        default_ttl_ms: int = settings.session.pending_ttl_ms,
        history_limit: int = settings.session.history_limit,
        clock: Callable[[], float] = _wall_clock_ms,
    ) -> None:
        self.default_ttl_ms = default_ttl_ms
        self.history_limit = history_limit
        self._clock = clock
        self._sessions: dict[str, SessionData] = {}

    def now(self) -> float:
        """Current time in epoch milliseconds, as seen by the store."""
        return self._clock()

    def get_session(self, tenant_id: str, phone: str) -> SessionData:
        """Return the session for a customer, creating an empty one on first use."""
        key = conversation_key(tenant_id, phone)
        session = self._sessions.get(key)
        if session is None:
            session = SessionData()
            self._sessions[key] = session
        return session

    def clear_session(self, tenant_id: str, phone: str) -> None:
        """Forget everything about a customer: proposal, draft, history, dedupe stamp."""
        self._sessions.pop(conversation_key(tenant_id, phone), None)

    # ------------------------------------------------------------------ #
    # Pending proposals
    # ------------------------------------------------------------------ #

    def _expiry(self, ttl_ms: Optional[int]) -> float:
        return self.now() + (self.default_ttl_ms if ttl_ms is None else ttl_ms)

    def _get_valid(self, tenant_id: str, phone: str, kind: type) -> Optional[Any]:
        session = self.get_session(tenant_id, phone)
        pending = session.pending
        if not isinstance(pending, kind):
            return None
        if self.now() > pending.expires_at:
            logger.debug("Pending %s expired for %s", kind.__name__, phone)
            session.pending = None
            return None
        return pending

    def set_pending(
        self, tenant_id: str, phone: str, payload: dict[str, Any], ttl_ms: Optional[int] = None
    ) -> PendingCreate:
        """Open a create-reservation proposal."""
        proposal = PendingCreate(
            date=payload["date"],
            time=payload["time"],
            people=int(payload["people"]),
            name=payload["name"],
            notes=payload.get("notes"),
            expires_at=self._expiry(ttl_ms),
        )
        self.get_session(tenant_id, phone).pending = proposal
        return proposal

    def get_pending_if_valid(self, tenant_id: str, phone: str) -> Optional[PendingCreate]:
        return self._get_valid(tenant_id, phone, PendingCreate)

    def clear_pending(self, tenant_id: str, phone: str) -> None:
        """Drop whatever proposal is open, keeping draft and history."""
        self.get_session(tenant_id, phone).pending = None

    def set_pending_cancel(
        self, tenant_id: str, phone: str, reservation_id: str, ttl_ms: Optional[int] = None
    ) -> PendingCancel:
        proposal = PendingCancel(reservation_id=reservation_id, expires_at=self._expiry(ttl_ms))
        self.get_session(tenant_id, phone).pending = proposal
        return proposal

    def get_pending_cancel_if_valid(self, tenant_id: str, phone: str) -> Optional[PendingCancel]:
        return self._get_valid(tenant_id, phone, PendingCancel)

    def clear_pending_cancel(self, tenant_id: str, phone: str) -> None:
        session = self.get_session(tenant_id, phone)
        if isinstance(session.pending, PendingCancel):
            session.pending = None

    def set_pending_modify(
        self, tenant_id: str, phone: str, payload: dict[str, Any], ttl_ms: Optional[int] = None
    ) -> PendingModify:
        proposal = PendingModify(
            reservation_id=payload["reservation_id"],
            date=payload["date"],
            time=payload["time"],
            people=int(payload["people"]),
            notes=payload.get("notes"),
            expires_at=self._expiry(ttl_ms),
        )
        self.get_session(tenant_id, phone).pending = proposal
        return proposal

    def get_pending_modify_if_valid(self, tenant_id: str, phone: str) -> Optional[PendingModify]:
        return self._get_valid(tenant_id, phone, PendingModify)

    def clear_pending_modify(self, tenant_id: str, phone: str) -> None:
        session = self.get_session(tenant_id, phone)
        if isinstance(session.pending, PendingModify):
            session.pending = None

    # ------------------------------------------------------------------ #
    # Draft of partially collected fields
    # ------------------------------------------------------------------ #

    def set_draft(self, tenant_id: str, phone: str, patch: dict[str, Any]) -> dict[str, Any]:
        """Merge known fields into the draft; None values never overwrite."""
        session = self.get_session(tenant_id, phone)
        for name in DRAFT_FIELDS:
            value = patch.get(name)
            if value is not None:
                session.draft[name] = value
        return dict(session.draft)

    def get_draft(self, tenant_id: str, phone: str) -> dict[str, Any]:
        return dict(self.get_session(tenant_id, phone).draft)

    def clear_draft(self, tenant_id: str, phone: str) -> None:
        self.get_session(tenant_id, phone).draft.clear()

    # ------------------------------------------------------------------ #
    # History and reply dedupe
    # ------------------------------------------------------------------ #

    def append_history(self, tenant_id: str, phone: str, item: HistoryItem) -> None:
        session = self.get_session(tenant_id, phone)
        session.history.append(item)
        if len(session.history) > self.history_limit:
            del session.history[: len(session.history) - self.history_limit]

    def get_history(self, tenant_id: str, phone: str) -> list[HistoryItem]:
        return list(self.get_session(tenant_id, phone).history)

    def set_last_outbound_now(self, tenant_id: str, phone: str) -> None:
        self.get_session(tenant_id, phone).last_outbound_at = self.now()

    def should_suppress_reply(self, tenant_id: str, phone: str, window_ms: int) -> bool:
        """True when a reply was already sent to this customer within ``window_ms``."""
        last = self.get_session(tenant_id, phone).last_outbound_at
        return last is not None and self.now() - last < window_ms

    # ------------------------------------------------------------------ #
    # Derived state
    # ------------------------------------------------------------------ #

    def describe_state(self, tenant_id: str, phone: str) -> ConversationState:
        """Conceptual conversation state derived from the session contents."""
        if self.get_pending_cancel_if_valid(tenant_id, phone):
            return ConversationState.AWAITING_CANCEL_CONFIRM
        if self.get_pending_modify_if_valid(tenant_id, phone):
            return ConversationState.AWAITING_MODIFY_CONFIRM
        if self.get_pending_if_valid(tenant_id, phone):
            return ConversationState.AWAITING_CREATE_CONFIRM
        if self.get_draft(tenant_id, phone):
            return ConversationState.COLLECTING_FIELDS
        return ConversationState.IDLE

    def __len__(self) -> int:
        return len(self._sessions)
