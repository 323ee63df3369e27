"""
Finite state machine for the booking negotiation.

The state of a conversation is derived from the session contents (which
proposal is pending, whether a draft is open). Each inbound message moves
the conversation along one explicit transition; the orchestrator records
every move here so that an undefined move is rejected loudly instead of
silently leaving the session in an inconsistent shape.

Usage:
    sm = ConversationStateMachine(ConversationState.IDLE)
    sm.transition(TransitionTrigger.PROPOSAL_MADE)
    assert sm.current_state == ConversationState.AWAITING_CREATE_CONFIRM
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

logger = logging.getLogger(__name__)


class ConversationState(str, Enum):
    """All possible states of a booking conversation."""
    IDLE = "idle"
    COLLECTING_FIELDS = "collecting_fields"
    AWAITING_CREATE_CONFIRM = "awaiting_create_confirm"
    AWAITING_CANCEL_CONFIRM = "awaiting_cancel_confirm"
    AWAITING_MODIFY_CONFIRM = "awaiting_modify_confirm"


class TransitionTrigger(str, Enum):
    """Events that cause state transitions."""
    FIELDS_PARTIAL = "fields_partial"
    PROPOSAL_MADE = "proposal_made"
    PROPOSAL_REJECTED = "proposal_rejected"
    CANCEL_PROPOSED = "cancel_proposed"
    MODIFY_PROPOSED = "modify_proposed"
    CONFIRMED = "confirmed"
    DENIED = "denied"
    STALE = "stale"
    PERSIST_FAILED = "persist_failed"
    INFO_SERVED = "info_served"


_ALL_STATES = tuple(ConversationState)
_PENDING_STATES = (
    ConversationState.AWAITING_CREATE_CONFIRM,
    ConversationState.AWAITING_CANCEL_CONFIRM,
    ConversationState.AWAITING_MODIFY_CONFIRM,
)


@dataclass(frozen=True)
class Transition:
    """A single valid state transition."""
    from_state: ConversationState
    to_state: ConversationState
    trigger: TransitionTrigger


@dataclass
class StateEntry:
    """Recorded history entry for a state visit."""
    state: ConversationState
    entered_at: datetime
    trigger: Optional[TransitionTrigger] = None


class InvalidTransitionError(Exception):
    """Raised when a transition is not valid from the current state."""


def _build_transitions() -> list[Transition]:
    table: list[Transition] = []
    for state in _ALL_STATES:
        # informational replies never touch the negotiation
        table.append(Transition(state, state, TransitionTrigger.INFO_SERVED))
        # a new request may replace whatever was open before
        table.append(Transition(state, ConversationState.COLLECTING_FIELDS,
                                TransitionTrigger.FIELDS_PARTIAL))
        table.append(Transition(state, ConversationState.AWAITING_CREATE_CONFIRM,
                                TransitionTrigger.PROPOSAL_MADE))
        table.append(Transition(state, ConversationState.AWAITING_CANCEL_CONFIRM,
                                TransitionTrigger.CANCEL_PROPOSED))
        table.append(Transition(state, ConversationState.AWAITING_MODIFY_CONFIRM,
                                TransitionTrigger.MODIFY_PROPOSED))
        # the request was refused; the draft stays open for another time
        table.append(Transition(state, ConversationState.COLLECTING_FIELDS,
                                TransitionTrigger.PROPOSAL_REJECTED))

    for state in _PENDING_STATES:
        table.append(Transition(state, ConversationState.IDLE, TransitionTrigger.CONFIRMED))
        table.append(Transition(state, ConversationState.IDLE, TransitionTrigger.DENIED))
        table.append(Transition(state, ConversationState.IDLE, TransitionTrigger.STALE))

    table.append(Transition(ConversationState.AWAITING_CREATE_CONFIRM, ConversationState.IDLE,
                            TransitionTrigger.PERSIST_FAILED))
    table.append(Transition(ConversationState.AWAITING_MODIFY_CONFIRM, ConversationState.IDLE,
                            TransitionTrigger.PERSIST_FAILED))
    table.append(Transition(ConversationState.AWAITING_CANCEL_CONFIRM, ConversationState.IDLE,
                            TransitionTrigger.PERSIST_FAILED))
    return table


class ConversationStateMachine:
    """
    Tracks the moves of one conversation turn.

    Built from the state derived from the session; every transition must be
    listed in TRANSITIONS.
    """

    TRANSITIONS: list[Transition] = _build_transitions()

    def __init__(self, initial: ConversationState = ConversationState.IDLE) -> None:
        self._current_state = initial
        self._history: list[StateEntry] = [
            StateEntry(state=initial, entered_at=datetime.now(timezone.utc))
        ]

    @property
    def current_state(self) -> ConversationState:
        return self._current_state

    def transition(self, trigger: TransitionTrigger) -> ConversationState:
        """
        Execute a state transition.

        Raises:
            InvalidTransitionError: If no valid transition exists.
        """
        for t in self.TRANSITIONS:
            if t.from_state == self._current_state and t.trigger == trigger:
                old_state = self._current_state
                self._current_state = t.to_state
                self._history.append(StateEntry(
                    state=self._current_state,
                    entered_at=datetime.now(timezone.utc),
                    trigger=trigger,
                ))
                logger.debug(
                    "State transition: %s -> %s (trigger: %s)",
                    old_state.value, self._current_state.value, trigger.value,
                )
                return self._current_state

        valid = [t.value for t in self.get_valid_triggers()]
        raise InvalidTransitionError(
            f"No valid transition from '{self._current_state.value}' "
            f"with trigger '{trigger.value}'. Valid triggers: {valid}"
        )

    def get_valid_triggers(self) -> list[TransitionTrigger]:
        """Return all triggers valid from the current state."""
        return [t.trigger for t in self.TRANSITIONS if t.from_state == self._current_state]

    def get_history(self) -> list[StateEntry]:
        return list(self._history)

    def get_state_trace(self) -> list[str]:
        """Return ordered list of state names visited."""
        return [entry.state.value for entry in self._history]

    def is_pending(self) -> bool:
        return self._current_state in _PENDING_STATES
