from tablebot.conversation.confirmation import is_affirmative, is_negative
from tablebot.conversation.state_machine import (
    ConversationState,
    ConversationStateMachine,
    TransitionTrigger,
)

__all__ = [
    "ConversationStateMachine",
    "ConversationState",
    "TransitionTrigger",
    "is_affirmative",
    "is_negative",
]
