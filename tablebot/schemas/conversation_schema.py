"""Conversation history schemas shared with the NLU and reply collaborators."""

from enum import Enum

from pydantic import BaseModel


class Speaker(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


class HistoryItem(BaseModel):
    """A single turn of the dialogue, newest last."""

    role: Speaker
    text: str
    timestamp: float

    def for_prompt(self) -> dict[str, str]:
        return {"role": self.role.value, "text": self.text}
