"""Reservation, tenant and intent-parsing data models."""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class ReservationStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"


ACTIVE_STATUSES = (ReservationStatus.PENDING, ReservationStatus.CONFIRMED)


class Tenant(BaseModel):
    """One restaurant account, already resolved from the inbound routing key."""
    id: str
    slug: str
    name: str = ""
    whatsapp_phone_id: Optional[str] = None
    whatsapp_token: Optional[str] = None


class InboundMessage(BaseModel):
    """A text message received from a customer."""
    message_id: str
    sender: str
    body: str
    provider: str = "whatsapp"


class ReservationView(BaseModel):
    """Detached snapshot of a stored reservation."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    tenant_id: str
    customer_phone: str
    customer_name: str
    party_size: int
    start_at: datetime
    end_at: datetime
    status: ReservationStatus
    notes: Optional[str] = None
    source: str = "whatsapp"
    message_id: Optional[str] = None

    @property
    def date(self) -> str:
        return self.start_at.date().isoformat()

    @property
    def time(self) -> str:
        return self.start_at.strftime("%H:%M")

    def summary(self) -> dict:
        """Compact form shared with the NLU and reply collaborators."""
        return {
            "id": self.id,
            "date": self.date,
            "time": self.time,
            "people": self.party_size,
            "name": self.customer_name,
            "status": self.status.value,
        }


class NextAction(str, Enum):
    """What the intent parser suggests the engine should do next."""
    ASK_CLARIFICATION = "ask_clarification"
    CHECK_AVAILABILITY = "check_availability"
    SEND_INFO = "send_info"
    ANSWER_INFO = "answer_info"
    LIST_SHOW = "list_show"
    SMALLTALK = "smalltalk"
    HANDOFF = "handoff"
    NONE = "none"
    UNKNOWN = "unknown"


INFO_ACTIONS = (NextAction.SEND_INFO, NextAction.ANSWER_INFO, NextAction.SMALLTALK)


class BookingFields(BaseModel):
    """Booking details extracted from free text; every field is optional."""
    date: Optional[str] = None
    time: Optional[str] = None
    people: Optional[int] = None
    name: Optional[str] = None
    notes: Optional[str] = None
    reservation_id: Optional[str] = None

    def known(self) -> dict:
        return self.model_dump(exclude_none=True)


class ParsedIntent(BaseModel):
    """Structured output of the intent parser."""
    intent: str = "unknown"
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    fields: BookingFields = Field(default_factory=BookingFields)
    missing_fields: list[str] = Field(default_factory=list)
    next_action: NextAction = NextAction.UNKNOWN
    reply: Optional[str] = None

    @property
    def is_modify(self) -> bool:
        return self.intent == "booking.modify"
