"""
Booking field collection: ordering, validation and draft merging.

A reservation needs four fields (people, date, time, name). They arrive
spread over several messages, so partial values are merged into a draft and
the customer is asked for the first field still missing, always in the same
order.

Usage:
    draft = merge_fields({"people": 4}, {"date": "2030-01-01", "time": None})
    first_missing(draft)  # -> SlotDefinition(name="time", ...)
"""

import logging
import re
from dataclasses import dataclass
from typing import Any, Callable, Literal, Mapping, NamedTuple, Optional, Union

from tablebot.scheduling.timeslots import is_valid_time

logger = logging.getLogger(__name__)

MIN_NAME_LENGTH = 2
MAX_HOUR = 23


def _validate_people(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value >= 1


def _validate_date(value: Any) -> bool:
    return isinstance(value, str) and bool(value.strip())


def _validate_time(value: Any) -> bool:
    return isinstance(value, str) and is_valid_time(value)


def _validate_name(value: Any) -> bool:
    return isinstance(value, str) and len(value.strip()) >= MIN_NAME_LENGTH


@dataclass(frozen=True)
class SlotDefinition:
    """Schema for a single booking field to collect."""

    name: str
    prompt_key: str
    validator: Callable[[Any], bool]


# Fixed collection order
SLOT_DEFINITIONS: tuple[SlotDefinition, ...] = (
    SlotDefinition(name="people", prompt_key="ask_people", validator=_validate_people),
    SlotDefinition(name="date", prompt_key="ask_date", validator=_validate_date),
    SlotDefinition(name="time", prompt_key="ask_time", validator=_validate_time),
    SlotDefinition(name="name", prompt_key="ask_name", validator=_validate_name),
)

REQUIRED_FIELDS = tuple(defn.name for defn in SLOT_DEFINITIONS)


def merge_fields(*layers: Mapping[str, Any]) -> dict[str, Any]:
    """Merge field mappings left to right; later non-None values win."""
    merged: dict[str, Any] = {}
    for layer in layers:
        for key, value in layer.items():
            if value is None:
                continue
            if isinstance(value, str):
                value = value.strip()
                if not value:
                    continue
            merged[key] = value
    return merged


def missing_fields(fields: Mapping[str, Any]) -> list[SlotDefinition]:
    """Required fields absent or invalid, in collection order."""
    return [defn for defn in SLOT_DEFINITIONS if not defn.validator(fields.get(defn.name))]


def first_missing(fields: Mapping[str, Any]) -> Optional[SlotDefinition]:
    missing = missing_fields(fields)
    return missing[0] if missing else None


# ---------------------------------------------------------------------- #
# Short numeric replies
# ---------------------------------------------------------------------- #

_SHORT_PATTERNS = (
    re.compile(r"^(\d+)\s*(?:persone|persona|pax)?$"),
    re.compile(r"^per\s*(\d+)(?:\s*persone)?$"),
    re.compile(r"^(?:alle?|ore)\s*(\d{1,2}(?::\d{2})?)$"),
    re.compile(r"^(\d{1,2}:\d{2})$"),
)


class ShortTokenGuess(NamedTuple):
    kind: Literal["time", "people", "ambiguous"]
    value: Optional[Union[str, int]] = None


def is_short_whitelisted(text: str) -> bool:
    """True for bare answers like ``4``, ``4 persone``, ``per 3``, ``alle 20``, ``20:30``."""
    token = text.strip().lower()
    return any(p.match(token) for p in _SHORT_PATTERNS)


def _as_time(hours: int, minutes: int = 0) -> Optional[str]:
    if hours > MAX_HOUR or minutes > 59:
        return None
    return f"{hours:02d}:{minutes:02d}"


def guess_short_token_kind(
    text: str, draft: Mapping[str, Any], capacity: int
) -> ShortTokenGuess:
    """
    Decide whether a short numeric reply is a time or a party size.

    Explicit forms ("alle 20", "20:30", "per 4", "4 persone") are
    unambiguous. A bare number is read against what the draft still lacks:
    a value above the room capacity can only be an hour, a value that fits
    both a party size and an hour is ambiguous while both are missing.
    """
    token = text.strip().lower()

    match = re.match(r"^(?:alle?|ore)\s*(\d{1,2})(?::(\d{2}))?$", token) or re.match(
        r"^(\d{1,2}):(\d{2})$", token
    )
    if match:
        value = _as_time(int(match.group(1)), int(match.group(2) or 0))
        return ShortTokenGuess("time", value) if value else ShortTokenGuess("ambiguous")

    match = re.match(r"^(?:per\s*(\d+)(?:\s*persone)?|(\d+)\s*(?:persone|persona|pax))$", token)
    if match:
        people = int(match.group(1) or match.group(2))
        if 1 <= people <= capacity:
            return ShortTokenGuess("people", people)
        return ShortTokenGuess("ambiguous")

    if not re.match(r"^\d{1,2}$", token):
        return ShortTokenGuess("ambiguous")

    number = int(token)
    time_missing = not draft.get("time")
    people_missing = draft.get("people") is None

    if number > capacity:
        value = _as_time(number)
        return ShortTokenGuess("time", value) if value else ShortTokenGuess("ambiguous")
    if time_missing and people_missing:
        return ShortTokenGuess("ambiguous")
    if time_missing and number <= MAX_HOUR:
        return ShortTokenGuess("time", _as_time(number))
    if people_missing and number >= 1:
        return ShortTokenGuess("people", number)
    return ShortTokenGuess("ambiguous")
