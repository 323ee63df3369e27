"""
Date and slot arithmetic on ``YYYY-MM-DD`` dates and ``HH:MM`` times.

Pure functions only: no configuration is read here except the default
timezone used to resolve "today" for relative date tokens.
"""

import re
from datetime import date, datetime, timedelta
from typing import NamedTuple, Optional
from zoneinfo import ZoneInfo

from tablebot.utils import strip_accents

MINUTES_PER_DAY = 24 * 60
WEEKDAY_KEYS = ("mon", "tue", "wed", "thu", "fri", "sat", "sun")

_ISO_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_HHMM = re.compile(r"^(\d{1,2}):(\d{2})$")

# Italian weekday prefixes, Monday first to match date.weekday()
_WEEKDAY_PREFIXES = {"lun": 0, "mar": 1, "mer": 2, "gio": 3, "ven": 4, "sab": 5, "dom": 6}
_RELATIVE_DAYS = {"oggi": 0, "stasera": 0, "stanotte": 0, "domani": 1, "dopodomani": 2}
_WEEKDAY_TOKEN = re.compile(r"^(lun|mar|mer|gio|ven|sab|dom)\w*(\s+prossim\w*)?$")


class SlotAlignment(NamedTuple):
    """Result of snapping a time onto the booking grid."""

    ok: bool
    time: str


def to_minutes(hhmm: str) -> int:
    """Convert ``HH:MM`` to minutes after midnight.

    Hours past 23 are accepted so opening ranges can run past midnight
    (``"19:00-24:30"``).
    """
    match = _HHMM.match(hhmm.strip())
    if not match:
        raise ValueError(f"Invalid time {hhmm!r}, expected HH:MM")
    hours, minutes = int(match.group(1)), int(match.group(2))
    if minutes > 59:
        raise ValueError(f"Invalid minutes in {hhmm!r}")
    return hours * 60 + minutes


def minutes_to_hhmm(total: int) -> str:
    return f"{total // 60:02d}:{total % 60:02d}"


def is_valid_time(value: str) -> bool:
    try:
        return to_minutes(value) < MINUTES_PER_DAY
    except ValueError:
        return False


def is_iso_date(value: str) -> bool:
    if not _ISO_DATE.match(value.strip()):
        return False
    try:
        date.fromisoformat(value.strip())
    except ValueError:
        return False
    return True


def align_to_slot(hhmm: str, slot_minutes: int) -> SlotAlignment:
    """Floor a time onto the slot grid.

    ``ok`` is True only when the input was already aligned, in which case
    the returned time equals the input (zero-padded).
    """
    total = to_minutes(hhmm)
    aligned = (total // slot_minutes) * slot_minutes
    return SlotAlignment(ok=total == aligned, time=minutes_to_hhmm(aligned))


def to_datetime(date_iso: str, hhmm: str) -> datetime:
    """Combine a date and a time into a naive tenant-local datetime."""
    day = date.fromisoformat(date_iso)
    return datetime(day.year, day.month, day.day) + timedelta(minutes=to_minutes(hhmm))


def local_now(tz: str) -> datetime:
    """Current wall-clock time in ``tz`` as a naive datetime."""
    return datetime.now(ZoneInfo(tz)).replace(tzinfo=None)


def weekday_key(date_iso: str) -> str:
    """Map a date to the opening-hours key (``"mon"`` ... ``"sun"``)."""
    return WEEKDAY_KEYS[date.fromisoformat(date_iso).weekday()]


def parse_relative_date_token(
    token: str, now: Optional[datetime] = None, tz: str = "Europe/Rome"
) -> Optional[str]:
    """Resolve an Italian relative date expression to ``YYYY-MM-DD``.

    Supports ``oggi``/``stasera``, ``domani``, ``dopodomani`` and weekday
    names (``venerdì``, ``sab``, ``lunedì prossimo``). A weekday equal to
    today, or followed by ``prossimo``, resolves to the following week.
    ISO dates are returned unchanged; anything else yields None.
    """
    text = strip_accents(token).strip().lower()
    if is_iso_date(text):
        return text

    base = (now or local_now(tz)).date()

    if text in _RELATIVE_DAYS:
        return (base + timedelta(days=_RELATIVE_DAYS[text])).isoformat()

    match = _WEEKDAY_TOKEN.match(text)
    if match:
        target = _WEEKDAY_PREFIXES[match.group(1)]
        diff = (target - base.weekday()) % 7
        if diff == 0 or match.group(2):
            diff += 7
        return (base + timedelta(days=diff)).isoformat()

    return None


def format_human(date_iso: str, hhmm: str) -> str:
    """Render a slot the way the restaurant writes it: ``21/01/2030 alle 20:30``."""
    day = date.fromisoformat(date_iso)
    return f"{day.strftime('%d/%m/%Y')} alle {hhmm}"
