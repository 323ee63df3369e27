"""
Availability engine: decides whether a table can be booked at a given slot.

Works on the tenant's opening-hour rules plus, optionally, the set of
reservations already holding covers (the overlap-aware view). The engine
never touches storage itself; callers pass the occupancy they fetched.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional, Sequence, TypedDict

from tablebot.scheduling.rules import get_rules
from tablebot.scheduling.timeslots import (
    MINUTES_PER_DAY,
    minutes_to_hhmm,
    to_datetime,
    to_minutes,
    weekday_key,
)

logger = logging.getLogger(__name__)

MAX_ALTERNATIVES = 3
DEFAULT_FREE_SLOT_LIMIT = 5


class AvailabilityReason(str, Enum):
    """Outcome codes, in the order the checks run."""

    AVAILABLE = "available"
    RULES_NOT_FOUND = "rules_not_found"
    CLOSED = "closed"
    INVALID_SLOT = "invalid_slot"
    OUTSIDE_OPENING = "outside_opening"
    CAPACITY_EXCEEDED = "capacity_exceeded"


class AvailabilityResult(TypedDict):
    """Result from check_availability."""

    ok: bool
    reason: AvailabilityReason


@dataclass(frozen=True)
class Occupancy:
    """Covers held by one pending or confirmed reservation."""

    start_at: datetime
    end_at: datetime
    party_size: int

    def overlaps(self, start_at: datetime, end_at: datetime) -> bool:
        return self.start_at < end_at and self.end_at > start_at


def _result(reason: AvailabilityReason) -> AvailabilityResult:
    return {"ok": reason == AvailabilityReason.AVAILABLE, "reason": reason}


def covers_in_use(
    existing: Sequence[Occupancy], start_at: datetime, end_at: datetime
) -> int:
    """Sum the party sizes of reservations intersecting ``[start_at, end_at)``."""
    return sum(o.party_size for o in existing if o.overlaps(start_at, end_at))


def check_availability(
    tenant_slug: str,
    date: str,
    time: str,
    party_size: int,
    existing: Optional[Sequence[Occupancy]] = None,
) -> AvailabilityResult:
    """
    Check whether ``party_size`` covers can start at ``date`` ``time``.

    Checks run in a fixed order and the first failure wins: unknown tenant,
    closed weekday, slot not on the grid, table duration not contained in a
    single opening range, party larger than the room, and finally (only
    when ``existing`` is given) the covers already booked in the interval.
    """
    rules = get_rules(tenant_slug)
    if rules is None:
        logger.warning("No booking rules for tenant '%s'", tenant_slug)
        return _result(AvailabilityReason.RULES_NOT_FOUND)

    ranges = rules.ranges_for(weekday_key(date))
    if not ranges:
        return _result(AvailabilityReason.CLOSED)

    start = to_minutes(time)
    if start % rules.slot_minutes != 0:
        return _result(AvailabilityReason.INVALID_SLOT)

    end = start + rules.table_duration
    if not any(range_start <= start and end <= range_end for range_start, range_end in ranges):
        return _result(AvailabilityReason.OUTSIDE_OPENING)

    if party_size > rules.capacity:
        return _result(AvailabilityReason.CAPACITY_EXCEEDED)

    if existing is not None:
        start_at = to_datetime(date, time)
        end_at = start_at + timedelta(minutes=rules.table_duration)
        in_use = covers_in_use(existing, start_at, end_at)
        if in_use + party_size > rules.capacity:
            logger.debug(
                "Capacity exceeded on %s %s: %d booked + %d requested > %d",
                date, time, in_use, party_size, rules.capacity,
            )
            return _result(AvailabilityReason.CAPACITY_EXCEEDED)

    return _result(AvailabilityReason.AVAILABLE)


def suggest_alternatives(
    tenant_slug: str,
    date: str,
    time: str,
    party_size: int,
    existing: Optional[Sequence[Occupancy]] = None,
) -> list[str]:
    """
    Try the neighbouring slots of a rejected request.

    Candidates are tried in the order +1, -1, +2, -2 grid steps and the
    search stops after three accepted times.
    """
    rules = get_rules(tenant_slug)
    if rules is None:
        return []

    step = rules.slot_minutes
    base = to_minutes(time)
    accepted: list[str] = []
    for offset in (step, -step, 2 * step, -2 * step):
        candidate = base + offset
        if candidate < 0 or candidate >= MINUTES_PER_DAY:
            continue
        hhmm = minutes_to_hhmm(candidate)
        if check_availability(tenant_slug, date, hhmm, party_size, existing)["ok"]:
            accepted.append(hhmm)
            if len(accepted) >= MAX_ALTERNATIVES:
                break
    return accepted


def list_free_slots(
    tenant_slug: str,
    date: str,
    party_size: int,
    limit: int = DEFAULT_FREE_SLOT_LIMIT,
    existing: Optional[Sequence[Occupancy]] = None,
) -> list[str]:
    """Walk every opening range of the day and return up to ``limit`` bookable times."""
    rules = get_rules(tenant_slug)
    if rules is None:
        return []

    free: list[str] = []
    for range_start, range_end in rules.ranges_for(weekday_key(date)):
        candidate = range_start
        while candidate + rules.table_duration <= range_end:
            if candidate < MINUTES_PER_DAY:
                hhmm = minutes_to_hhmm(candidate)
                if check_availability(tenant_slug, date, hhmm, party_size, existing)["ok"]:
                    free.append(hhmm)
                    if len(free) >= limit:
                        return sorted(free, key=to_minutes)
            candidate += rules.slot_minutes
    return sorted(free, key=to_minutes)
