"""
Tenant booking rules and the registry that resolves them by slug.

Rules are immutable and loaded once; the conversation engine only reads
them. In production they would come from the tenant's account settings.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional

from tablebot.scheduling.timeslots import WEEKDAY_KEYS, to_minutes

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TenantRules:
    """Booking grid, table turnover and capacity for one restaurant."""

    slot_minutes: int
    table_duration: int
    capacity: int
    opening_hours: dict[str, tuple[str, ...]] = field(default_factory=dict)

    def __post_init__(self) -> None:
        for name in ("slot_minutes", "table_duration", "capacity"):
            if getattr(self, name) < 1:
                raise ValueError(f"{name} must be >= 1, got {getattr(self, name)}")
        for day, ranges in self.opening_hours.items():
            if day not in WEEKDAY_KEYS:
                raise ValueError(f"Unknown weekday key {day!r}")
            for raw in ranges:
                start, end = parse_range(raw)
                if start >= end:
                    raise ValueError(f"Opening range {raw!r} on {day} is empty")

    def ranges_for(self, day: str) -> list[tuple[int, int]]:
        """Opening ranges of a weekday as (start, end) minute pairs, in authored order."""
        return [parse_range(raw) for raw in self.opening_hours.get(day, ())]


def parse_range(raw: str) -> tuple[int, int]:
    """Parse ``"HH:MM-HH:MM"`` into minutes after midnight."""
    try:
        start, end = raw.split("-")
    except ValueError:
        raise ValueError(f"Invalid opening range {raw!r}, expected HH:MM-HH:MM") from None
    return to_minutes(start), to_minutes(end)


DEMO_RULES = TenantRules(
    slot_minutes=15,
    table_duration=120,
    capacity=40,
    opening_hours={
        "mon": ("19:00-23:00",),
        "tue": ("19:00-23:00",),
        "wed": ("19:00-23:00",),
        "thu": ("19:00-23:00",),
        "fri": ("19:00-23:59",),
        "sat": ("12:00-15:00", "19:00-23:59"),
        "sun": ("12:00-15:00", "19:00-23:00"),
    },
)

_RULES_REGISTRY: dict[str, TenantRules] = {}


def register_rules(tenant_slug: str, rules: TenantRules) -> None:
    """Register (or replace) the rules of a tenant."""
    _RULES_REGISTRY[tenant_slug] = rules
    logger.debug("Rules registered for tenant: %s", tenant_slug)


def get_rules(tenant_slug: str) -> Optional[TenantRules]:
    """Return the tenant's rules, or None when the slug is unknown."""
    return _RULES_REGISTRY.get(tenant_slug)


register_rules("demo", DEMO_RULES)
