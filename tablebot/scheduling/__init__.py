from tablebot.scheduling.availability import (
    AvailabilityReason,
    Occupancy,
    check_availability,
    list_free_slots,
    suggest_alternatives,
)
from tablebot.scheduling.rules import TenantRules, get_rules, register_rules

__all__ = [
    "AvailabilityReason",
    "Occupancy",
    "check_availability",
    "list_free_slots",
    "suggest_alternatives",
    "TenantRules",
    "get_rules",
    "register_rules",
]
