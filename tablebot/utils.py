"""Shared utilities used across the booking assistant."""

import re
import unicodedata


def normalize_phone(value: str) -> str:
    """Normalize a phone number to digits, keeping a leading + when present.

    WhatsApp delivers sender ids as bare E.164 digits; numbers typed by a
    customer or an operator may carry spaces and punctuation.

    Examples:
        >>> normalize_phone("333 111 2222")
        '3331112222'
        >>> normalize_phone("+39 (333) 111-2222")
        '+393331112222'
    """
    value = value.strip()
    if value.startswith("+"):
        return "+" + re.sub(r"[^\d]", "", value[1:])
    return re.sub(r"[^\d]", "", value)


def strip_accents(value: str) -> str:
    """Remove combining diacritics: ``"sì"`` becomes ``"si"``."""
    decomposed = unicodedata.normalize("NFD", value)
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def conversation_key(tenant_id: str, phone: str) -> str:
    """Key identifying one customer of one tenant."""
    return f"{tenant_id}:{phone}"
