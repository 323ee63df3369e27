"""
Affirmative / negative detection for free-text replies to a proposal.

Customers answer "confermo", "ok 👍", "no grazie" or "annulla" rather than
pressing a button, so the check runs on a normalized copy of the text plus
a short emoji whitelist that is matched on the raw message.
"""

import re

from tablebot.utils import strip_accents

AFFIRMATIVE_EMOJI = ("\U0001F44D", "\U0001F44C", "✌", "\U0001F642")  # 👍 👌 ✌ 🙂
NEGATIVE_EMOJI = ("\U0001F44E", "\U0001F645", "\U0001F6AB")  # 👎 🙅 🚫

AFFIRMATIVE_TOKENS = (
    "confermo", "conferma", "ok", "okay", "va bene",
    "si", "perfetto", "procedi", "vai", "va",
)

NEGATIVE_TOKENS = (
    "annulla", "cancella", "no", "non va bene",
    "stop", "annullare", "annullato",
)

_NON_WORD = re.compile(r"[^\w\s]", re.UNICODE)
_SPACES = re.compile(r"\s+")


def normalize_for_intent(text: str) -> str:
    """Strip accents, punctuation and emoji, case-fold and collapse whitespace."""
    text = strip_accents(text)
    text = _NON_WORD.sub(" ", text)
    text = text.replace("_", " ")
    return _SPACES.sub(" ", text).strip().lower()


def _contains_word_sequence(normalized: str, token: str) -> bool:
    return (
        normalized == token
        or normalized.startswith(token + " ")
        or normalized.endswith(" " + token)
        or f" {token} " in normalized
    )


def _is_refusal(normalized: str) -> bool:
    """A leading "no", or "non" right before a confirming word ("non va bene", "non confermo")."""
    if normalized == "no" or normalized.startswith("no "):
        return True
    return any(_contains_word_sequence(normalized, f"non {token}") for token in AFFIRMATIVE_TOKENS)


def is_affirmative(text: str) -> bool:
    if any(emoji in text for emoji in AFFIRMATIVE_EMOJI):
        return True
    normalized = normalize_for_intent(text)
    if _is_refusal(normalized):
        return False
    return any(_contains_word_sequence(normalized, token) for token in AFFIRMATIVE_TOKENS)


def is_negative(text: str) -> bool:
    if any(emoji in text for emoji in NEGATIVE_EMOJI):
        return True
    normalized = normalize_for_intent(text)
    return any(_contains_word_sequence(normalized, token) for token in NEGATIVE_TOKENS)
