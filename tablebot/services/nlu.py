"""
Intent parser backed by an OpenAI-compatible chat-completions endpoint.

The model is forced through a single function schema; its arguments are
validated with ParsedIntent and then sanity-checked field by field, moving
malformed values into ``missing_fields``. When every attempt fails the
parser returns a smalltalk intent carrying a generic reply instead of
raising, so callers always get something usable.
"""

import json
import logging
import re
from typing import Any, Optional

import httpx
from pydantic import ValidationError

from tablebot.config import settings
from tablebot.prompts.system_prompts import INTENT_TOOL_SCHEMA, build_intent_system_prompt
from tablebot.schemas.booking_schema import BookingFields, NextAction, ParsedIntent
from tablebot.services.base import ParseContext
from tablebot.services.http import BACKOFF_BASE_SEC, post_json_with_retry

logger = logging.getLogger(__name__)

_HHMM = re.compile(r"^\d{2}:\d{2}$")
_RELATIVE_OR_ISO_DATE = re.compile(
    r"^(\d{4}-\d{2}-\d{2}|oggi|stasera|domani|dopodomani|"
    r"(lun|mar|mer|gio|ven|sab|dom)\w*(\s+prossim\w*)?)$",
    re.IGNORECASE,
)

FALLBACK_REPLY = "Posso aiutarti con le prenotazioni o con le info del locale 😄"


class IntentParseError(Exception):
    """Raised when the model output cannot be turned into a ParsedIntent."""


def sanitize_intent(parsed: ParsedIntent) -> ParsedIntent:
    """Drop implausible field values, listing them as missing instead."""
    fields = parsed.fields.model_copy()
    missing = list(parsed.missing_fields)

    if fields.date and not _RELATIVE_OR_ISO_DATE.match(fields.date.strip()):
        fields.date = None
        missing.append("date")
    if fields.time and not _HHMM.match(fields.time.strip()):
        fields.time = None
        missing.append("time")
    if fields.people is not None and fields.people < 1:
        fields.people = None
        missing.append("people")
    if fields.name:
        fields.name = fields.name.strip() or None

    deduped = list(dict.fromkeys(missing))
    return parsed.model_copy(update={"fields": fields, "missing_fields": deduped})


def fallback_intent() -> ParsedIntent:
    return ParsedIntent(
        intent="unknown",
        confidence=0.0,
        fields=BookingFields(),
        next_action=NextAction.SMALLTALK,
        reply=FALLBACK_REPLY,
    )


class OpenAIIntentParser:
    """IntentParser implementation using function calling."""

    def __init__(
        self,
        api_key: str = settings.model.api_key,
        model: str = settings.model.llm_model,
        base_url: str = settings.model.base_url,
        temperature: float = settings.model.llm_temperature,
        max_tokens: int = settings.model.llm_max_tokens,
        max_attempts: int = settings.model.max_attempts,
        timeout_sec: float = settings.model.timeout_sec,
        backoff_base: float = BACKOFF_BASE_SEC,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.max_attempts = max_attempts
        self.timeout_sec = timeout_sec
        self.backoff_base = backoff_base
        self._client = client

    def _payload(self, text: str, context: ParseContext) -> dict[str, Any]:
        system = build_intent_system_prompt(
            timezone=context.timezone,
            locale=context.locale,
            tenant_name=context.tenant_name,
            history=context.history,
            reservations=context.reservations,
        )
        return {
            "model": self.model,
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
            "messages": [
                {"role": "system", "content": system},
                {"role": "user", "content": text},
            ],
            "tools": [{"type": "function", "function": INTENT_TOOL_SCHEMA}],
            "tool_choice": {"type": "function", "function": {"name": INTENT_TOOL_SCHEMA["name"]}},
        }

    @staticmethod
    def _extract(data: dict[str, Any]) -> ParsedIntent:
        try:
            message = data["choices"][0]["message"]
            arguments = message["tool_calls"][0]["function"]["arguments"]
        except (KeyError, IndexError, TypeError):
            raise IntentParseError("no function call in response") from None
        try:
            return ParsedIntent.model_validate(json.loads(arguments))
        except json.JSONDecodeError:
            raise IntentParseError("invalid json in function arguments") from None
        except ValidationError as exc:
            raise IntentParseError(f"validation failed: {exc.error_count()} errors") from None

    async def _request(self, client: httpx.AsyncClient, payload: dict) -> httpx.Response:
        return await post_json_with_retry(
            client,
            f"{self.base_url}/chat/completions",
            payload,
            headers={"Authorization": f"Bearer {self.api_key}"},
            max_attempts=self.max_attempts,
            backoff_base=self.backoff_base,
            label="nlu",
        )

    async def parse(self, text: str, context: ParseContext) -> ParsedIntent:
        payload = self._payload(text, context)
        try:
            if self._client is not None:
                response = await self._request(self._client, payload)
            else:
                async with httpx.AsyncClient(timeout=self.timeout_sec) as client:
                    response = await self._request(client, payload)
            response.raise_for_status()
            parsed = self._extract(response.json())
        except (httpx.HTTPError, IntentParseError, ValueError) as exc:
            logger.warning("Intent parsing failed, using fallback: %s", exc)
            return fallback_intent()
        return sanitize_intent(parsed)
