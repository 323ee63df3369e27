"""Free-form reply generation through an OpenAI-compatible JSON-mode completion."""

import json
import logging
from typing import Optional

import httpx

from tablebot.config import settings
from tablebot.prompts.system_prompts import build_reply_system_prompt
from tablebot.services.base import ReplyRequest
from tablebot.services.http import BACKOFF_BASE_SEC, post_json_with_retry

logger = logging.getLogger(__name__)

DEFAULT_REPLY = "Posso aiutarti con una prenotazione?"


class OpenAIReplyGenerator:
    """ReplyGenerator returning the model's ``response_text``."""

    def __init__(
        self,
        api_key: str = settings.model.api_key,
        model: str = settings.model.llm_model,
        base_url: str = settings.model.base_url,
        temperature: float = settings.model.reply_temperature,
        max_attempts: int = settings.model.max_attempts,
        timeout_sec: float = settings.model.timeout_sec,
        backoff_base: float = BACKOFF_BASE_SEC,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.temperature = temperature
        self.max_attempts = max_attempts
        self.timeout_sec = timeout_sec
        self.backoff_base = backoff_base
        self._client = client

    async def _request(self, client: httpx.AsyncClient, payload: dict) -> httpx.Response:
        return await post_json_with_retry(
            client,
            f"{self.base_url}/chat/completions",
            payload,
            headers={"Authorization": f"Bearer {self.api_key}"},
            max_attempts=self.max_attempts,
            backoff_base=self.backoff_base,
            label="reply",
        )

    async def generate(self, request: ReplyRequest) -> str:
        """Return the generated text; HTTP or format errors propagate to the gateway."""
        system = build_reply_system_prompt(
            intent=request.intent,
            fields=request.fields,
            history=request.history,
            reservations=request.reservations,
            customer=request.customer,
        )
        user_payload = {
            "intent": request.intent,
            "fields": request.fields,
            "history": request.history,
            "list_bookings": request.reservations,
        }
        payload = {
            "model": self.model,
            "temperature": self.temperature,
            "response_format": {"type": "json_object"},
            "messages": [
                {"role": "system", "content": system},
                {"role": "user", "content": json.dumps(user_payload, ensure_ascii=False)},
            ],
        }
        if self._client is not None:
            response = await self._request(self._client, payload)
        else:
            async with httpx.AsyncClient(timeout=self.timeout_sec) as client:
                response = await self._request(client, payload)
        response.raise_for_status()

        content = response.json()["choices"][0]["message"].get("content") or "{}"
        text = json.loads(content).get("response_text")
        if not text:
            logger.debug("Reply generator returned no response_text")
            return DEFAULT_REPLY
        return str(text).strip()
