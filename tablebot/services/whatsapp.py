"""
WhatsApp Cloud API sender.

Sends plain text plus three interactive variants (confirm buttons, a list of
time options, a list of reservations). Transient failures (429, 5xx,
transport errors) are retried with exponential backoff; anything else is
logged and reported as ``False``. Missing credentials skip the send.
"""

import logging
from typing import Any, Optional

import httpx

from tablebot.config import settings
from tablebot.schemas.booking_schema import Tenant
from tablebot.services.http import BACKOFF_BASE_SEC, post_json_with_retry

logger = logging.getLogger(__name__)

MAX_LIST_ROWS = 10
MAX_ROW_TITLE = 24


class WhatsAppMessenger:
    """Messenger implementation over the Graph API ``/{phone_id}/messages`` endpoint."""

    def __init__(
        self,
        phone_number_id: str,
        token: str,
        graph_base: str = settings.messaging.graph_base,
        max_attempts: int = settings.messaging.max_attempts,
        timeout_sec: float = settings.messaging.timeout_sec,
        backoff_base: float = BACKOFF_BASE_SEC,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.phone_number_id = phone_number_id
        self.token = token
        self.graph_base = graph_base.rstrip("/")
        self.max_attempts = max_attempts
        self.timeout_sec = timeout_sec
        self.backoff_base = backoff_base
        self._client = client

    @classmethod
    def for_tenant(cls, tenant: Tenant, **kwargs: Any) -> "WhatsAppMessenger":
        """Use the tenant's own credentials, falling back to the configured defaults."""
        return cls(
            phone_number_id=tenant.whatsapp_phone_id or settings.messaging.phone_number_id,
            token=tenant.whatsapp_token or settings.messaging.token,
            **kwargs,
        )

    @property
    def url(self) -> str:
        return f"{self.graph_base}/{self.phone_number_id}/messages"

    async def _post(self, payload: dict[str, Any], kind: str) -> bool:
        if not self.phone_number_id or not self.token:
            logger.warning("Missing WhatsApp credentials, skipping %s message", kind)
            return False

        headers = {"Authorization": f"Bearer {self.token}"}
        if self._client is not None:
            response = await self._send(self._client, payload, headers, kind)
        else:
            async with httpx.AsyncClient(timeout=self.timeout_sec) as client:
                response = await self._send(client, payload, headers, kind)

        if not response.is_success:
            logger.warning("WhatsApp %s not ok: %d %s", kind, response.status_code, response.text)
            return False
        logger.info("WhatsApp %s sent to %s", kind, payload.get("to"))
        return True

    async def _send(
        self, client: httpx.AsyncClient, payload: dict, headers: dict, kind: str
    ) -> httpx.Response:
        return await post_json_with_retry(
            client,
            self.url,
            payload,
            headers=headers,
            max_attempts=self.max_attempts,
            backoff_base=self.backoff_base,
            label=f"whatsapp {kind}",
        )

    async def send_text(self, to: str, body: str) -> bool:
        payload = {
            "messaging_product": "whatsapp",
            "to": to,
            "type": "text",
            "text": {"body": body},
        }
        return await self._post(payload, "text")

    async def send_confirm_buttons(self, to: str, body: str) -> bool:
        payload = {
            "messaging_product": "whatsapp",
            "to": to,
            "type": "interactive",
            "interactive": {
                "type": "button",
                "body": {"text": body},
                "action": {
                    "buttons": [
                        {"type": "reply", "reply": {"id": "confirm", "title": "Confermo"}},
                        {"type": "reply", "reply": {"id": "cancel", "title": "Annulla"}},
                    ]
                },
            },
        }
        return await self._post(payload, "confirm buttons")

    async def send_time_options(self, to: str, title: str, options: list[str]) -> bool:
        rows = [{"id": f"slot_{o}", "title": o} for o in options[:MAX_LIST_ROWS]]
        return await self._post(
            _list_payload(to, title, button="Orari", section="Orari liberi", rows=rows),
            "time options",
        )

    async def send_booking_list(self, to: str, title: str, reservations: list[dict]) -> bool:
        rows = [
            {
                "id": f"booking_{r['id']}",
                "title": f"{r['date']} {r['time']}"[:MAX_ROW_TITLE],
                "description": f"{r['people']} persone ({r['name']})",
            }
            for r in reservations[:MAX_LIST_ROWS]
        ]
        return await self._post(
            _list_payload(to, title, button="Prenotazioni", section="Le tue prenotazioni", rows=rows),
            "booking list",
        )


def _list_payload(to: str, title: str, button: str, section: str, rows: list[dict]) -> dict:
    return {
        "messaging_product": "whatsapp",
        "to": to,
        "type": "interactive",
        "interactive": {
            "type": "list",
            "body": {"text": title},
            "action": {"button": button, "sections": [{"title": section, "rows": rows}]},
        },
    }
