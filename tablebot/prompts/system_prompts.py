"""
Centralized system prompts for the LLM collaborators.

The intent parser and the reply generator each receive a scoped prompt.
Restaurant-specific values are injected from configuration, not hardcoded.
"""

import json
from typing import Optional

from tablebot.config import settings

_rest = settings.restaurant

RESTAURANT_CONTEXT = f"""
Ristorante: {_rest.name}. Indirizzo: {_rest.address}.
Orari: {_rest.opening}. Menu: {_rest.menu_url}. Parcheggio: {_rest.parking}.
"""

INTENT_TOOL_SCHEMA = {
    "name": "extract_booking_or_smalltalk",
    "description": (
        "Estrai intent e campi prenotazione o identifica small talk/FAQ. "
        "Rispondi in italiano amichevole."
    ),
    "parameters": {
        "type": "object",
        "properties": {
            "intent": {
                "type": "string",
                "enum": [
                    "booking.create", "booking.modify", "booking.cancel", "booking.list",
                    "info.hours", "info.menu", "info.address", "info.parking",
                    "greeting", "smalltalk", "unknown",
                ],
            },
            "confidence": {"type": "number"},
            "fields": {
                "type": "object",
                "properties": {
                    "date": {"type": "string", "description": "YYYY-MM-DD o oggi/domani"},
                    "time": {"type": "string", "description": "HH:MM"},
                    "people": {"type": "number"},
                    "name": {"type": "string"},
                    "notes": {"type": "string"},
                    "reservation_id": {"type": "string"},
                },
            },
            "missing_fields": {"type": "array", "items": {"type": "string"}},
            "reply": {"type": "string"},
            "next_action": {
                "type": "string",
                "enum": [
                    "ask_clarification", "check_availability", "send_info",
                    "list_show", "smalltalk", "handoff", "unknown",
                ],
            },
        },
        "required": ["intent", "confidence", "fields", "next_action"],
    },
}


def build_intent_system_prompt(
    timezone: str,
    locale: str,
    tenant_name: Optional[str] = None,
    history: Optional[list[dict]] = None,
    reservations: Optional[list[dict]] = None,
) -> str:
    """System prompt for structured intent extraction."""
    name = f" di {tenant_name}" if tenant_name else ""
    return (
        f"Sei l'assistente prenotazioni{name}. Interpreta date/ore in timezone "
        f"{timezone} e lingua {locale}. Parla in modo amichevole e conciso. "
        "Se l'utente non prenota rispondi brevemente e chiedi se vuole prenotare. "
        "Per modificare una prenotazione esistente usa intent booking.modify e "
        "indica reservation_id preso dall'elenco prenotazioni. "
        f"Storico: {json.dumps(history or [], ensure_ascii=False)}. "
        f"Prenotazioni attive: {json.dumps(reservations or [], ensure_ascii=False)}."
    )


def build_reply_system_prompt(
    intent: str,
    fields: dict,
    history: list[dict],
    reservations: list[dict],
    customer: str,
) -> str:
    """System prompt for free-form reply generation."""
    return (
        f"Tu sei Tom, assistente del ristorante {_rest.name}. Stai parlando con {customer}. "
        f"{RESTAURANT_CONTEXT.strip()} "
        f"Storico: {json.dumps(history[-20:], ensure_ascii=False)}. "
        f"Prenotazioni: {json.dumps(reservations, ensure_ascii=False)}. "
        f"Basato su intent {intent} e campi {json.dumps(fields, ensure_ascii=False)}, "
        "genera response_text naturale, breve, in italiano, amichevole. "
        "Per 'info.menu' usa il link al menu. Per 'booking.list' elenca le prenotazioni. "
        "Riporta le richieste sconosciute verso le prenotazioni. "
        'Rispondi in JSON: {"response_text": "..."}.'
    )
