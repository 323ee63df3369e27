"""Canned reply texts and builders for the messages the engine composes itself.

Texts are in the restaurant's language. Placeholders use ``str.format``
syntax; a key with several variants gets one picked at random so repeated
questions do not read robotic.
"""

import random
from typing import Iterable, Optional

from tablebot.scheduling.timeslots import format_human

RESPONSES: dict[str, list[str]] = {
    "hello": [
        "Ciao! Sono Tom, come posso aiutarti?",
        "Ciao! Tutto bene? Dimmi pure se vuoi prenotare.",
    ],
    "ask_missing_generic": [
        "Mi servono ancora alcune informazioni.",
        "Per completare ho bisogno di qualche dettaglio in più.",
    ],
    "ask_people": ["Quante persone siete?", "Per quante persone?"],
    "ask_date": ["Che giorno ti interessa?", "Per quale data?"],
    "ask_time": ["A che ora vorresti venire?", "Quale orario preferisci?"],
    "ask_name": ["A nome di chi faccio la prenotazione?", "Come ti chiami?"],
    "invalid_date": ["Non ho capito il giorno. Puoi scriverlo come 'domani' o '2030-01-15'?"],
    "date_in_past": ["Quel giorno o quell'orario è già passato. Per quando vuoi prenotare?"],
    "propose_summary": ["Perfetto! Tavolo per {people} il {when} a nome {name}."],
    "confirm_hint": ['Scrivi "confermo" per fissare, oppure dimmi un altro orario.'],
    "booking_confirmed": ["Confermata! Ti aspettiamo il {when}."],
    "nothing_to_confirm": ["Non ho prenotazioni in attesa di conferma. Vuoi crearne una?"],
    "proposal_stale": ["La proposta non è più disponibile. Ripartiamo: dimmi un altro orario."],
    "overlap_existing": ["Hai già una prenotazione a quell'ora. Vuoi modificarla o annullarla?"],
    "pending_create_denied": ["Va bene, proposta annullata. Vuoi provare un altro orario?"],
    "pending_cancel_denied": ["Ok, non annullo nulla: la prenotazione resta valida."],
    "pending_modify_denied": ["Modifica annullata, la prenotazione resta com'era."],
    "nothing_to_cancel": ["Non hai prenotazioni da annullare."],
    "cancel_ask": ['Vuoi annullare la prenotazione del {when} per {people}? Scrivi "confermo".'],
    "choose_booking_to_cancel": ["Quale prenotazione vuoi annullare?"],
    "cancel_done": ["Prenotazione annullata. Se vuoi rifissare sono qui."],
    "modify_propose": ["Aggiorno la prenotazione a {when} per {people}. Confermi?"],
    "modify_unavailable": ["Il nuovo orario non è più disponibile. Riproviamo con un altro?"],
    "modify_done": ["Modifica confermata per il {when}."],
    "modify_missing": ["Per modificare mi servono data, ora e numero di persone."],
    "reservation_not_found": ["Non ho trovato questa prenotazione."],
    "list_empty": ["Non hai prenotazioni in programma."],
    "list_footer": ["Vuoi modificare o cancellare?"],
    "choose_booking": ["Scegli la prenotazione"],
    "slot_not_aligned": ["Prenotiamo ogni {slot} minuti. Va bene alle {suggestion}?"],
    "unavailable_closed": ["Quel giorno siamo chiusi. Vuoi un altro giorno?"],
    "unavailable_outside_opening": ["A quell'ora siamo chiusi. Vuoi un altro orario?"],
    "unavailable_capacity": ["Posti insufficienti. Meno persone o un altro orario?"],
    "unavailable_generic": ["Non disponibile. Vuoi un altro orario?"],
    "alternatives_intro": ["A quell'ora siamo al completo, posso proporti degli orari alternativi: {options}."],
    "alternatives_title": ["Orari alternativi"],
    "no_alternatives": ["A quell'ora siamo al completo e non trovo orari vicini. Vuoi provare un altro giorno?"],
    "error_retry": ["Ops, qualcosa è andato storto. Riprova tra poco."],
    "nlu_fallback": ["Scusami, non ho capito. Dimmi data, ora e persone."],
    "reply_fallback": ["Grazie! Come posso aiutarti oggi?"],
}


def say(key: str, **params: object) -> str:
    """Return one variant of a canned reply with placeholders filled in."""
    variants = RESPONSES.get(key)
    if not variants:
        raise KeyError(f"No canned reply for key '{key}'")
    return random.choice(variants).format(**params)


def build_proposal_text(date: str, time: str, people: int, name: str) -> str:
    """Summary of a create proposal followed by the confirmation hint."""
    summary = say("propose_summary", people=people, when=format_human(date, time), name=name)
    return f"{summary} {say('confirm_hint')}"


def build_alternatives_text(options: list[str]) -> str:
    if not options:
        return say("no_alternatives")
    return say("alternatives_intro", options=" o ".join(options[:3]))


def build_reservation_list_text(
    reservations: Iterable[dict], intro: Optional[str] = None
) -> str:
    """One line per reservation, newest last, followed by the modify/cancel question."""
    lines = [
        f"{r['date']} {r['time']} per {r['people']} ({r['name']})" for r in reservations
    ]
    body = "\n".join(lines) if lines else say("list_empty")
    parts = [intro] if intro else []
    parts.append(body)
    if lines:
        parts.append(say("list_footer"))
    return "\n\n".join(parts)
