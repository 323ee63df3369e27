"""
Table-booking assistant entry point.

Runs the conversation engine in the terminal. The default mode talks to the
configured LLM endpoint for intent parsing and replies, and stores
reservations in the configured database; ``console`` runs the offline demo
that needs no API keys.

Usage:
    Live models:  python main.py
    Console mode: python main.py console
"""

import asyncio
import logging
import sys

from tablebot.config import settings

logger = logging.getLogger(__name__)


def _run_live_mode() -> None:
    """Interactive console backed by the OpenAI-compatible parser and reply generator."""
    from console_demo import ConsoleSession
    from tablebot.services.dialogue import OpenAIReplyGenerator
    from tablebot.services.nlu import OpenAIIntentParser

    if not settings.model.api_key:
        logger.error("OPENAI_API_KEY is not set; use 'python main.py console' for the offline demo")
        sys.exit(1)

    session = ConsoleSession(
        parser=OpenAIIntentParser(),
        replier=OpenAIReplyGenerator(),
        database_url=settings.database.url,
    )
    logger.info("Live session started with model %s", settings.model.llm_model)
    asyncio.run(session.run())


def _run_console_mode() -> None:
    """Start the offline console demo (no API keys required)."""
    from console_demo import ConsoleSession

    asyncio.run(ConsoleSession().run())


if __name__ == "__main__":
    if len(sys.argv) > 1 and sys.argv[1] == "console":
        _run_console_mode()
    else:
        _run_live_mode()
