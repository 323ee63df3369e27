"""Smoke tests for the offline console scenarios."""

import pytest

from console_demo import DEMO_NOW, DEMO_PHONE, ConsoleSession, KeywordIntentParser, main
from tablebot.schemas.booking_schema import NextAction
from tablebot.services.base import ParseContext


def upcoming_times(session: ConsoleSession) -> list[str]:
    return [
        r.time for r in session.repository.list_upcoming(session.tenant.id, DEMO_PHONE, DEMO_NOW)
    ]


@pytest.fixture
def session():
    return ConsoleSession(now=lambda: DEMO_NOW, reply_dedupe_ms=0)


class TestKeywordIntentParser:
    @pytest.mark.asyncio
    async def test_extracts_booking_fields(self):
        parsed = await KeywordIntentParser().parse(
            "Tavolo per 4 domani alle 20 a nome Anna", ParseContext()
        )
        assert parsed.next_action == NextAction.CHECK_AVAILABILITY
        assert parsed.fields.known() == {
            "people": 4, "time": "20:00", "date": "domani", "name": "Anna",
        }

    @pytest.mark.asyncio
    async def test_modify_keywords(self):
        parsed = await KeywordIntentParser().parse("Posso spostarla alle 21:00?", ParseContext())
        assert parsed.is_modify

    @pytest.mark.asyncio
    async def test_smalltalk(self):
        parsed = await KeywordIntentParser().parse("ciao!", ParseContext())
        assert parsed.next_action == NextAction.SMALLTALK


class TestScenarios:
    @pytest.mark.asyncio
    async def test_booking(self, session, capsys):
        await session.run_scenario("booking")
        assert upcoming_times(session) == ["20:30"]
        assert session.trace[-1] == "idle"
        assert "Confermata" in capsys.readouterr().out

    @pytest.mark.asyncio
    async def test_cancel(self, session):
        await session.run_scenario("cancel")
        assert upcoming_times(session) == []

    @pytest.mark.asyncio
    async def test_modify(self, session):
        await session.run_scenario("modify")
        assert upcoming_times(session) == ["21:00"]

    @pytest.mark.asyncio
    async def test_busy(self, session):
        await session.run_scenario("busy")
        assert upcoming_times(session) == ["21:00"]

    @pytest.mark.asyncio
    async def test_unknown_scenario(self, session, capsys):
        await session.run_scenario("party")
        assert "Unknown scenario" in capsys.readouterr().out


def test_cli_rejects_unknown_scenario():
    with pytest.raises(SystemExit):
        main(["--scenario", "party"])
