"""Tests for the HTTP collaborators and the gateway around them."""

import json

import httpx
import pytest

from tablebot.prompts.prompt_templates import RESPONSES
from tablebot.schemas.booking_schema import BookingFields, NextAction, ParsedIntent, Tenant
from tablebot.services.base import ParseContext, ReplyRequest
from tablebot.services.dialogue import DEFAULT_REPLY, OpenAIReplyGenerator
from tablebot.services.gateway import CollaboratorGateway
from tablebot.services.http import backoff_delay, is_retryable_status, post_json_with_retry
from tablebot.services.nlu import FALLBACK_REPLY, OpenAIIntentParser, sanitize_intent
from tablebot.services.whatsapp import WhatsAppMessenger
from tests.conftest import FakeMessenger, FakeReplier, ScriptedParser


class Recorder:
    """MockTransport handler replaying queued responses and recording requests."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        item = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(item, Exception):
            raise item
        return item

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self))

    def body(self, index: int = -1) -> dict:
        return json.loads(self.requests[index].content)


def completion(arguments: dict) -> httpx.Response:
    return httpx.Response(200, json={
        "choices": [{"message": {"tool_calls": [
            {"function": {"name": "parse_booking", "arguments": json.dumps(arguments)}}
        ]}}]
    })


def reply_completion(content: str) -> httpx.Response:
    return httpx.Response(200, json={"choices": [{"message": {"content": content}}]})


class TestRetryPolicy:
    def test_retryable_statuses(self):
        assert is_retryable_status(429)
        assert is_retryable_status(503)
        assert not is_retryable_status(400)

    def test_backoff_grows(self):
        assert [backoff_delay(n) for n in (1, 2, 3)] == [0.5, 1.5, 4.5]

    @pytest.mark.asyncio
    async def test_retries_until_success(self):
        recorder = Recorder(httpx.Response(500), httpx.Response(429), httpx.Response(200))
        async with recorder.client() as client:
            response = await post_json_with_retry(client, "https://x/y", {}, backoff_base=0)
        assert response.status_code == 200
        assert len(recorder.requests) == 3

    @pytest.mark.asyncio
    async def test_client_error_not_retried(self):
        recorder = Recorder(httpx.Response(400))
        async with recorder.client() as client:
            response = await post_json_with_retry(client, "https://x/y", {}, backoff_base=0)
        assert response.status_code == 400
        assert len(recorder.requests) == 1

    @pytest.mark.asyncio
    async def test_transport_error_reraised(self):
        recorder = Recorder(httpx.ConnectError("refused"))
        async with recorder.client() as client:
            with pytest.raises(httpx.ConnectError):
                await post_json_with_retry(client, "https://x/y", {}, max_attempts=2, backoff_base=0)
        assert len(recorder.requests) == 2


class TestWhatsAppMessenger:
    def messenger(self, recorder, **kwargs):
        return WhatsAppMessenger(
            "PHONE_ID", "TOKEN", graph_base="https://graph.test/v20.0",
            backoff_base=0, client=recorder.client(), **kwargs,
        )

    @pytest.mark.asyncio
    async def test_send_text(self):
        recorder = Recorder(httpx.Response(200, json={"messages": [{"id": "wamid.out"}]}))
        assert await self.messenger(recorder).send_text("393331112222", "Ciao")

        request = recorder.requests[0]
        assert str(request.url) == "https://graph.test/v20.0/PHONE_ID/messages"
        assert request.headers["Authorization"] == "Bearer TOKEN"
        assert recorder.body() == {
            "messaging_product": "whatsapp", "to": "393331112222",
            "type": "text", "text": {"body": "Ciao"},
        }

    @pytest.mark.asyncio
    async def test_confirm_buttons(self):
        recorder = Recorder(httpx.Response(200))
        await self.messenger(recorder).send_confirm_buttons("39333", "Confermi?")
        buttons = recorder.body()["interactive"]["action"]["buttons"]
        assert [b["reply"]["id"] for b in buttons] == ["confirm", "cancel"]

    @pytest.mark.asyncio
    async def test_time_options_rows(self):
        recorder = Recorder(httpx.Response(200))
        await self.messenger(recorder).send_time_options("39333", "Orari", ["20:00", "20:15"])
        rows = recorder.body()["interactive"]["action"]["sections"][0]["rows"]
        assert [r["id"] for r in rows] == ["slot_20:00", "slot_20:15"]

    @pytest.mark.asyncio
    async def test_booking_list_rows(self):
        recorder = Recorder(httpx.Response(200))
        reservations = [{"id": "abc", "date": "2030-01-02", "time": "20:00", "people": 4, "name": "Anna"}]
        await self.messenger(recorder).send_booking_list("39333", "Quale?", reservations)
        [row] = recorder.body()["interactive"]["action"]["sections"][0]["rows"]
        assert row["id"] == "booking_abc"
        assert row["title"] == "2030-01-02 20:00"

    @pytest.mark.asyncio
    async def test_retries_transient_failures(self):
        recorder = Recorder(httpx.Response(503), httpx.Response(200))
        assert await self.messenger(recorder).send_text("39333", "Ciao")
        assert len(recorder.requests) == 2

    @pytest.mark.asyncio
    async def test_permanent_failure_reported(self):
        recorder = Recorder(httpx.Response(401, json={"error": "bad token"}))
        assert not await self.messenger(recorder).send_text("39333", "Ciao")
        assert len(recorder.requests) == 1

    @pytest.mark.asyncio
    async def test_missing_credentials_skip_send(self):
        recorder = Recorder(httpx.Response(200))
        messenger = WhatsAppMessenger("", "", client=recorder.client())
        assert not await messenger.send_text("39333", "Ciao")
        assert recorder.requests == []

    def test_tenant_credentials_preferred(self):
        tenant = Tenant(id="t1", slug="x", whatsapp_phone_id="PID", whatsapp_token="TOK")
        messenger = WhatsAppMessenger.for_tenant(tenant)
        assert (messenger.phone_number_id, messenger.token) == ("PID", "TOK")


class TestSanitizeIntent:
    def test_bad_values_become_missing(self):
        parsed = ParsedIntent(
            fields=BookingFields(date="ieri sera", time="8pm", people=0, name="Anna"),
            missing_fields=["time"],
        )
        clean = sanitize_intent(parsed)
        assert clean.fields.known() == {"name": "Anna"}
        assert clean.missing_fields == ["time", "date", "people"]

    def test_relative_and_iso_dates_kept(self):
        for value in ("domani", "2030-01-02", "venerdì", "sabato prossimo"):
            assert sanitize_intent(ParsedIntent(fields=BookingFields(date=value))).fields.date == value


class TestOpenAIIntentParser:
    def parser(self, recorder):
        return OpenAIIntentParser(
            api_key="sk-test", base_url="https://llm.test/v1", backoff_base=0,
            client=recorder.client(),
        )

    @pytest.mark.asyncio
    async def test_parses_function_call(self):
        recorder = Recorder(completion({
            "intent": "booking.create", "confidence": 0.8,
            "fields": {"date": "domani", "time": "20:00", "people": 4},
            "next_action": "check_availability",
        }))
        context = ParseContext(tenant_name="Trattoria Test", reservations=[{"id": "r1"}])
        parsed = await self.parser(recorder).parse("domani alle 20 per 4", context)

        assert parsed.next_action == NextAction.CHECK_AVAILABILITY
        assert parsed.fields.people == 4
        body = recorder.body()
        assert str(recorder.requests[0].url) == "https://llm.test/v1/chat/completions"
        assert body["tool_choice"]["function"]["name"] == body["tools"][0]["function"]["name"]
        assert body["messages"][-1] == {"role": "user", "content": "domani alle 20 per 4"}

    @pytest.mark.asyncio
    async def test_invalid_arguments_fall_back(self):
        recorder = Recorder(completion({"next_action": "fly_to_the_moon"}))
        parsed = await self.parser(recorder).parse("boh", ParseContext())
        assert parsed.next_action == NextAction.SMALLTALK
        assert parsed.reply == FALLBACK_REPLY

    @pytest.mark.asyncio
    async def test_missing_tool_call_falls_back(self):
        recorder = Recorder(reply_completion("ciao"))
        parsed = await self.parser(recorder).parse("ciao", ParseContext())
        assert parsed.intent == "unknown"

    @pytest.mark.asyncio
    async def test_server_errors_fall_back_after_retries(self):
        recorder = Recorder(httpx.Response(500))
        parsed = await self.parser(recorder).parse("ciao", ParseContext())
        assert parsed.reply == FALLBACK_REPLY
        assert len(recorder.requests) == 3


class TestOpenAIReplyGenerator:
    def generator(self, recorder):
        return OpenAIReplyGenerator(
            api_key="sk-test", base_url="https://llm.test/v1", backoff_base=0,
            client=recorder.client(),
        )

    @pytest.mark.asyncio
    async def test_returns_response_text(self):
        recorder = Recorder(reply_completion(json.dumps({"response_text": " Apriamo alle 19. "})))
        text = await self.generator(recorder).generate(ReplyRequest(intent="info.hours"))
        assert text == "Apriamo alle 19."
        assert recorder.body()["response_format"] == {"type": "json_object"}

    @pytest.mark.asyncio
    async def test_empty_text_uses_default(self):
        recorder = Recorder(reply_completion("{}"))
        assert await self.generator(recorder).generate(ReplyRequest(intent="x")) == DEFAULT_REPLY

    @pytest.mark.asyncio
    async def test_http_error_propagates(self):
        recorder = Recorder(httpx.Response(401))
        with pytest.raises(httpx.HTTPStatusError):
            await self.generator(recorder).generate(ReplyRequest(intent="x"))


class TestCollaboratorGateway:
    @pytest.mark.asyncio
    async def test_parse_failure_is_captured(self):
        parser = ScriptedParser()
        parser.push(RuntimeError("down"))
        gateway = CollaboratorGateway(parser, FakeReplier(), FakeMessenger())
        outcome = await gateway.parse("ciao", ParseContext())
        assert not outcome.ok
        assert isinstance(outcome.error, RuntimeError)

    @pytest.mark.asyncio
    async def test_generate_failure_uses_canned_reply(self):
        gateway = CollaboratorGateway(
            ScriptedParser(), FakeReplier(error=RuntimeError("down")), FakeMessenger()
        )
        assert await gateway.generate(ReplyRequest(intent="x")) in RESPONSES["reply_fallback"]

    @pytest.mark.asyncio
    async def test_blank_generation_uses_canned_reply(self):
        gateway = CollaboratorGateway(ScriptedParser(), FakeReplier(text="  "), FakeMessenger())
        assert await gateway.generate(ReplyRequest(intent="x")) in RESPONSES["reply_fallback"]

    @pytest.mark.asyncio
    async def test_send_failure_is_captured(self):
        gateway = CollaboratorGateway(ScriptedParser(), FakeReplier(), FakeMessenger(fail=True))
        outcome = await gateway.send_text("39333", "ciao")
        assert outcome.unwrap_or(False) is False
