"""Tests for shared utility functions."""

import contextvars

from tablebot.logging_context import (
    ConversationIdFilter,
    get_conversation_id,
    get_conversation_logger,
    set_conversation_id,
)
from tablebot.utils import conversation_key, normalize_phone, strip_accents


class TestNormalizePhone:
    def test_strips_spaces(self):
        assert normalize_phone("333 111 2222") == "3331112222"

    def test_strips_dashes(self):
        assert normalize_phone("333-111-2222") == "3331112222"

    def test_preserves_leading_plus(self):
        assert normalize_phone("+39 333 111 2222") == "+393331112222"

    def test_whatsapp_id_unchanged(self):
        assert normalize_phone("393331112222") == "393331112222"

    def test_mixed_separators(self):
        assert normalize_phone("  +39 (333) 111-2222 ") == "+393331112222"


class TestStripAccents:
    def test_italian_vowels(self):
        assert strip_accents("sì, perché è così") == "si, perche e cosi"

    def test_plain_text_unchanged(self):
        assert strip_accents("domani") == "domani"


def test_conversation_key():
    assert conversation_key("t1", "393331112222") == "t1:393331112222"


class TestConversationLogging:
    def test_id_is_attached_to_records(self, caplog):
        logger = get_conversation_logger("tablebot.tests")
        set_conversation_id("t1:393331112222:wamid.1")
        with caplog.at_level("INFO", logger="tablebot.tests"):
            logger.info("hello")
        assert caplog.records[-1].conversation_id == "t1:393331112222:wamid.1"
        assert get_conversation_id() == "t1:393331112222:wamid.1"

    def test_filter_installed_once(self):
        logger = get_conversation_logger("tablebot.tests.once")
        get_conversation_logger("tablebot.tests.once")
        assert sum(isinstance(f, ConversationIdFilter) for f in logger.filters) == 1

    def test_untagged_context_uses_dash(self):
        assert contextvars.Context().run(get_conversation_id) == "-"
