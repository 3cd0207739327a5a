"""Tests for PII redaction and the safe logger."""

from __future__ import annotations

import logging

import pytest

from clio_bridge.redaction import redact, redact_deep, safe_log


class TestRedact:
    def test_email(self) -> None:
        assert redact("Contact jane.doe@example.com today") == "Contact [EMAIL_REDACTED] today"

    @pytest.mark.parametrize(
        "phone",
        ["555-123-4567", "555.123.4567", "(555) 123-4567", "+1 555 123 4567"],
    )
    def test_phone_formats(self, phone: str) -> None:
        assert redact(f"Call {phone} now") == "Call [PHONE_REDACTED] now"

    def test_dashed_ssn(self) -> None:
        assert redact("SSN 123-45-6789") == "SSN [SSN_REDACTED]"

    def test_undashed_ssn_needs_plausible_area_number(self) -> None:
        assert redact("id 123456789") == "id [SSN_REDACTED]"
        assert redact("id 987654321") == "id 987654321"
        assert redact("id 000123456") == "id 000123456"

    def test_card_numbers(self) -> None:
        assert redact("card 4111 1111 1111 1111") == "card [CARD_REDACTED]"
        assert redact("card 4111111111111111") == "card [CARD_REDACTED]"

    def test_structured_name_fields(self) -> None:
        text = '{"first_name": "John", "lastName": "Doe", "name": "Jane Smith"}'
        assert redact(text) == (
            '{"first_name": "[NAME_REDACTED]", "lastName": "[NAME_REDACTED]", '
            '"name": "[NAME_REDACTED]"}'
        )

    def test_street_address(self) -> None:
        assert redact("Lives at 42 Baker Street, London") == "Lives at [ADDRESS_REDACTED], London"

    def test_short_numbers_and_words_left_alone(self) -> None:
        text = "Matter 12345: 15 minutes Strategy session on 2024-01-15"
        assert redact(text) == text

    def test_empty_string(self) -> None:
        assert redact("") == ""

    @pytest.mark.parametrize(
        "text",
        [
            "Email jane@example.com or call 555-123-4567",
            "SSN 123-45-6789 and card 4111-1111-1111-1111",
            '{"name": "Jane Smith", "address": "12 Oak Ave"}',
            "12345678901234567890123",
            "555-123-4567-8901 and 1234567890123",
            "",
        ],
    )
    def test_idempotent(self, text: str) -> None:
        once = redact(text)
        assert redact(once) == once


class TestRedactDeep:
    def test_preserves_shape_and_redacts_leaves(self) -> None:
        data = {
            "contact": {"email": "a@b.co", "phones": ["555-123-4567", 7]},
            "tags": ("x@y.org",),
            "count": 3,
        }

        assert redact_deep(data) == {
            "contact": {"email": "[EMAIL_REDACTED]", "phones": ["[PHONE_REDACTED]", 7]},
            "tags": ("[EMAIL_REDACTED]",),
            "count": 3,
        }

    def test_safe_keys_pass_through(self) -> None:
        data = {
            "ID": "5551234567",
            "status": "jane@example.com",
            "meta": {"paging": {"next": "555-123-4567"}},
            "note": "555-123-4567",
        }

        redacted = redact_deep(data)

        assert redacted["ID"] == "5551234567"
        assert redacted["status"] == "jane@example.com"
        assert redacted["meta"] == {"paging": {"next": "555-123-4567"}}
        assert redacted["note"] == "[PHONE_REDACTED]"


class TestSafeLog:
    def test_redacts_message_and_data(self, caplog: pytest.LogCaptureFixture) -> None:
        logger = logging.getLogger("tests.safe_log")
        with caplog.at_level(logging.INFO, logger="tests.safe_log"):
            safe_log(
                "info",
                "Looked up jane@example.com",
                {"phone": "555-123-4567", "id": 9},
                logger=logger,
            )

        assert len(caplog.records) == 1
        message = caplog.records[0].getMessage()
        assert "jane@example.com" not in message
        assert "555-123-4567" not in message
        assert "[EMAIL_REDACTED]" in message
        assert '"id": 9' in message

    def test_level_names(self, caplog: pytest.LogCaptureFixture) -> None:
        logger = logging.getLogger("tests.safe_log")
        with caplog.at_level(logging.DEBUG, logger="tests.safe_log"):
            safe_log("warn", "careful", logger=logger)
            safe_log("error", "broken", logger=logger)

        assert [r.levelno for r in caplog.records] == [logging.WARNING, logging.ERROR]
