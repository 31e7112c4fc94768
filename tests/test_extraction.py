"""
Unit tests for ticket field extraction.

Tests cover:
- Regex fallback heuristics
- Prompt building
- LLM response parsing
- Degradation to the regex fallback
"""

import pytest
from unittest.mock import Mock

from helpdesk_assist.errors import CompletionError
from helpdesk_assist.extraction import (
    DEFAULT_GROUP_NAMES,
    LLMTicketExtractor,
    RegexTicketExtractor,
    build_extraction_prompt,
    parse_extraction_response,
    truncate_title,
)
from helpdesk_assist.models import CompletionResult, CompletionUsage


SAMPLE_EMAIL = """Good morning, our VPN client stopped connecting after the update. Can you help?

Best regards
Max Mustermann
max.mustermann@firma.de
Firma GmbH"""


@pytest.fixture
def provider() -> Mock:
    return Mock()


def completion(text: str) -> CompletionResult:
    return CompletionResult(
        text=text,
        usage=CompletionUsage(input_tokens=100, output_tokens=40, total_tokens=140, cost=0.001),
        model_used="openai",
    )


# =============================================================================
# Regex extractor
# =============================================================================

class TestRegexTicketExtractor:
    """Tests for the deterministic fallback."""

    def test_sample_email(self):
        data = RegexTicketExtractor().extract(SAMPLE_EMAIL)

        assert data.customer_email == "max.mustermann@firma.de"
        assert data.customer_name == "Max Mustermann"
        assert data.ticket_title == "Good morning, our VPN client stopped connecting after the update"
        assert data.ticket_body == SAMPLE_EMAIL
        assert data.organization == ""
        assert data.suggested_group == "Support"
        assert data.model_used == "regex"

    def test_email_on_first_line_has_no_name(self):
        data = RegexTicketExtractor().extract("anna@example.com writes: printer broken")
        assert data.customer_email == "anna@example.com"
        assert data.customer_name == ""

    def test_no_email(self):
        data = RegexTicketExtractor().extract("Printer on floor 2 is broken")
        assert data.customer_email == ""
        assert data.customer_name == ""
        assert data.ticket_title == "Printer on floor 2 is broken"

    def test_long_title_is_truncated(self):
        data = RegexTicketExtractor().extract("x" * 120)
        assert len(data.ticket_title) == 80
        assert data.ticket_title.endswith("...")

    def test_empty_first_sentence_uses_default_title(self):
        data = RegexTicketExtractor().extract("...")
        assert data.ticket_title == "New customer request"


class TestTruncateTitle:
    """Tests for title shortening."""

    def test_short_title_unchanged(self):
        assert truncate_title("Short") == "Short"

    def test_exact_limit_unchanged(self):
        assert truncate_title("a" * 80) == "a" * 80

    def test_over_limit(self):
        assert truncate_title("a" * 81) == "a" * 77 + "..."


# =============================================================================
# Prompt and parsing
# =============================================================================

class TestExtractionPrompt:
    """Tests for the extraction instruction."""

    def test_lists_given_groups(self):
        prompt = build_extraction_prompt(["Billing", "Field Service"])
        assert 'CHOOSE ONLY FROM: "Billing", "Field Service"' in prompt

    def test_default_groups(self):
        prompt = build_extraction_prompt([])
        for name in DEFAULT_GROUP_NAMES:
            assert name in prompt

    def test_requires_json(self):
        assert "JSON" in build_extraction_prompt()


class TestParseExtractionResponse:
    """Tests for reading the model answer."""

    def test_plain_json(self):
        parsed = parse_extraction_response('{"customer_email": "a@b.com", "ticket_title": "Hi"}')
        assert parsed.customer_email == "a@b.com"
        assert parsed.organization == ""

    def test_fenced_json(self):
        raw = '```json\n{"customer_name": "Anna", "organization": null}\n```'
        parsed = parse_extraction_response(raw)
        assert parsed.customer_name == "Anna"
        assert parsed.organization == ""

    def test_surrounding_prose(self):
        parsed = parse_extraction_response('Here you go: {"suggested_group": "Sales"} Thanks!')
        assert parsed.suggested_group == "Sales"

    def test_no_json(self):
        with pytest.raises(ValueError):
            parse_extraction_response("I could not find anything.")


# =============================================================================
# LLM extractor
# =============================================================================

class TestLLMTicketExtractor:
    """Tests for provider-backed extraction."""

    def test_uses_model_fields(self, provider):
        provider.complete.return_value = completion(
            '{"customer_name": "Max Mustermann", "customer_email": "max@firma.de",'
            ' "organization": "Firma GmbH", "ticket_title": "VPN down",'
            ' "ticket_body": "VPN stopped working", "suggested_group": "Technical"}'
        )

        data = LLMTicketExtractor(provider).extract(SAMPLE_EMAIL, ["Support", "Technical"])

        assert data.customer_name == "Max Mustermann"
        assert data.organization == "Firma GmbH"
        assert data.ticket_title == "VPN down"
        assert data.suggested_group == "Technical"
        assert data.model_used == "openai"
        assert data.cost_info.total_tokens == 140

        args, kwargs = provider.complete.call_args
        assert args[0] == f"Text: {SAMPLE_EMAIL}"
        assert '"Support", "Technical"' in kwargs["system_prompt"]

    def test_missing_fields_use_defaults(self, provider):
        provider.complete.return_value = completion('{"customer_email": "max@firma.de"}')

        data = LLMTicketExtractor(provider).extract("Some text")

        assert data.ticket_title == "New customer request"
        assert data.ticket_body == "Some text"
        assert data.suggested_group == "Support"

    def test_overlong_title_is_truncated(self, provider):
        provider.complete.return_value = completion('{"ticket_title": "%s"}' % ("t" * 100))

        data = LLMTicketExtractor(provider).extract("Some text")

        assert len(data.ticket_title) == 80

    def test_provider_failure_falls_back(self, provider):
        provider.complete.side_effect = CompletionError("No response received from Eden AI")

        data = LLMTicketExtractor(provider).extract(SAMPLE_EMAIL)

        assert data.model_used == "regex"
        assert data.customer_email == "max.mustermann@firma.de"
        assert data.cost_info is None

    def test_unparseable_answer_falls_back_with_usage(self, provider):
        provider.complete.return_value = completion("Sorry, I cannot help with that.")

        data = LLMTicketExtractor(provider).extract(SAMPLE_EMAIL)

        assert data.customer_email == "max.mustermann@firma.de"
        assert data.model_used == "openai"
        assert data.cost_info.total_tokens == 140

    def test_wrong_types_fall_back(self, provider):
        provider.complete.return_value = completion('{"customer_email": ["a", "b"]}')

        data = LLMTicketExtractor(provider).extract(SAMPLE_EMAIL)

        assert data.customer_name == "Max Mustermann"

    def test_custom_fallback(self, provider):
        provider.complete.side_effect = CompletionError("down")
        fallback = Mock()

        LLMTicketExtractor(provider, fallback).extract("text", ["Support"])

        fallback.extract.assert_called_once_with("text", ["Support"])
