"""
Ticket field extraction from free-form customer text.

Two implementations of the same interface:
- LLMTicketExtractor asks a text completion provider for structured JSON
- RegexTicketExtractor is a deterministic best-effort fallback

The LLM extractor degrades to the regex extractor when the provider is
unavailable or its answer cannot be parsed.
"""

import logging
import re
from abc import ABC, abstractmethod
from typing import Any, Optional

from pydantic import BaseModel, ValidationError as PydanticValidationError, field_validator

from .completion import TextCompletionProvider
from .errors import CompletionError
from .models import ExtractedTicketData


logger = logging.getLogger(__name__)


EMAIL_PATTERN = re.compile(r"[\w.+-]+@[\w-]+\.[\w.-]+")
SENTENCE_SPLIT = re.compile(r"[.!?]")
FENCE_PATTERN = re.compile(r"```(?:json)?\s*", re.IGNORECASE)

MAX_TITLE_LENGTH = 80
DEFAULT_TITLE = "New customer request"
DEFAULT_GROUP = "Support"
DEFAULT_GROUP_NAMES = ["Support", "Consulting", "Technical", "Sales"]


class TicketDataExtractor(ABC):
    """Turns raw customer text into ticket fields."""

    @abstractmethod
    def extract(self, text: str, groups: Optional[list[str]] = None) -> ExtractedTicketData:
        """
        Extract ticket fields.

        Args:
            text: Raw customer text (email, letter, extracted document).
            groups: Names of the groups the ticket may be routed to.
        """


def truncate_title(sentence: str) -> str:
    """Shorten a title to MAX_TITLE_LENGTH characters with an ellipsis."""
    if len(sentence) > MAX_TITLE_LENGTH:
        return sentence[: MAX_TITLE_LENGTH - 3] + "..."
    return sentence


class RegexTicketExtractor(TicketDataExtractor):
    """
    Deterministic extractor used when no language model answer is usable.

    - email: first address-like token
    - name: the line directly above the line holding the email
    - title: the first sentence, truncated to 80 characters
    """

    def extract(self, text: str, groups: Optional[list[str]] = None) -> ExtractedTicketData:
        match = EMAIL_PATTERN.search(text)
        email = match.group(0) if match else ""

        name = ""
        if email:
            lines = text.split("\n")
            email_line = next(
                (index for index, line in enumerate(lines) if email in line), -1
            )
            if email_line > 0:
                name = lines[email_line - 1].strip()

        first_sentence = SENTENCE_SPLIT.split(text)[0].strip()

        return ExtractedTicketData(
            customer_name=name,
            customer_email=email,
            organization="",
            ticket_title=truncate_title(first_sentence) or DEFAULT_TITLE,
            ticket_body=text,
            suggested_group=DEFAULT_GROUP,
            model_used="regex",
        )


class LLMExtractionResponse(BaseModel):
    """Structured output schema expected from the language model."""

    customer_name: str = ""
    customer_email: str = ""
    organization: str = ""
    ticket_title: str = ""
    ticket_body: str = ""
    suggested_group: str = ""

    model_config = {"extra": "ignore"}

    @field_validator("*", mode="before")
    @classmethod
    def none_to_empty(cls, v: Any) -> Any:
        return "" if v is None else v


SYSTEM_PROMPT = """You are an assistant that analyzes customer requests for a support team.

Extract the following information from the text and return it as JSON:
- customer_name: full name of the customer
- customer_email: email address of the customer
- organization: name of the organization or company (if present)
- ticket_title: a concise title for the ticket (max 80 characters)
- ticket_body: the main content of the request
- suggested_group: recommended group/team (CHOOSE ONLY FROM: "{groups}")

Respond ONLY with a valid JSON object and no additional text."""


def build_extraction_prompt(groups: Optional[list[str]] = None) -> str:
    """Instruction listing the groups the model may suggest."""
    names = groups or DEFAULT_GROUP_NAMES
    return SYSTEM_PROMPT.format(groups='", "'.join(names))


def parse_extraction_response(raw: str) -> LLMExtractionResponse:
    """
    Parse the model answer, tolerating markdown code fences.

    Raises:
        ValueError: If no JSON object can be read from the answer.
    """
    cleaned = FENCE_PATTERN.sub("", raw).strip()
    start, end = cleaned.find("{"), cleaned.rfind("}")
    if start == -1 or end < start:
        raise ValueError("no JSON object in model response")
    return LLMExtractionResponse.model_validate_json(cleaned[start:end + 1])


class LLMTicketExtractor(TicketDataExtractor):
    """Extractor backed by a text completion provider."""

    def __init__(
        self,
        provider: TextCompletionProvider,
        fallback: Optional[TicketDataExtractor] = None,
    ):
        self._provider = provider
        self._fallback = fallback or RegexTicketExtractor()

    def extract(self, text: str, groups: Optional[list[str]] = None) -> ExtractedTicketData:
        try:
            result = self._provider.complete(
                f"Text: {text}",
                system_prompt=build_extraction_prompt(groups),
            )
        except CompletionError as e:
            logger.warning(f"AI extraction failed, using regex fallback: {e}")
            return self._fallback.extract(text, groups)

        try:
            parsed = parse_extraction_response(result.text)
        except (ValueError, PydanticValidationError) as e:
            logger.warning(f"JSON parsing failed, using regex fallback: {e}")
            fallback_data = self._fallback.extract(text, groups)
            return fallback_data.model_copy(
                update={"cost_info": result.usage, "model_used": result.model_used}
            )

        return ExtractedTicketData(
            customer_name=parsed.customer_name,
            customer_email=parsed.customer_email,
            organization=parsed.organization,
            ticket_title=truncate_title(parsed.ticket_title) or DEFAULT_TITLE,
            ticket_body=parsed.ticket_body or text,
            suggested_group=parsed.suggested_group or DEFAULT_GROUP,
            cost_info=result.usage,
            model_used=result.model_used,
        )
