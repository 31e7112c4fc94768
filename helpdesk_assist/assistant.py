"""
AI-assisted support workflows for Helpdesk Assist.

Wraps a text completion provider with the prompts used by support staff:
- analyzing customer text into ticket fields
- drafting replies from a ticket's message history
- summarizing the ticket history of a customer or organization
- free chat
"""

import logging
from typing import Optional

from .completion import ChatHistory, TextCompletionProvider
from .errors import HelpdeskAssistError, ValidationError
from .extraction import LLMTicketExtractor, TicketDataExtractor
from .models import Article, CompletionResult, ExtractedTicketData, Group, Ticket
from .ticketing import TicketingClient


logger = logging.getLogger(__name__)


# Characters of the first and last message quoted per ticket in summaries
SUMMARY_EXCERPT_LENGTH = 200

REPLY_SYSTEM_PROMPT = "You are a customer support agent writing email replies."
SUMMARY_SYSTEM_PROMPT = (
    "You are a customer service analyst who writes concise, helpful summaries."
)
CHAT_SYSTEM_PROMPT = "You are a helpful AI assistant. Answer in {language} and be friendly and helpful."


def load_prompt_groups(client: TicketingClient) -> list[Group]:
    """
    Load groups to offer the model as routing targets.

    Returns an empty list when groups cannot be loaded; the extraction
    prompt then uses its default group names.
    """
    try:
        return client.list_groups()
    except HelpdeskAssistError as e:
        logger.warning(f"Could not load groups, using defaults: {e}")
        return []


def format_ticket_history(articles: list[Article]) -> str:
    """Render a ticket thread as numbered messages."""
    entries = [
        f"[{index}] {article.from_ or 'System'} ({article.created_at or ''}):\n{article.body}\n"
        for index, article in enumerate(articles, 1)
    ]
    return "\n---\n".join(entries)


def build_reply_prompt(articles: list[Article], instruction: str, language: str) -> str:
    return f"""You are a professional customer support agent.

This is the ticket history so far:
{format_ticket_history(articles)}

Task: {instruction}

Write a professional, helpful reply in {language}. The reply should:
- Be polite and customer-oriented
- Address the concrete request
- Be clear and easy to understand
- Contain a suitable greeting and closing

Respond ONLY with the email, without additional explanations or comments."""


def _excerpt(text: str) -> str:
    return text[:SUMMARY_EXCERPT_LENGTH] + "..."


def build_summary_prompt(tickets: list[Ticket], scope: str, language: str) -> str:
    heading = "CUSTOMER OVERVIEW:" if scope == "customer" else "ORGANIZATION OVERVIEW:"

    blocks = []
    for ticket in tickets:
        articles = ticket.articles or []
        first = articles[0].body if articles else "No message"
        last = articles[-1].body if articles else "No message"
        blocks.append(
            f"""
Ticket #{ticket.number or ticket.id} ({ticket.created_at or ''}):
- Title: {ticket.title}
- State: {ticket.label('state', 'Unknown')} | Priority: {ticket.label('priority', 'Normal')} | Group: {ticket.label('group', 'Unknown')}
- Messages: {len(articles)}
- First message: {_excerpt(first)}
- Last message: {_excerpt(last)}
"""
        )

    return f"""You are a customer service analyst. Write a concise summary of the ticket history.

{heading}

Tickets ({len(tickets)} found):
{''.join(blocks)}

Write a structured summary with:
1. **Overview**: number of tickets, time span, main topics
2. **State distribution**: breakdown by ticket state
3. **Main issues**: the most frequent requests and topics
4. **Trends**: development over time
5. **Recommendations**: actions for the customer service team

Answer in {language} in a professional but easy to understand style."""


class TicketAssistant:
    """
    Support workflows backed by one text completion provider.

    Args:
        provider: Selected text completion provider.
        extractor: Field extractor; defaults to the provider-backed one
            with regex fallback.
        language: Language of generated replies and summaries.
    """

    def __init__(
        self,
        provider: TextCompletionProvider,
        extractor: Optional[TicketDataExtractor] = None,
        language: str = "German",
    ):
        self._provider = provider
        self._extractor = extractor or LLMTicketExtractor(provider)
        self._language = language

    def analyze_text(self, text: str, groups: Optional[list[Group]] = None) -> ExtractedTicketData:
        """
        Extract ticket fields from customer text.

        Raises:
            ValidationError: If the text is empty.
        """
        if not text or not text.strip():
            raise ValidationError("No text provided for analysis")

        group_names = [group.name for group in groups or []]
        logger.info(f"Analyzing text ({len(text)} characters)")
        return self._extractor.extract(text, group_names)

    def draft_reply(self, articles: list[Article], instruction: str) -> CompletionResult:
        """
        Draft a reply to a ticket from its history.

        Raises:
            ValidationError: If history or instruction is missing.
            CompletionError: If the provider fails.
        """
        if not articles or not instruction or not instruction.strip():
            raise ValidationError("Ticket history and instruction are required")

        result = self._provider.complete(
            build_reply_prompt(articles, instruction, self._language),
            system_prompt=REPLY_SYSTEM_PROMPT,
            temperature=0.7,
            max_tokens=1500,
        )
        logger.info(f"Drafted reply with {result.model_used}")
        return result

    def summarize_tickets(self, tickets: list[Ticket], scope: str = "customer") -> CompletionResult:
        """
        Summarize the ticket history of a customer or organization.

        An empty ticket list is answered without calling the provider.
        """
        if not tickets:
            return CompletionResult(text="No tickets found.")

        logger.info(f"Summarizing {len(tickets)} tickets for {scope}")
        return self._provider.complete(
            build_summary_prompt(tickets, scope, self._language),
            system_prompt=SUMMARY_SYSTEM_PROMPT,
            temperature=0.7,
            max_tokens=2000,
        )

    def chat(self, message: str, history: Optional[ChatHistory] = None) -> CompletionResult:
        """Answer a free chat message, keeping earlier turns as context."""
        if not message or not message.strip():
            raise ValidationError("Message is required")

        history = history or []
        logger.debug(f"Chat with {len(history)} previous messages")
        return self._provider.complete(
            message,
            system_prompt=CHAT_SYSTEM_PROMPT.format(language=self._language),
            history=history,
            temperature=0.7,
        )
