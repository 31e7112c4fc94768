"""
Command line entry point for Helpdesk Assist.

Exposes the support workflows to staff:
1. Analyze customer text or documents into ticket fields
2. Reconcile customer/organization and create the ticket
3. Review tickets, draft AI replies and post them
4. Overview and summaries of a customer's or organization's tickets

All commands print JSON on stdout; failures go to stderr with exit code 1.
"""

import functools
import json
import logging
import mimetypes
import sys
from dataclasses import replace
from pathlib import Path
from typing import Any, Optional

import click
from pydantic import BaseModel, ValidationError as PydanticValidationError

from .assistant import TicketAssistant, load_prompt_groups
from .completion import get_provider, list_local_models
from .config import AppConfig, get_config
from .documents import extract_document
from .errors import HelpdeskAssistError, ValidationError
from .models import ExtractedTicketData, TicketInput
from .queries import DEFAULT_TICKET_LIMIT, TicketQueryService
from .reconciliation import ReconciliationService
from .ticketing import TicketingClient


def setup_logging(level: str) -> None:
    """
    Configure application logging.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR).
    """
    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        handlers=[
            logging.StreamHandler(sys.stderr),
        ],
    )

    # Reduce noise from third-party libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("openai").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


logger = logging.getLogger(__name__)


def _to_jsonable(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(by_alias=True, exclude_none=True)
    if isinstance(value, list):
        return [_to_jsonable(item) for item in value]
    if isinstance(value, dict):
        return {key: _to_jsonable(item) for key, item in value.items()}
    return value


def emit(data: Any) -> None:
    """Print a result as JSON."""
    click.echo(json.dumps(_to_jsonable(data), indent=2, ensure_ascii=False, default=str))


def handle_errors(command):
    """Turn Helpdesk Assist errors into a message on stderr and exit code 1."""

    @functools.wraps(command)
    def wrapper(*args, **kwargs):
        try:
            return command(*args, **kwargs)
        except HelpdeskAssistError as e:
            click.echo(f"Error: {e.summary}", err=True)
            if e.detail:
                click.echo(f"Details: {e.detail}", err=True)
            sys.exit(1)

    return wrapper


def require_ticketing(config: AppConfig) -> None:
    errors = config.validate()
    if errors:
        raise ValidationError("Ticketing API not configured", "; ".join(errors))


def build_assistant(config: AppConfig, model: Optional[str]) -> TicketAssistant:
    provider = get_provider(config, model)
    return TicketAssistant(provider, language=config.llm.reply_language)


def read_text_file(path: Path) -> tuple[bytes, str]:
    """Read a file and guess its MIME type from the name."""
    mime_type, _ = mimetypes.guess_type(path.name)
    if mime_type is None and path.suffix.lower() == ".md":
        mime_type = "text/markdown"
    return path.read_bytes(), mime_type or "application/octet-stream"


def load_analysis(path: Path) -> ExtractedTicketData:
    """Load fields saved from the analyze command, with or without its envelope."""
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise ValidationError(f"{path.name} is not valid JSON", str(e)) from e
    if isinstance(payload, dict) and "data" in payload:
        payload = payload["data"]
    try:
        return ExtractedTicketData.model_validate(payload)
    except PydanticValidationError as e:
        raise ValidationError(f"{path.name} does not contain analysis results", str(e)) from e


@click.group()
@click.option(
    "--debug",
    is_flag=True,
    default=False,
    help="Enable debug logging",
)
@click.pass_context
def main(ctx: click.Context, debug: bool) -> None:
    """
    Helpdesk Assist.

    Turns free-form customer text into helpdesk tickets and drafts
    AI-assisted replies.
    """
    config = get_config()
    if debug:
        config = replace(config, log_level="DEBUG")
    setup_logging(config.log_level)
    ctx.obj = config


@main.command()
@click.pass_obj
def validate(config: AppConfig) -> None:
    """Only validate configuration."""
    errors = config.validate(require_ai=True)
    if errors:
        for error in errors:
            click.echo(f"Configuration error: {error}", err=True)
        sys.exit(1)
    click.echo("Configuration is valid!")


@main.command()
@click.pass_obj
@handle_errors
def groups(config: AppConfig) -> None:
    """List active groups."""
    require_ticketing(config)
    with TicketingClient(config.ticketing) as client:
        emit({"groups": client.list_groups()})


@main.command("search-customers")
@click.argument("term")
@click.option("--limit", default=10, show_default=True, help="Maximum number of results")
@click.pass_obj
@handle_errors
def search_customers(config: AppConfig, term: str, limit: int) -> None:
    """Search customers by name or email."""
    if len(term.strip()) < 2:
        raise ValidationError("Search term must be at least 2 characters long")
    require_ticketing(config)
    with TicketingClient(config.ticketing) as client:
        customers = client.search_customers(term.strip(), limit)
    emit({"customers": customers, "count": len(customers)})


@main.command("check-customer")
@click.argument("email")
@click.pass_obj
@handle_errors
def check_customer(config: AppConfig, email: str) -> None:
    """Check whether a customer with this email exists."""
    require_ticketing(config)
    with TicketingClient(config.ticketing) as client:
        customer = client.find_customer_by_email(email)
    if customer:
        emit({"exists": True, "customer": customer})
    else:
        emit({"exists": False, "message": "No existing customer found. A new customer will be created."})


@main.command("check-organization")
@click.argument("name")
@click.pass_obj
@handle_errors
def check_organization(config: AppConfig, name: str) -> None:
    """Check whether an organization with this name exists."""
    require_ticketing(config)
    with TicketingClient(config.ticketing) as client:
        organization = client.find_organization_by_name(name)
    if organization:
        emit({"exists": True, "organization": organization})
    else:
        emit({"exists": False, "message": "No existing organization found. A new organization will be created."})


@main.command()
@click.argument("file", required=False, type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--text", help="Analyze this text instead of a file")
@click.option("--model", help="Provider selector (openai, mistral, mistral-small, claude, local)")
@click.pass_obj
@handle_errors
def analyze(config: AppConfig, file: Optional[Path], text: Optional[str], model: Optional[str]) -> None:
    """Extract ticket fields from a document or text."""
    document = None
    if file is not None:
        data, mime_type = read_text_file(file)
        document = extract_document(data, mime_type, file.name)
        text = document.text
    if not text:
        raise ValidationError("No text provided for analysis")

    assistant = build_assistant(config, model)

    available_groups = []
    if config.ticketing.is_configured():
        with TicketingClient(config.ticketing) as client:
            available_groups = load_prompt_groups(client)

    extracted = assistant.analyze_text(text, available_groups)
    result = {"data": extracted}
    if document is not None:
        result["document"] = {
            "filename": document.filename,
            "type": document.kind,
            "stats": {
                "characters": len(document.text),
                "words": document.word_count,
                "pages": document.page_count,
            },
            "warnings": document.warnings,
        }
    emit(result)


@main.command("create-ticket")
@click.option("--email", "customer_email", default="", help="Customer email address")
@click.option("--title", "ticket_title", default="", help="Ticket title")
@click.option("--name", "customer_name", default="", help="Customer full name")
@click.option("--organization", default="", help="Organization name")
@click.option("--body", "ticket_body", default="", help="Initial message")
@click.option("--group", default="", help="Target group name")
@click.option(
    "--text-file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Original customer text, used when no body is given",
)
@click.option(
    "--from-analysis",
    "analysis_file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="JSON output of the analyze command; explicit options take precedence",
)
@click.option("--as-email", "create_as_email", is_flag=True, default=False, help="Create the first article as email")
@click.pass_obj
@handle_errors
def create_ticket(
    config: AppConfig,
    customer_email: str,
    ticket_title: str,
    customer_name: str,
    organization: str,
    ticket_body: str,
    group: str,
    text_file: Optional[Path],
    analysis_file: Optional[Path],
    create_as_email: bool,
) -> None:
    """Find or create customer and organization, then create a ticket."""
    require_ticketing(config)

    original_text = text_file.read_text(encoding="utf-8") if text_file else ""
    if analysis_file is not None:
        ticket_input = load_analysis(analysis_file).to_ticket_input(original_text, create_as_email)
    else:
        ticket_input = TicketInput(original_text=original_text, create_as_email=create_as_email)

    overrides = {
        "customer_email": customer_email,
        "ticket_title": ticket_title,
        "customer_name": customer_name,
        "organization": organization,
        "ticket_body": ticket_body,
        "group": group,
    }
    ticket_input = TicketInput.model_validate(
        {**ticket_input.model_dump(), **{k: v for k, v in overrides.items() if v}}
    )

    with TicketingClient(config.ticketing) as client:
        result = ReconciliationService(client).reconcile_and_create_ticket(ticket_input)

    emit({
        "message": "Ticket created successfully",
        "ticket": {
            "id": result.ticket.id,
            "number": result.ticket.number,
            "title": result.ticket.title,
            "url": config.ticketing.ticket_url(result.ticket.id),
        },
        "customer": {
            "id": result.customer.id,
            "name": result.customer.display_name,
            "email": result.customer.email,
        },
    })


@main.command("show-ticket")
@click.argument("ticket_id", type=int)
@click.pass_obj
@handle_errors
def show_ticket(config: AppConfig, ticket_id: int) -> None:
    """Show a ticket with its message history."""
    require_ticketing(config)
    with TicketingClient(config.ticketing) as client:
        ticket = client.get_ticket(ticket_id)
        articles = client.get_ticket_articles(ticket_id)
    emit({"ticket": ticket, "articles": articles})


@main.command("draft-reply")
@click.argument("ticket_id", type=int)
@click.option("--instruction", required=True, help="What the reply should say")
@click.option("--model", help="Provider selector")
@click.pass_obj
@handle_errors
def draft_reply(config: AppConfig, ticket_id: int, instruction: str, model: Optional[str]) -> None:
    """Draft an AI reply from the ticket history."""
    require_ticketing(config)
    assistant = build_assistant(config, model)
    with TicketingClient(config.ticketing) as client:
        articles = client.get_ticket_articles(ticket_id)
    emit({"response": assistant.draft_reply(articles, instruction)})


@main.command()
@click.argument("ticket_id", type=int)
@click.option("--body", required=True, help="Reply text")
@click.option("--internal", is_flag=True, default=False, help="Mark the reply as internal")
@click.pass_obj
@handle_errors
def reply(config: AppConfig, ticket_id: int, body: str, internal: bool) -> None:
    """Add a reply to a ticket."""
    if not body.strip():
        raise ValidationError("Reply text is required")
    require_ticketing(config)
    with TicketingClient(config.ticketing) as client:
        article = client.add_article(ticket_id, body, internal=internal)
    emit({"message": "Reply sent successfully", "article": article})


def _emit_overview(config: AppConfig, overview, summary: bool, model: Optional[str]) -> None:
    result = {
        overview.scope: overview.name,
        "ticketCount": overview.ticket_count,
        "tickets": overview.tickets,
        "summary": None,
    }
    if summary and overview.tickets:
        assistant = build_assistant(config, model)
        result["summary"] = assistant.summarize_tickets(overview.tickets, overview.scope)
    emit(result)


@main.command("customer-tickets")
@click.argument("email")
@click.option("--limit", default=DEFAULT_TICKET_LIMIT, show_default=True)
@click.option("--summary", is_flag=True, default=False, help="Add an AI summary")
@click.option("--model", help="Provider selector")
@click.pass_obj
@handle_errors
def customer_tickets(config: AppConfig, email: str, limit: int, summary: bool, model: Optional[str]) -> None:
    """List a customer's tickets, newest first."""
    require_ticketing(config)
    with TicketingClient(config.ticketing) as client:
        overview = TicketQueryService(client).get_tickets_for_customer(email, limit)
    _emit_overview(config, overview, summary, model)


@main.command("organization-tickets")
@click.argument("name")
@click.option("--limit", default=DEFAULT_TICKET_LIMIT, show_default=True)
@click.option("--summary", is_flag=True, default=False, help="Add an AI summary")
@click.option("--model", help="Provider selector")
@click.pass_obj
@handle_errors
def organization_tickets(config: AppConfig, name: str, limit: int, summary: bool, model: Optional[str]) -> None:
    """List an organization's tickets, newest first."""
    require_ticketing(config)
    with TicketingClient(config.ticketing) as client:
        overview = TicketQueryService(client).get_tickets_for_organization(name, limit)
    _emit_overview(config, overview, summary, model)


@main.command()
@click.argument("message")
@click.option("--model", help="Provider selector")
@click.pass_obj
@handle_errors
def chat(config: AppConfig, message: str, model: Optional[str]) -> None:
    """Ask the AI assistant a free question."""
    result = build_assistant(config, model).chat(message)
    emit({"response": result.text, "cost_info": result.usage, "model_used": result.model_used})


@main.command("local-models")
@click.pass_obj
@handle_errors
def local_models(config: AppConfig) -> None:
    """List models offered by the self-hosted endpoint."""
    emit({"models": list_local_models(config.local_ai, config.llm)})


if __name__ == "__main__":
    main()
