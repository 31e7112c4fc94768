"""
Data models for Helpdesk Assist.

Uses Pydantic for validation and serialization. Ticketing entities mirror the
Zammad REST API and keep any extra upstream fields, so callers can still see
everything the remote system returned.
"""

from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator


ARTICLE_TYPE_NOTE = "note"
ARTICLE_TYPE_EMAIL = "email"

# Staff roles never returned by customer search
STAFF_ROLE_NAMES = ("Admin", "Agent")


class RemoteEntity(BaseModel):
    """Base class for records owned by the ticketing system."""

    model_config = {"extra": "allow", "populate_by_name": True}


class Role(RemoteEntity):
    """Permission role assigned to users."""

    id: int
    name: str = ""


class Group(RemoteEntity):
    """A ticket queue or team."""

    id: int
    name: str = ""
    active: Optional[bool] = True

    def is_active(self) -> bool:
        # Missing flag counts as active
        return self.active is not False


class Organization(RemoteEntity):
    """A customer organization; identity is the case-insensitive name."""

    id: int
    name: str = ""
    active: Optional[bool] = True

    def matches_name(self, name: str) -> bool:
        return bool(self.name) and self.name.lower() == name.lower()


class Customer(RemoteEntity):
    """
    A customer user record.

    Attributes:
        id: Ticketing system user id
        firstname: Given name
        lastname: Family name (may be empty)
        email: Dedup key, compared case-insensitively
        organization_id: Linked organization, if any
        roles: Role names or role objects as delivered by the API
    """

    id: int
    firstname: Optional[str] = ""
    lastname: Optional[str] = ""
    email: Optional[str] = ""
    organization_id: Optional[int] = None
    organization: Optional[Any] = None
    roles: list[Any] = Field(default_factory=list)

    @property
    def fullname(self) -> str:
        return f"{self.firstname or ''} {self.lastname or ''}".strip()

    @property
    def display_name(self) -> str:
        """Full name, or the email when no name is stored."""
        return self.fullname or (self.email or "")

    def matches_email(self, email: str) -> bool:
        return bool(self.email) and self.email.lower() == email.lower()

    def role_names(self) -> list[str]:
        names = []
        for role in self.roles:
            if isinstance(role, dict):
                names.append(str(role.get("name", "")))
            else:
                names.append(str(role))
        return names

    def is_staff(self) -> bool:
        """Check if the user holds an Admin or Agent role."""
        return any(name in STAFF_ROLE_NAMES for name in self.role_names())


class CustomerSummary(BaseModel):
    """Formatted customer search result."""

    id: int
    email: str = ""
    firstname: str = ""
    lastname: str = ""
    fullname: str = ""
    organization: Optional[Any] = None
    organization_id: Optional[int] = None

    @classmethod
    def from_customer(cls, customer: Customer) -> "CustomerSummary":
        return cls(
            id=customer.id,
            email=customer.email or "",
            firstname=customer.firstname or "",
            lastname=customer.lastname or "",
            fullname=customer.fullname,
            organization=customer.organization or None,
            organization_id=customer.organization_id or None,
        )


class Article(RemoteEntity):
    """
    A single message or note within a ticket thread.

    Email-type articles carry sender and recipient addresses; notes do not.
    """

    id: Optional[int] = None
    ticket_id: Optional[int] = None
    subject: Optional[str] = None
    body: str = ""
    type: str = ARTICLE_TYPE_NOTE
    # Unset means: notes are internal, email-type messages are not
    internal: Optional[bool] = None
    sender: Optional[str] = None
    from_: Optional[str] = Field(default=None, alias="from")
    to: Optional[str] = None
    created_at: Optional[str] = None

    def is_email(self) -> bool:
        return self.type == ARTICLE_TYPE_EMAIL

    def to_payload(self) -> dict:
        """Request body as expected by the ticketing API."""
        return self.model_dump(by_alias=True, exclude_none=True)


class Ticket(RemoteEntity):
    """A helpdesk ticket, optionally expanded with its article thread."""

    id: int
    number: Optional[str] = None
    title: str = ""
    group_id: Optional[int] = None
    customer_id: Optional[int] = None
    organization_id: Optional[int] = None
    state: Optional[Any] = None
    priority: Optional[Any] = None
    group: Optional[Any] = None
    created_at: Optional[str] = None
    articles: Optional[list[Article]] = None

    @field_validator("number", mode="before")
    @classmethod
    def coerce_number(cls, v: Any) -> Any:
        """Ticket numbers are strings even when delivered as integers."""
        if isinstance(v, int):
            return str(v)
        return v

    def label(self, field_name: str, default: str) -> str:
        """Name of an expanded reference (state, priority, group)."""
        value = getattr(self, field_name, None)
        if isinstance(value, dict):
            return str(value.get("name") or default)
        return str(value) if value else default


class TicketInput(BaseModel):
    """
    Extracted ticket fields supplied to the reconciliation workflow.

    Required fields are checked by the workflow itself so the caller gets a
    ValidationError naming the missing input.
    """

    customer_email: str = ""
    ticket_title: str = ""
    customer_name: str = ""
    organization: str = ""
    ticket_body: str = ""
    group: str = ""
    original_text: str = ""
    create_as_email: bool = False

    @field_validator(
        "customer_email", "ticket_title", "customer_name", "organization", "group",
        mode="before",
    )
    @classmethod
    def strip_text(cls, v: Any) -> str:
        """Normalize missing values and surrounding whitespace."""
        if v is None:
            return ""
        return str(v).strip()

    @field_validator("ticket_body", "original_text", mode="before")
    @classmethod
    def none_to_empty(cls, v: Any) -> str:
        return "" if v is None else v


class ReconciliationResult(BaseModel):
    """Outcome of a successful reconciliation run."""

    ticket: Ticket
    customer: Customer
    organization: Optional[Organization] = None


class TicketOverview(BaseModel):
    """Tickets of a customer or organization for overview displays."""

    scope: str
    name: str
    entity_id: int
    ticket_count: int
    tickets: list[Ticket] = Field(default_factory=list)


class CompletionUsage(BaseModel):
    """Token usage and cost of one completion."""

    input_tokens: int = 0
    output_tokens: int = 0
    total_tokens: int = 0
    cost: float = 0.0
    currency: str = "EUR"


class CompletionResult(BaseModel):
    """Text returned by a generative-text provider."""

    text: str
    usage: CompletionUsage = Field(default_factory=CompletionUsage)
    model_used: str = ""


class ExtractedTicketData(BaseModel):
    """Best-effort ticket fields extracted from free-form customer text."""

    customer_name: str = ""
    customer_email: str = ""
    organization: str = ""
    ticket_title: str = "New customer request"
    ticket_body: str = ""
    suggested_group: str = "Support"
    cost_info: Optional[CompletionUsage] = None
    model_used: str = ""

    def to_ticket_input(self, original_text: str = "", create_as_email: bool = False) -> TicketInput:
        """Turn reviewed extraction output into reconciliation input."""
        return TicketInput(
            customer_email=self.customer_email,
            ticket_title=self.ticket_title,
            customer_name=self.customer_name,
            organization=self.organization,
            ticket_body=self.ticket_body,
            group=self.suggested_group,
            original_text=original_text,
            create_as_email=create_as_email,
        )


class ExtractedDocument(BaseModel):
    """Plain text extracted from an uploaded document."""

    text: str
    filename: str = ""
    kind: str = ""
    page_count: Optional[int] = None
    warnings: list[str] = Field(default_factory=list)

    @property
    def word_count(self) -> int:
        return len(self.text.split())
