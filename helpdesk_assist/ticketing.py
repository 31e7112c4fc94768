"""
Ticketing system client for Helpdesk Assist.

Thin typed wrapper around the Zammad REST API:
- users (customers), organizations, roles and groups
- tickets and their articles
- ticket search for overview displays

No business logic lives here beyond request shaping and exact-match
filtering of search results.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Optional, TypeVar, Union

import httpx
from pydantic import BaseModel, ValidationError as PydanticValidationError

from .config import TicketingConfig
from .errors import HelpdeskAssistError, RemoteApiError, RemoteTimeoutError
from .models import (
    ARTICLE_TYPE_NOTE,
    Article,
    Customer,
    CustomerSummary,
    Group,
    Organization,
    Role,
    Ticket,
)


logger = logging.getLogger(__name__)


# Only the first tickets of a batch are expanded with their articles
EXPANSION_LIMIT = 10
EXPANSION_WORKERS = 4

CUSTOMER_ROLE_NAMES = ("Customer", "Kunde")


TicketRef = Union[Ticket, int]
EntityT = TypeVar("EntityT", bound=BaseModel)


def split_customer_name(name: str, email: str) -> tuple[str, str]:
    """
    Split a full name into first and last name.

    The first whitespace-separated token is the first name, the remainder
    joined by single spaces is the last name. Without a name the local part
    of the email address becomes the first name.

    Args:
        name: Full name as entered or extracted (may be empty).
        email: Customer email address.

    Returns:
        Tuple of (firstname, lastname).
    """
    source = (name or "").strip() or email.split("@")[0]
    parts = source.split()
    if not parts:
        return "", ""
    return parts[0], " ".join(parts[1:])


def pick_customer_role(roles: list[Role]) -> Optional[Role]:
    """Find the customer role by exact name, then by substring."""
    for role in roles:
        if role.name in CUSTOMER_ROLE_NAMES:
            return role
    for role in roles:
        lowered = role.name.lower()
        if "customer" in lowered or "kunde" in lowered:
            return role
    return None


def parse_entity(model: type[EntityT], data: Any, action: str) -> EntityT:
    """
    Validate one decoded response body as a model.

    Raises:
        RemoteApiError: If the body is empty or does not have the expected shape.
    """
    try:
        return model.model_validate(data)
    except PydanticValidationError as e:
        logger.error(f"Unexpected response during {action}: {e}")
        raise RemoteApiError(f"{action} returned an unexpected response", detail=str(e)) from e


def parse_entities(model: type[EntityT], data: Any, action: str) -> list[EntityT]:
    """Validate a decoded list response; an empty body is an empty list."""
    if data is None:
        return []
    if not isinstance(data, list):
        raise RemoteApiError(
            f"{action} returned an unexpected response",
            detail=f"expected a list, got {type(data).__name__}",
        )
    return [parse_entity(model, raw, action) for raw in data]


class TicketingClient:
    """
    Client for the ticketing system REST API.

    Authenticates with a bearer token and applies the configured timeout to
    every call. Must be used as a context manager, which owns the underlying
    HTTP connection pool.
    """

    def __init__(self, config: TicketingConfig):
        """
        Initialize the ticketing client.

        Args:
            config: Ticketing configuration with URL, token and TLS settings.
        """
        self._config = config
        self._client: Optional[httpx.Client] = None

    def __enter__(self) -> "TicketingClient":
        """Context manager entry."""
        self._client = httpx.Client(
            base_url=self._config.api_base,
            headers={
                "Authorization": f"Bearer {self._config.api_token}",
                "Content-Type": "application/json",
            },
            timeout=self._config.request_timeout,
            verify=self._config.verify_ssl,
        )
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Context manager exit."""
        if self._client:
            self._client.close()
            self._client = None

    def _request(
        self,
        method: str,
        path: str,
        action: str,
        params: Optional[dict[str, Any]] = None,
        json: Optional[dict[str, Any]] = None,
    ) -> Any:
        """
        Execute one API call and decode the JSON response.

        Args:
            method: HTTP method.
            path: Path below the API base, e.g. "/users/search".
            action: Human-readable description used in error summaries.
            params: Optional query parameters.
            json: Optional JSON body.

        Returns:
            Decoded JSON payload, or None for empty responses.

        Raises:
            RemoteTimeoutError: If the call exceeded the timeout.
            RemoteApiError: For upstream 4xx/5xx responses and network errors.
        """
        if not self._client:
            raise RuntimeError("Client must be used within a context manager")

        logger.debug(f"{method} {path} params={params}")

        try:
            response = self._client.request(method, path, params=params, json=json)
            response.raise_for_status()
        except httpx.TimeoutException as e:
            logger.error(f"Timeout during {action}: {e}")
            raise RemoteTimeoutError(f"{action} timed out", str(e)) from e
        except httpx.HTTPStatusError as e:
            logger.error(f"HTTP error during {action}: {e.response.status_code} {e.response.text}")
            raise RemoteApiError(
                f"{action} failed",
                status_code=e.response.status_code,
                detail=e.response.text,
            ) from e
        except httpx.RequestError as e:
            logger.error(f"Request error during {action}: {e}")
            raise RemoteApiError(f"{action} failed", detail=str(e), kind="network") from e

        if not response.content:
            return None

        try:
            return response.json()
        except ValueError as e:
            raise RemoteApiError(
                f"{action} returned invalid JSON",
                status_code=response.status_code,
                detail=str(e),
            ) from e

    # ------------------------------------------------------------------
    # Customers
    # ------------------------------------------------------------------

    def find_customer_by_email(self, email: str) -> Optional[Customer]:
        """
        Look up a customer by email address.

        Searches by query string and keeps only case-insensitive exact email
        matches; the first match is canonical.

        Returns:
            The matching Customer or None.
        """
        data = self._request(
            "GET", "/users/search", "Customer search", params={"query": email}
        )
        for customer in parse_entities(Customer, data, "Customer search"):
            if customer.matches_email(email):
                logger.debug(f"Found customer {customer.id} for {email}")
                return customer
        return None

    def search_customers(self, term: str, limit: int = 10) -> list[CustomerSummary]:
        """
        Search customers by name, email or any other indexed term.

        Users holding an Admin or Agent role are excluded.
        """
        data = self._request(
            "GET",
            "/users/search",
            "Customer search",
            params={"query": term, "limit": limit, "expand": True},
        )
        customers = parse_entities(Customer, data, "Customer search")
        results = [
            CustomerSummary.from_customer(customer)
            for customer in customers
            if not customer.is_staff()
        ][:limit]

        logger.info(f"Found {len(results)} customers for '{term}'")
        return results

    def get_customer(self, customer_id: int) -> Customer:
        data = self._request("GET", f"/users/{customer_id}", "Loading customer")
        return parse_entity(Customer, data, "Loading customer")

    def resolve_customer_role_id(self) -> int:
        """
        Resolve the role id attached to newly created customers.

        Falls back to the configured default role id with a warning when no
        customer role exists.
        """
        data = self._request("GET", "/roles", "Loading roles")
        roles = parse_entities(Role, data, "Loading roles")
        logger.debug(
            "Available roles: " + ", ".join(f"{r.name} (ID: {r.id})" for r in roles)
        )

        role = pick_customer_role(roles)
        if role is None:
            fallback = self._config.fallback_customer_role_id
            logger.warning(f"Customer role not found, using fallback role id {fallback}")
            return fallback
        return role.id

    def create_customer(
        self,
        email: str,
        name: str = "",
        organization_id: Optional[int] = None,
    ) -> Customer:
        """
        Create a customer user.

        Args:
            email: Customer email address.
            name: Full name; split into first and last name.
            organization_id: Organization to link, if any.

        Returns:
            The created Customer.

        Raises:
            RemoteApiError: If the ticketing system rejects the record.
        """
        firstname, lastname = split_customer_name(name, email)
        role_id = self.resolve_customer_role_id()

        data = self._request(
            "POST",
            "/users",
            "Creating customer",
            json={
                "firstname": firstname,
                "lastname": lastname,
                "email": email,
                "organization_id": organization_id,
                "role_ids": [role_id],
            },
        )
        customer = parse_entity(Customer, data, "Creating customer")
        logger.info(f"Created customer {customer.id} ({email})")
        return customer

    def update_customer_organization(self, customer_id: int, organization_id: int) -> Customer:
        """Link an existing customer to an organization."""
        data = self._request(
            "PUT",
            f"/users/{customer_id}",
            "Updating customer organization",
            json={"organization_id": organization_id},
        )
        return parse_entity(Customer, data, "Updating customer organization")

    # ------------------------------------------------------------------
    # Organizations
    # ------------------------------------------------------------------

    def find_organization_by_name(self, name: str) -> Optional[Organization]:
        """Look up an organization by case-insensitive exact name."""
        data = self._request(
            "GET", "/organizations/search", "Organization search", params={"query": name}
        )
        for organization in parse_entities(Organization, data, "Organization search"):
            if organization.matches_name(name):
                return organization
        return None

    def create_organization(self, name: str) -> Organization:
        """
        Create an active organization.

        Raises:
            RemoteApiError: If the ticketing system rejects it, e.g. a
                duplicate created concurrently.
        """
        data = self._request(
            "POST",
            "/organizations",
            "Creating organization",
            json={"name": name, "active": True},
        )
        organization = parse_entity(Organization, data, "Creating organization")
        logger.info(f"Created organization {organization.id} ({name})")
        return organization

    # ------------------------------------------------------------------
    # Groups
    # ------------------------------------------------------------------

    def _fetch_groups(self) -> list[Group]:
        data = self._request("GET", "/groups", "Loading groups")
        return parse_entities(Group, data, "Loading groups")

    def list_groups(self) -> list[Group]:
        """Active groups sorted by name."""
        groups = sorted(
            (group for group in self._fetch_groups() if group.is_active()),
            key=lambda g: g.name.lower(),
        )
        logger.debug("Loaded groups: " + ", ".join(f"{g.name} (ID: {g.id})" for g in groups))
        return groups

    def resolve_group_id(self, name_or_id: Union[str, int, None]) -> int:
        """
        Resolve a group name to its id.

        Integer input is returned unchanged. Names match case-insensitively;
        an unknown name falls back to the first active group, and to the
        configured fallback id when no group is active.
        """
        if isinstance(name_or_id, int) and not isinstance(name_or_id, bool):
            return name_or_id

        name = (name_or_id or "").strip() or self._config.default_group
        groups = self._fetch_groups()

        for group in groups:
            if group.name.lower() == name.lower():
                return group.id

        active = next((group for group in groups if group.is_active()), None)
        if active is not None:
            logger.info(f"Group '{name}' not found, using first active group '{active.name}'")
            return active.id

        fallback = self._config.fallback_group_id
        logger.warning(f"Group '{name}' not found and no active groups, using ID {fallback}")
        return fallback

    # ------------------------------------------------------------------
    # Tickets and articles
    # ------------------------------------------------------------------

    def create_ticket(
        self,
        title: str,
        group_id: Union[int, str],
        customer_id: int,
        article: Article,
    ) -> Ticket:
        """
        Create a ticket with its initial article.

        Email-type articles are sent from the customer's address to the
        configured support address; the subject defaults to the title and
        an unset internal flag defaults to True for notes only.

        Raises:
            RemoteApiError: If the customer cannot be loaded or the ticket
                is rejected.
        """
        resolved_group_id = self.resolve_group_id(group_id)
        customer = self.get_customer(customer_id)

        internal = article.internal if article.internal is not None else not article.is_email()
        article_data = article.model_copy(
            update={
                "subject": article.subject or title,
                "sender": "Customer",
                "internal": internal,
            }
        )
        if article_data.is_email():
            article_data = article_data.model_copy(
                update={"from_": customer.email, "to": self._config.support_email}
            )

        data = self._request(
            "POST",
            "/tickets",
            "Creating ticket",
            json={
                "title": title,
                "group_id": resolved_group_id,
                "customer_id": customer_id,
                "article": article_data.to_payload(),
            },
        )
        ticket = parse_entity(Ticket, data, "Creating ticket")
        logger.info(f"Created ticket {ticket.number or ticket.id} for customer {customer_id}")
        return ticket

    def get_ticket(self, ticket_id: int) -> Ticket:
        data = self._request(
            "GET", f"/tickets/{ticket_id}", "Loading ticket", params={"expand": True}
        )
        return parse_entity(Ticket, data, "Loading ticket")

    def get_ticket_articles(self, ticket_id: int) -> list[Article]:
        data = self._request(
            "GET", f"/ticket_articles/by_ticket/{ticket_id}", "Loading ticket articles"
        )
        return parse_entities(Article, data, "Loading ticket articles")

    def add_article(
        self,
        ticket_id: int,
        body: str,
        article_type: str = ARTICLE_TYPE_NOTE,
        internal: bool = False,
    ) -> Article:
        """Append a reply or note to an existing ticket."""
        data = self._request(
            "POST",
            "/ticket_articles",
            "Adding article",
            json={
                "ticket_id": ticket_id,
                "body": body,
                "type": article_type,
                "internal": internal,
            },
        )
        return parse_entity(Article, data, "Adding article")

    def _search_tickets(self, query: str, limit: int) -> list[Ticket]:
        data = self._request(
            "GET",
            "/tickets/search",
            "Ticket search",
            params={
                "query": query,
                "limit": limit,
                "sort_by": "created_at",
                "order_by": "desc",
                "expand": True,
            },
        )

        # Without expansion the API answers with ids plus an asset index
        if isinstance(data, dict):
            assets = data.get("assets", {}).get("Ticket", {})
            raw_tickets = [
                assets.get(str(ticket_id), {"id": ticket_id})
                for ticket_id in data.get("tickets", [])
            ]
        else:
            raw_tickets = data or []

        tickets = parse_entities(Ticket, raw_tickets, "Ticket search")
        tickets.sort(key=lambda t: t.created_at or "", reverse=True)
        return tickets[:limit]

    def search_tickets_by_customer(self, customer_id: int, limit: int = 50) -> list[Ticket]:
        """Tickets of a customer, newest first."""
        return self._search_tickets(f"customer_id:{customer_id}", limit)

    def search_tickets_by_organization(self, organization_id: int, limit: int = 50) -> list[Ticket]:
        """Tickets of an organization, newest first."""
        return self._search_tickets(f"organization_id:{organization_id}", limit)

    def _expand_ticket(self, ref: TicketRef) -> Ticket:
        ticket_id = ref.id if isinstance(ref, Ticket) else ref
        try:
            ticket = self.get_ticket(ticket_id)
            articles = self.get_ticket_articles(ticket_id)
        except HelpdeskAssistError as e:
            logger.warning(f"Skipping articles of ticket {ticket_id}: {e}")
            return ref if isinstance(ref, Ticket) else Ticket(id=ref)
        return ticket.model_copy(update={"articles": articles})

    def get_tickets_with_articles(self, tickets: list[TicketRef]) -> list[Ticket]:
        """
        Expand tickets with their article threads.

        Only the first EXPANSION_LIMIT tickets are expanded; the rest are
        returned as given, without articles. A failure while expanding one
        ticket leaves that ticket unexpanded instead of failing the batch.

        Args:
            tickets: Ticket objects or ticket ids.

        Returns:
            All tickets in their original order.
        """
        refs = list(tickets)
        head = refs[:EXPANSION_LIMIT]
        tail = [ref if isinstance(ref, Ticket) else Ticket(id=ref) for ref in refs[EXPANSION_LIMIT:]]

        if not head:
            return tail

        with ThreadPoolExecutor(max_workers=min(EXPANSION_WORKERS, len(head))) as pool:
            expanded = list(pool.map(self._expand_ticket, head))

        logger.debug(f"Expanded {len(expanded)} of {len(refs)} tickets with articles")
        return expanded + tail
