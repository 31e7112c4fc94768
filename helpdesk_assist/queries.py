"""
Read-only ticket overviews for customers and organizations.

Unlike the reconciliation workflow this path never creates anything: an
unknown customer or organization is reported as NotFoundError.
"""

import logging

from .errors import NotFoundError
from .models import TicketOverview
from .ticketing import TicketingClient


logger = logging.getLogger(__name__)


DEFAULT_TICKET_LIMIT = 50


class TicketQueryService:
    """Aggregates a customer's or organization's tickets with their threads."""

    def __init__(self, client: TicketingClient):
        self._client = client

    def get_tickets_for_customer(
        self,
        email: str,
        limit: int = DEFAULT_TICKET_LIMIT,
        expand: bool = True,
    ) -> TicketOverview:
        """
        Load the tickets of the customer with this email, newest first.

        Args:
            email: Customer email (case-insensitive exact match).
            limit: Maximum number of tickets to search.
            expand: Attach articles to the first tickets.

        Raises:
            NotFoundError: If no customer has this email.
        """
        customer = self._client.find_customer_by_email(email)
        if customer is None:
            raise NotFoundError(f"Customer with email {email} not found")

        tickets = self._client.search_tickets_by_customer(customer.id, limit)
        logger.info(f"Found {len(tickets)} tickets for customer {email}")

        if expand and tickets:
            tickets = self._client.get_tickets_with_articles(tickets)

        return TicketOverview(
            scope="customer",
            name=email,
            entity_id=customer.id,
            ticket_count=len(tickets),
            tickets=tickets,
        )

    def get_tickets_for_organization(
        self,
        name: str,
        limit: int = DEFAULT_TICKET_LIMIT,
        expand: bool = True,
    ) -> TicketOverview:
        """
        Load the tickets of the organization with this name, newest first.

        Raises:
            NotFoundError: If no organization has this name.
        """
        organization = self._client.find_organization_by_name(name)
        if organization is None:
            raise NotFoundError(f"Organization {name} not found")

        tickets = self._client.search_tickets_by_organization(organization.id, limit)
        logger.info(f"Found {len(tickets)} tickets for organization {name}")

        if expand and tickets:
            tickets = self._client.get_tickets_with_articles(tickets)

        return TicketOverview(
            scope="organization",
            name=name,
            entity_id=organization.id,
            ticket_count=len(tickets),
            tickets=tickets,
        )
