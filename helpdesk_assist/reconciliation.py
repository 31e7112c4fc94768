"""
Customer, organization and ticket reconciliation for Helpdesk Assist.

Runs the find-or-create workflow that must complete, in order, before a
ticket can be created consistently:
1. Resolve or create the organization (optional)
2. Resolve or create the customer, relinking it to the organization
3. Resolve the target group
4. Create the ticket with its initial article

Nothing is rolled back when a later step fails; the lookups make a retry
with the same input safe.
"""

import logging
from typing import Optional

from .errors import RemoteApiError, ValidationError
from .models import (
    ARTICLE_TYPE_EMAIL,
    ARTICLE_TYPE_NOTE,
    Article,
    Customer,
    Organization,
    ReconciliationResult,
    TicketInput,
)
from .ticketing import TicketingClient


logger = logging.getLogger(__name__)


class ReconciliationService:
    """
    Find-or-create-then-link workflow producing a single new ticket.

    Holds no state between calls; everything is looked up fresh in the
    ticketing system on every run.
    """

    def __init__(self, client: TicketingClient):
        """
        Initialize the service.

        Args:
            client: An open TicketingClient.
        """
        self._client = client

    def find_or_create_organization(self, name: str) -> Organization:
        """
        Return the organization with this name, creating it when absent.

        A rejected creation is retried once as a lookup, so a record created
        concurrently by another caller is reused instead of failing.
        """
        existing = self._client.find_organization_by_name(name)
        if existing is not None:
            logger.debug(f"Using existing organization {existing.id} ({existing.name})")
            return existing

        try:
            return self._client.create_organization(name)
        except RemoteApiError:
            created_meanwhile = self._client.find_organization_by_name(name)
            if created_meanwhile is None:
                raise
            logger.warning(f"Organization '{name}' was created concurrently, reusing {created_meanwhile.id}")
            return created_meanwhile

    def find_or_create_customer(
        self,
        email: str,
        name: str = "",
        organization_id: Optional[int] = None,
    ) -> Customer:
        """
        Return the customer with this email, creating it when absent.

        An existing customer linked to a different organization is relinked
        to organization_id. A failed relink is logged and the existing record
        is returned unchanged.
        """
        existing = self._client.find_customer_by_email(email)
        if existing is not None:
            if organization_id and existing.organization_id != organization_id:
                return self._relink_customer(existing, organization_id)
            return existing

        try:
            return self._client.create_customer(email, name, organization_id)
        except RemoteApiError:
            created_meanwhile = self._client.find_customer_by_email(email)
            if created_meanwhile is None:
                raise
            logger.warning(f"Customer {email} was created concurrently, reusing {created_meanwhile.id}")
            return created_meanwhile

    def _relink_customer(self, customer: Customer, organization_id: int) -> Customer:
        try:
            updated = self._client.update_customer_organization(customer.id, organization_id)
        except RemoteApiError as e:
            logger.warning(f"Could not link customer {customer.id} to organization {organization_id}: {e}")
            return customer
        logger.info(f"Linked customer {customer.id} to organization {organization_id}")
        return updated

    @staticmethod
    def validate_input(ticket_input: TicketInput) -> None:
        """
        Check required fields.

        Raises:
            ValidationError: If customer email or ticket title is missing.
        """
        missing = []
        if not ticket_input.customer_email:
            missing.append("customer email")
        if not ticket_input.ticket_title:
            missing.append("ticket title")
        if missing:
            raise ValidationError(
                "Customer email and ticket title are required",
                "missing: " + ", ".join(missing),
            )

    def reconcile_and_create_ticket(self, ticket_input: TicketInput) -> ReconciliationResult:
        """
        Resolve organization and customer, then create the ticket.

        Args:
            ticket_input: Extracted and reviewed ticket fields.

        Returns:
            ReconciliationResult with the created ticket, the resolved
            customer and the organization when one was given.

        Raises:
            ValidationError: If required input is missing.
            RemoteApiError: If a required step fails upstream.
        """
        self.validate_input(ticket_input)

        kind = "email" if ticket_input.create_as_email else "note"
        logger.info(f"Reconciling customer {ticket_input.customer_email} and creating ticket as {kind}")

        organization = None
        if ticket_input.organization:
            organization = self.find_or_create_organization(ticket_input.organization)
        organization_id = organization.id if organization else None

        customer = self.find_or_create_customer(
            ticket_input.customer_email,
            ticket_input.customer_name,
            organization_id,
        )

        group_id = self._client.resolve_group_id(ticket_input.group)

        article = Article(
            subject=ticket_input.ticket_title,
            body=ticket_input.ticket_body or ticket_input.original_text,
            type=ARTICLE_TYPE_EMAIL if ticket_input.create_as_email else ARTICLE_TYPE_NOTE,
            internal=not ticket_input.create_as_email,
        )
        ticket = self._client.create_ticket(
            ticket_input.ticket_title,
            group_id,
            customer.id,
            article,
        )

        return ReconciliationResult(
            ticket=ticket,
            customer=customer,
            organization=organization,
        )
