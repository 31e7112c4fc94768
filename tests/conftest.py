"""Shared fixtures: an in-memory stand-in for the Zammad REST API."""

import re
from typing import Any, Optional

import httpx
import pytest

from helpdesk_assist.config import TicketingConfig
from helpdesk_assist.ticketing import TicketingClient


API_BASE = "https://zammad.test/api/v1"


class FakeZammad:
    """
    Minimal stateful Zammad used in place of the HTTP connection.

    Implements the subset of endpoints the client talks to and records
    every call. Failures and canned responses are injected per
    (method, path regex).
    """

    def __init__(self):
        self.users: list[dict] = []
        self.organizations: list[dict] = []
        self.roles: list[dict] = [
            {"id": 1, "name": "Admin"},
            {"id": 2, "name": "Agent"},
            {"id": 3, "name": "Customer"},
        ]
        self.groups: list[dict] = [
            {"id": 1, "name": "Users", "active": True},
            {"id": 2, "name": "Support", "active": True},
        ]
        self.tickets: list[dict] = []
        self.articles: list[dict] = []
        self.calls: list[tuple[str, str, Optional[dict], Optional[dict]]] = []
        self.overrides: list[tuple[str, re.Pattern, int, Any]] = []
        self._next_id = 100

    # -- setup helpers -------------------------------------------------

    def new_id(self) -> int:
        self._next_id += 1
        return self._next_id

    def add_user(self, email: str, firstname: str = "", lastname: str = "", **extra) -> dict:
        user = {
            "id": self.new_id(),
            "email": email,
            "firstname": firstname,
            "lastname": lastname,
            "organization_id": None,
        }
        user.update(extra)
        self.users.append(user)
        return user

    def add_organization(self, name: str) -> dict:
        organization = {"id": self.new_id(), "name": name, "active": True}
        self.organizations.append(organization)
        return organization

    def add_ticket(self, title: str, created_at: str, **extra) -> dict:
        ticket = {
            "id": self.new_id(),
            "number": str(31000 + len(self.tickets)),
            "title": title,
            "created_at": created_at,
        }
        ticket.update(extra)
        self.tickets.append(ticket)
        return ticket

    def fail(self, method: str, path_pattern: str, status_code: int = 422) -> None:
        self.respond(method, path_pattern, status_code, {"error": "rejected"})

    def respond(self, method: str, path_pattern: str, status_code: int = 200, body: Any = None) -> None:
        """Answer matching calls with a fixed response; no body means an empty one."""
        self.overrides.append((method, re.compile(path_pattern), status_code, body))

    def count_calls(self, method: str, path: str) -> int:
        return sum(1 for m, p, _, _ in self.calls if m == method and p == path)

    # -- transport -----------------------------------------------------

    def close(self) -> None:
        pass

    def request(self, method: str, path: str, params: Optional[dict] = None, json: Any = None):
        self.calls.append((method, path, params, json))
        request = httpx.Request(method, API_BASE + path)

        for override_method, pattern, status_code, body in self.overrides:
            if override_method == method and pattern.fullmatch(path):
                if body is None:
                    return httpx.Response(status_code, request=request)
                return httpx.Response(status_code, json=body, request=request)

        data, status_code = self._route(method, path, params or {}, json or {})
        if data is None:
            return httpx.Response(status_code, request=request)
        return httpx.Response(status_code, json=data, request=request)

    def _find(self, items: list[dict], item_id: int) -> Optional[dict]:
        return next((item for item in items if item["id"] == item_id), None)

    def _route(self, method: str, path: str, params: dict, body: dict):
        query = str(params.get("query", "")).lower()

        if method == "GET" and path == "/users/search":
            return [
                u for u in self.users
                if query in (u.get("email") or "").lower()
                or query in f"{u.get('firstname', '')} {u.get('lastname', '')}".lower()
            ], 200
        if method == "POST" and path == "/users":
            user = dict(body, id=self.new_id())
            self.users.append(user)
            return user, 201
        match = re.fullmatch(r"/users/(\d+)", path)
        if match:
            user = self._find(self.users, int(match.group(1)))
            if user is None:
                return {"error": "not found"}, 404
            if method == "PUT":
                user.update(body)
            return user, 200

        if method == "GET" and path == "/organizations/search":
            return [o for o in self.organizations if query in o["name"].lower()], 200
        if method == "POST" and path == "/organizations":
            organization = dict(body, id=self.new_id())
            self.organizations.append(organization)
            return organization, 201

        if method == "GET" and path == "/roles":
            return self.roles, 200
        if method == "GET" and path == "/groups":
            return self.groups, 200

        if method == "GET" and path == "/tickets/search":
            field, _, value = query.partition(":")
            found = [t for t in self.tickets if str(t.get(field)) == value]
            found.sort(key=lambda t: t["created_at"], reverse=True)
            return found[: int(params.get("limit", 50))], 200
        if method == "POST" and path == "/tickets":
            ticket = {
                "id": self.new_id(),
                "number": str(31000 + len(self.tickets)),
                "title": body["title"],
                "group_id": body["group_id"],
                "customer_id": body["customer_id"],
                "created_at": "2026-10-19T09:00:00.000Z",
            }
            self.tickets.append(ticket)
            self.articles.append(dict(body["article"], id=self.new_id(), ticket_id=ticket["id"]))
            return ticket, 201
        match = re.fullmatch(r"/tickets/(\d+)", path)
        if match:
            ticket = self._find(self.tickets, int(match.group(1)))
            return (ticket, 200) if ticket else ({"error": "not found"}, 404)

        match = re.fullmatch(r"/ticket_articles/by_ticket/(\d+)", path)
        if match:
            ticket_id = int(match.group(1))
            return [a for a in self.articles if a["ticket_id"] == ticket_id], 200
        if method == "POST" and path == "/ticket_articles":
            article = dict(body, id=self.new_id())
            self.articles.append(article)
            return article, 201

        return {"error": f"no route for {method} {path}"}, 404


@pytest.fixture
def ticketing_config() -> TicketingConfig:
    """Create test ticketing config."""
    return TicketingConfig(
        base_url="https://zammad.test",
        api_token="test-token",
        verify_ssl=False,
        request_timeout=5,
        support_email="support@example.com",
        default_group="Support",
        fallback_group_id=1,
        fallback_customer_role_id=3,
    )


@pytest.fixture
def zammad() -> FakeZammad:
    return FakeZammad()


@pytest.fixture
def client(ticketing_config: TicketingConfig, zammad: FakeZammad):
    """Open TicketingClient talking to the fake API."""
    with TicketingClient(ticketing_config) as ticketing_client:
        ticketing_client._client = zammad
        yield ticketing_client
