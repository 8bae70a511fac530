"""
Tests for the MCP tool layer.

These tests call the handlers the way the server does and check:
1. Input validation errors come back as validation_failed responses
2. Expected desk errors keep their kind, status code and message
3. Server faults are reported with a generic message
4. Successful calls return text content plus structured data
"""

import threading
from decimal import Decimal
from unittest.mock import MagicMock

import pytest
from fastmcp import Client

from library_desk.config import DeskConfig
from library_desk.errors import Unavailable
from library_desk.server import _bind, build_server
from library_desk.tools import all_tools
from library_desk.tools.accounts import (
    change_password_handler,
    create_member_handler,
    delete_user_handler,
    login_handler,
    register_member_handler,
)
from library_desk.tools.base import GENERIC_FAULT, TokenInput, run_tool
from library_desk.tools.catalog import add_book_handler, list_books_handler
from library_desk.tools.circulation import issue_book_handler, return_book_handler
from library_desk.tools.dashboard import dashboard_stats_handler
from library_desk.tools.payments import member_fines_handler, record_payment_handler
from library_desk.tools.requests import create_book_request_handler, resolve_book_request_handler


def assert_error(result: dict, kind: str, code: int) -> None:
    assert result["isError"] is True
    assert result["error"] == {"kind": kind, "code": code}


def assert_success(result: dict) -> None:
    assert "isError" not in result or not result["isError"]
    assert result["content"][0]["type"] == "text"


def book_arguments(token: str, **overrides) -> dict:
    arguments = {
        "token": token,
        "title": "The Left Hand of Darkness",
        "author": "Ursula K. Le Guin",
        "isbn": "978-0-441-47812-5",
        "category": "Science Fiction",
        "rack_no": "SF-3",
        "total_copies": 2,
    }
    arguments.update(overrides)
    return arguments


class TestAccountTools:
    async def test_login_returns_a_token(self, desk, seed_users, password):
        result = await login_handler(desk, {"email": "member@example.com", "password": password})

        assert_success(result)
        assert result["data"]["token"]
        assert result["data"]["user"]["role"] == "member"
        assert "password" not in result["data"]["user"]

    async def test_bad_credentials(self, desk, seed_users):
        result = await login_handler(desk, {"email": "member@example.com", "password": "nope"})

        assert_error(result, "unauthenticated", 401)

    async def test_register_rejects_bad_email(self, desk, seed_users):
        result = await register_member_handler(
            desk, {"name": "Someone", "email": "not-an-email", "password": "hunter22"}
        )

        assert_error(result, "validation_failed", 400)
        assert "email" in result["content"][0]["text"]

    async def test_create_then_delete_member(self, desk, tokens):
        created = await create_member_handler(
            desk,
            {
                "token": tokens["librarian"],
                "name": "Walk In",
                "email": "walkin@example.com",
                "password": "hunter22",
            },
        )
        user_id = created["data"]["user"]["id"]
        deleted = await delete_user_handler(desk, {"token": tokens["admin"], "user_id": user_id})

        assert_success(created)
        assert created["data"]["user"]["role"] == "member"
        assert_success(deleted)
        assert "Walk In" in deleted["content"][0]["text"]

    async def test_delete_user_with_history(self, desk, tokens, seed_users, overdue_loan):
        overdue_loan()

        result = await delete_user_handler(
            desk, {"token": tokens["admin"], "user_id": seed_users["member"].id}
        )

        assert_error(result, "user_in_use", 409)

    async def test_change_password(self, desk, tokens, seed_users):
        member_id = seed_users["member"].id

        changed = await change_password_handler(
            desk, {"token": tokens["librarian"], "user_id": member_id, "new_password": "brand-new"}
        )
        refused = await change_password_handler(
            desk,
            {
                "token": tokens["librarian"],
                "user_id": seed_users["admin"].id,
                "new_password": "brand-new",
            },
        )
        too_short = await change_password_handler(
            desk, {"token": tokens["member"], "user_id": member_id, "new_password": "123"}
        )

        assert_success(changed)
        assert "password" not in changed["data"]["user"]
        assert_error(refused, "forbidden", 403)
        assert_error(too_short, "validation_failed", 400)


class TestCatalogTools:
    async def test_add_and_list(self, desk, tokens):
        added = await add_book_handler(desk, book_arguments(tokens["librarian"]))
        listed = await list_books_handler(desk, {"token": tokens["member"]})

        assert_success(added)
        assert added["data"]["book"]["isbn"] == "9780441478125"
        assert added["data"]["book"]["available_copies"] == 2
        assert [b["title"] for b in listed["data"]["books"]] == ["The Left Hand of Darkness"]

    async def test_missing_token(self, desk, seed_users):
        arguments = book_arguments("x")
        del arguments["token"]

        result = await add_book_handler(desk, arguments)

        assert_error(result, "validation_failed", 400)

    async def test_member_is_forbidden(self, desk, tokens):
        result = await add_book_handler(desk, book_arguments(tokens["member"]))

        assert_error(result, "forbidden", 403)
        assert "member" in result["content"][0]["text"]

    async def test_negative_copies(self, desk, tokens):
        result = await add_book_handler(desk, book_arguments(tokens["librarian"], total_copies=-1))

        assert_error(result, "validation_failed", 400)


class TestRequestTools:
    async def test_create_and_approve(self, desk, tokens, add_book):
        book = add_book()

        created = await create_book_request_handler(
            desk, {"token": tokens["member"], "book_id": book.id}
        )
        request_id = created["data"]["request"]["id"]
        resolved = await resolve_book_request_handler(
            desk,
            {"token": tokens["librarian"], "request_id": request_id, "decision": "approved"},
        )

        assert_success(created)
        assert created["data"]["request"]["status"] == "pending"
        assert resolved["data"]["request"]["status"] == "approved"

    async def test_pending_is_not_a_decision(self, desk, tokens, add_book):
        book = add_book()
        created = await create_book_request_handler(
            desk, {"token": tokens["member"], "book_id": book.id}
        )

        result = await resolve_book_request_handler(
            desk,
            {
                "token": tokens["librarian"],
                "request_id": created["data"]["request"]["id"],
                "decision": "pending",
            },
        )

        assert_error(result, "validation_failed", 400)

    async def test_out_of_stock(self, desk, tokens, seed_users, add_book):
        book = add_book(copies=1)
        desk.issue_book(tokens["librarian"], book.id, seed_users["other_member"].id)

        result = await create_book_request_handler(
            desk, {"token": tokens["member"], "book_id": book.id}
        )

        assert_error(result, "out_of_stock", 409)


class TestCirculationTools:
    async def test_issue_and_return(self, desk, tokens, seed_users, add_book):
        book = add_book()

        issued = await issue_book_handler(
            desk,
            {"token": tokens["librarian"], "book_id": book.id, "member_id": seed_users["member"].id},
        )
        returned = await return_book_handler(
            desk, {"token": tokens["member"], "loan_id": issued["data"]["loan"]["id"]}
        )

        assert_success(issued)
        assert "Due date" in issued["content"][0]["text"]
        assert returned["data"]["loan"]["status"] == "returned"

    async def test_past_due_date(self, desk, tokens, seed_users, add_book):
        book = add_book()

        result = await issue_book_handler(
            desk,
            {
                "token": tokens["librarian"],
                "book_id": book.id,
                "member_id": seed_users["member"].id,
                "due_date": "2000-01-01",
            },
        )

        assert_error(result, "validation_failed", 400)

    async def test_unknown_loan(self, desk, tokens):
        result = await return_book_handler(desk, {"token": tokens["librarian"], "loan_id": 999})

        assert_error(result, "not_found", 404)


class TestPaymentTools:
    async def test_fines_then_payment(self, desk, tokens, seed_users, overdue_loan):
        member_id = seed_users["member"].id
        loan = overdue_loan(days_late=2)

        fines = await member_fines_handler(desk, {"token": tokens["member"], "member_id": member_id})
        paid = await record_payment_handler(
            desk,
            {
                "token": tokens["member"],
                "member_id": member_id,
                "issued_book_id": loan.id,
                "amount": "0.50",
                "payment_method": "online",
            },
        )
        again = await record_payment_handler(
            desk,
            {
                "token": tokens["member"],
                "member_id": member_id,
                "issued_book_id": loan.id,
                "amount": "0.50",
            },
        )

        assert Decimal(fines["data"]["fines"]["total"]) == Decimal("0.50")
        assert "$0.50" in fines["content"][0]["text"]
        assert_success(paid)
        assert paid["data"]["payment"]["payment_method"] == "online"
        assert_error(again, "already_paid", 409)

    async def test_zero_amount(self, desk, tokens, seed_users, overdue_loan):
        loan = overdue_loan()

        result = await record_payment_handler(
            desk,
            {
                "token": tokens["librarian"],
                "member_id": seed_users["member"].id,
                "issued_book_id": loan.id,
                "amount": "0",
            },
        )

        assert_error(result, "validation_failed", 400)


class TestFaultHandling:
    async def test_expired_or_unknown_token(self, desk, seed_users):
        result = await dashboard_stats_handler(desk, {"token": "stale"})

        assert_error(result, "invalid_token", 401)

    async def test_server_fault_hides_details(self):
        broken = MagicMock()
        broken.list_books.side_effect = Unavailable("disk I/O error at /var/lib/library.db")

        result = await list_books_handler(broken, {"token": "t"})

        assert_error(result, "unavailable", 503)
        assert result["content"][0]["text"] == GENERIC_FAULT

    async def test_unexpected_exception(self):
        broken = MagicMock()
        broken.list_books.side_effect = RuntimeError("boom")

        result = await list_books_handler(broken, {"token": "t"})

        assert_error(result, "internal_error", 500)
        assert "boom" not in result["content"][0]["text"]

    async def test_desk_calls_run_off_the_event_loop(self):
        seen = []

        def action(params: TokenInput) -> dict:
            seen.append(threading.get_ident())
            return {"content": [{"type": "text", "text": params.token}]}

        result = await run_tool("whoami", TokenInput, {"token": "t"}, action)

        assert_success(result)
        assert seen and seen[0] != threading.get_ident()


class TestServer:
    def test_every_tool_has_a_unique_name(self):
        names = [tool["name"] for tool in all_tools]

        assert len(names) == len(set(names)) == 26
        for tool in all_tools:
            assert tool["description"]
            assert tool["inputSchema"]["type"] == "object"

    async def test_bind_passes_the_desk(self, desk, seed_users, password):
        login = _bind(login_handler, desk)

        result = await login({"email": "admin@example.com", "password": password})

        assert login.__name__ == "login"
        assert result["data"]["user"]["role"] == "admin"

    @pytest.mark.parametrize("tool_name", ["login", "record_payment", "dashboard_stats"])
    async def test_build_server_registers_tools(self, desk, test_database_url, tool_name):
        mcp = build_server(DeskConfig(database_url=test_database_url), desk)

        async with Client(mcp) as client:
            tools = await client.list_tools()

        assert tool_name in {tool.name for tool in tools}
