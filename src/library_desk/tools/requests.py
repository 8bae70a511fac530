"""Request Tools - Book Request Workflow

Members ask for books; librarians and admins approve or reject the requests.

Tools:
- create_book_request: A member requests a book
- list_pending_requests: Staff view of requests awaiting a decision
- resolve_book_request: Approve or reject a pending request
- my_requests: A member's own requests
"""

from typing import Any

from pydantic import Field

from ..desk import LibraryDesk
from ..models.request import RequestStatus
from .base import TokenInput, dump, format_success_response, run_tool


class CreateRequestInput(TokenInput):
    book_id: int = Field(..., ge=1, description="ID of the requested book", examples=[1, 42])


async def create_book_request_handler(desk: LibraryDesk, arguments: dict[str, Any]) -> dict:
    def action(params: CreateRequestInput) -> dict[str, Any]:
        request = desk.create_request(params.token, params.book_id)
        return format_success_response(
            f"Request {request.id} for book {request.book_id} submitted and awaiting approval",
            {"request": dump(request)},
        )

    return await run_tool("create_book_request", CreateRequestInput, arguments, action)


async def list_pending_requests_handler(desk: LibraryDesk, arguments: dict[str, Any]) -> dict:
    def action(params: TokenInput) -> dict[str, Any]:
        pending = desk.list_pending_requests(params.token)
        if pending:
            lines = [
                f"- #{r.id}: '{r.title}' requested by {r.member_name} "
                f"on {r.request_date.strftime('%Y-%m-%d')}"
                for r in pending
            ]
            message = f"{len(pending)} pending request(s):\n" + "\n".join(lines)
        else:
            message = "No pending requests"
        return format_success_response(message, {"requests": dump(pending)})

    return await run_tool("list_pending_requests", TokenInput, arguments, action)


class ResolveRequestInput(TokenInput):
    request_id: int = Field(..., ge=1, description="ID of the pending request")
    decision: RequestStatus = Field(
        ...,
        description="Either 'approved' or 'rejected'",
        examples=["approved", "rejected"],
    )


async def resolve_book_request_handler(desk: LibraryDesk, arguments: dict[str, Any]) -> dict:
    def action(params: ResolveRequestInput) -> dict[str, Any]:
        request = desk.resolve_request(params.token, params.request_id, params.decision)
        return format_success_response(
            f"Request {request.id} {request.status.value}",
            {"request": dump(request)},
        )

    return await run_tool("resolve_book_request", ResolveRequestInput, arguments, action)


async def my_requests_handler(desk: LibraryDesk, arguments: dict[str, Any]) -> dict:
    def action(params: TokenInput) -> dict[str, Any]:
        requests = desk.my_requests(params.token)
        return format_success_response(
            f"You have {len(requests)} request(s)", {"requests": dump(requests)}
        )

    return await run_tool("my_requests", TokenInput, arguments, action)


create_book_request = {
    "name": "create_book_request",
    "description": (
        "Request a book as a member. Fails if no copy is available, if you already have "
        "a pending request for the book, or if you currently hold it."
    ),
    "inputSchema": CreateRequestInput.model_json_schema(),
    "handler": create_book_request_handler,
}

list_pending_requests = {
    "name": "list_pending_requests",
    "description": "List pending book requests with book and member details (staff only).",
    "inputSchema": TokenInput.model_json_schema(),
    "handler": list_pending_requests_handler,
}

resolve_book_request = {
    "name": "resolve_book_request",
    "description": (
        "Approve or reject a pending book request (staff only). The member is notified. "
        "Approval does not issue the book; use issue_book for that."
    ),
    "inputSchema": ResolveRequestInput.model_json_schema(),
    "handler": resolve_book_request_handler,
}

my_requests = {
    "name": "my_requests",
    "description": "List your own book requests, newest first (members only).",
    "inputSchema": TokenInput.model_json_schema(),
    "handler": my_requests_handler,
}
