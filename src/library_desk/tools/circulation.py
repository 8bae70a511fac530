"""Circulation Tools - Issue and Return

Tools:
- issue_book: Issue one copy of a book to a member
- return_book: Close a loan and put the copy back on the shelf
- list_loans: Every loan with its current status (staff)
- my_books: A member's own loans
- loan_counts: Borrowed and overdue totals (staff)
"""

from datetime import date, datetime
from typing import Any

from pydantic import Field, field_validator

from ..desk import LibraryDesk
from .base import TokenInput, dump, format_success_response, run_tool


class IssueBookInput(TokenInput):
    book_id: int = Field(..., ge=1, description="ID of the book to issue")
    member_id: int = Field(..., ge=1, description="ID of the member receiving the book")
    due_date: date | None = Field(
        default=None,
        description="Optional due date. If not provided, the standard loan period applies",
        examples=["2024-02-15"],
    )

    @field_validator("due_date")
    @classmethod
    def validate_due_date(cls, v: date | None) -> date | None:
        """Ensure due date is not in the past."""
        if v is not None and v < datetime.now().date():
            raise ValueError("Due date cannot be in the past")
        return v


async def issue_book_handler(desk: LibraryDesk, arguments: dict[str, Any]) -> dict:
    def action(params: IssueBookInput) -> dict[str, Any]:
        loan = desk.issue_book(params.token, params.book_id, params.member_id, params.due_date)
        return format_success_response(
            f"Issued book {loan.book_id} to member {loan.member_id}. "
            f"Due date: {loan.due_date.strftime('%B %d, %Y')}",
            {"loan": dump(loan)},
        )

    return await run_tool("issue_book", IssueBookInput, arguments, action)


class ReturnBookInput(TokenInput):
    loan_id: int = Field(..., ge=1, description="ID of the open loan to close")


async def return_book_handler(desk: LibraryDesk, arguments: dict[str, Any]) -> dict:
    def action(params: ReturnBookInput) -> dict[str, Any]:
        loan = desk.return_book(params.token, params.loan_id)
        message = f"Loan {loan.id} returned"
        if loan.days_late():
            message += f" ({loan.days_late()} day(s) late)"
        return format_success_response(message, {"loan": dump(loan)})

    return await run_tool("return_book", ReturnBookInput, arguments, action)


async def list_loans_handler(desk: LibraryDesk, arguments: dict[str, Any]) -> dict:
    def action(params: TokenInput) -> dict[str, Any]:
        loans = desk.list_loans(params.token)
        return format_success_response(f"{len(loans)} loan(s) on record", {"loans": dump(loans)})

    return await run_tool("list_loans", TokenInput, arguments, action)


async def my_books_handler(desk: LibraryDesk, arguments: dict[str, Any]) -> dict:
    def action(params: TokenInput) -> dict[str, Any]:
        loans = desk.my_books(params.token)
        lines = [
            f"- '{loan.title}' due {loan.due_date.isoformat()} ({loan.current_status.value})"
            for loan in loans
        ]
        message = "\n".join([f"You have {len(loans)} loan(s)", *lines])
        return format_success_response(message, {"loans": dump(loans)})

    return await run_tool("my_books", TokenInput, arguments, action)


async def loan_counts_handler(desk: LibraryDesk, arguments: dict[str, Any]) -> dict:
    def action(params: TokenInput) -> dict[str, Any]:
        counts = desk.loan_counts(params.token)
        return format_success_response(
            f"{counts.borrowed} book(s) borrowed, {counts.overdue} overdue",
            {"counts": dump(counts)},
        )

    return await run_tool("loan_counts", TokenInput, arguments, action)


issue_book = {
    "name": "issue_book",
    "description": (
        "Issue a book to a member (staff only). Takes one copy off the shelf and creates "
        "a loan. Fails if no copy is available or the member already holds the book."
    ),
    "inputSchema": IssueBookInput.model_json_schema(),
    "handler": issue_book_handler,
}

return_book = {
    "name": "return_book",
    "description": (
        "Return a book. Closes the loan and puts the copy back on the shelf. "
        "A loan can only be returned once."
    ),
    "inputSchema": ReturnBookInput.model_json_schema(),
    "handler": return_book_handler,
}

list_loans = {
    "name": "list_loans",
    "description": "List every loan with book, member and current status (staff only).",
    "inputSchema": TokenInput.model_json_schema(),
    "handler": list_loans_handler,
}

my_books = {
    "name": "my_books",
    "description": "List your own loans with due dates and status (members only).",
    "inputSchema": TokenInput.model_json_schema(),
    "handler": my_books_handler,
}

loan_counts = {
    "name": "loan_counts",
    "description": "Count borrowed and overdue books (staff only).",
    "inputSchema": TokenInput.model_json_schema(),
    "handler": loan_counts_handler,
}
