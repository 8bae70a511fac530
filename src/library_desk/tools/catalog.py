"""Catalog Tools - add and browse books."""

from typing import Any

from pydantic import Field

from ..desk import LibraryDesk
from ..models.book import BookCreate
from .base import TokenInput, dump, format_success_response, run_tool


class AddBookInput(TokenInput, BookCreate):
    pass


async def add_book_handler(desk: LibraryDesk, arguments: dict[str, Any]) -> dict:
    def action(params: AddBookInput) -> dict[str, Any]:
        book = desk.add_book(params.token, BookCreate(**params.model_dump(exclude={"token"})))
        return format_success_response(
            f"Added '{book.title}' by {book.author} with {book.total_copies} copies "
            f"(rack {book.rack_no})",
            {"book": dump(book)},
        )

    return await run_tool("add_book", AddBookInput, arguments, action)


class ListBooksInput(TokenInput):
    available_only: bool = Field(
        default=False, description="Only list books with at least one copy on the shelf"
    )


async def list_books_handler(desk: LibraryDesk, arguments: dict[str, Any]) -> dict:
    def action(params: ListBooksInput) -> dict[str, Any]:
        books = desk.list_books(params.token, params.available_only)
        lines = [
            f"- #{b.id} '{b.title}' by {b.author}: {b.available_copies}/{b.total_copies} available"
            for b in books
        ]
        message = "\n".join([f"Found {len(books)} book(s)", *lines])
        return format_success_response(message, {"books": dump(books)})

    return await run_tool("list_books", ListBooksInput, arguments, action)


add_book = {
    "name": "add_book",
    "description": (
        "Add a book to the catalog with all copies available (staff only). "
        "ISBNs are unique."
    ),
    "inputSchema": AddBookInput.model_json_schema(),
    "handler": add_book_handler,
}

list_books = {
    "name": "list_books",
    "description": "List cataloged books ordered by title, optionally only available ones.",
    "inputSchema": ListBooksInput.model_json_schema(),
    "handler": list_books_handler,
}
