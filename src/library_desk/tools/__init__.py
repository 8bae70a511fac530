"""
MCP tools for the Library Desk server.

Each tool is a dictionary with ``name``, ``description``, ``inputSchema`` and
an async ``handler(desk, arguments)``. The server binds every handler to its
``LibraryDesk`` at registration time.
"""

from .accounts import (
    change_password,
    create_member,
    create_user,
    delete_user,
    list_users,
    login,
    logout,
    register_member,
)
from .catalog import add_book, list_books
from .circulation import issue_book, list_loans, loan_counts, my_books, return_book
from .dashboard import dashboard_stats, mark_notification_read, notifications
from .payments import list_payments, member_fines, member_payments, record_payment
from .requests import create_book_request, list_pending_requests, my_requests, resolve_book_request

all_tools = [
    register_member,
    login,
    logout,
    create_user,
    create_member,
    delete_user,
    change_password,
    list_users,
    add_book,
    list_books,
    create_book_request,
    list_pending_requests,
    resolve_book_request,
    my_requests,
    issue_book,
    return_book,
    list_loans,
    my_books,
    loan_counts,
    member_fines,
    record_payment,
    list_payments,
    member_payments,
    dashboard_stats,
    notifications,
    mark_notification_read,
]

__all__ = [
    "add_book",
    "all_tools",
    "change_password",
    "create_book_request",
    "create_member",
    "create_user",
    "dashboard_stats",
    "delete_user",
    "issue_book",
    "list_books",
    "list_loans",
    "list_payments",
    "list_pending_requests",
    "list_users",
    "loan_counts",
    "login",
    "logout",
    "mark_notification_read",
    "member_fines",
    "member_payments",
    "my_books",
    "my_requests",
    "notifications",
    "record_payment",
    "register_member",
    "resolve_book_request",
    "return_book",
]
