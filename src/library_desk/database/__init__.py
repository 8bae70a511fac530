"""
Database package for the Library Desk backend.

This package provides:
- SQLAlchemy schema definitions (schema.py)
- Session management and the injected datastore handle (session.py)
- The circulation components, one per concern:
  InventoryLedger, RequestWorkflow, LoanManager, FineSettlement
- The notification sink and user lookups they share
"""

from .fine_settlement import FineSettlement
from .inventory import InventoryLedger
from .loan_manager import LoanManager
from .notifications import NotificationSink
from .repository import BaseRepository
from .request_workflow import RequestWorkflow
from .schema import AuthToken, Base, Book, BookRequest, IssuedBook, Notification, Payment, User
from .session import DatabaseManager, safe_flush, safe_query
from .user_repository import UserRepository

__all__ = [
    "AuthToken",
    "Base",
    "BaseRepository",
    "Book",
    "BookRequest",
    "DatabaseManager",
    "FineSettlement",
    "InventoryLedger",
    "IssuedBook",
    "LoanManager",
    "Notification",
    "NotificationSink",
    "Payment",
    "RequestWorkflow",
    "User",
    "UserRepository",
    "safe_flush",
    "safe_query",
]
