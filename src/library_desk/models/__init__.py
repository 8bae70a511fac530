"""
Library Desk models.

Pydantic models returned by every desk operation. They serialize cleanly to
JSON for tool responses and are built from ORM rows with
``model_validate(row, from_attributes=True)``.
"""

from .book import Book, BookCreate
from .fine import FinePolicy, FineSummary, LoanFine
from .loan import Loan, LoanDetail, LoanStatus
from .notification import Notification
from .payment import Payment, PaymentCreate, PaymentDetail, PaymentMethod
from .request import BookRequest, PendingRequest, RequestStatus
from .stats import ActivityItem, DashboardStats, LoanCounts
from .user import STAFF_ROLES, AccessToken, Principal, Role, User

__all__ = [
    "STAFF_ROLES",
    "AccessToken",
    "ActivityItem",
    "Book",
    "BookCreate",
    "BookRequest",
    "DashboardStats",
    "FinePolicy",
    "FineSummary",
    "Loan",
    "LoanCounts",
    "LoanDetail",
    "LoanFine",
    "LoanStatus",
    "Notification",
    "Payment",
    "PaymentCreate",
    "PaymentDetail",
    "PaymentMethod",
    "PendingRequest",
    "Principal",
    "RequestStatus",
    "Role",
    "User",
]
