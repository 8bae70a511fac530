"""
Loan models.

A loan is one copy of a book issued to a member (an ``issued_books`` row).
Its stored status is ``issued`` until it is returned. ``overdue`` is never
written: it is derived whenever a loan is read, from the due date and today.
"""

from datetime import date, datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class LoanStatus(str, Enum):
    ISSUED = "issued"
    RETURNED = "returned"
    OVERDUE = "overdue"


class Loan(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    book_id: int
    member_id: int
    issue_date: datetime
    due_date: date
    return_date: datetime | None = None
    status: LoanStatus = LoanStatus.ISSUED
    fine_paid: bool = False
    payment_date: datetime | None = None

    @property
    def is_open(self) -> bool:
        return self.return_date is None

    def effective_status(self, today: date | None = None) -> LoanStatus:
        """Classify the loan as of ``today``."""
        if self.return_date is not None:
            return LoanStatus.RETURNED
        today = today or date.today()
        if self.due_date < today:
            return LoanStatus.OVERDUE
        return LoanStatus.ISSUED

    def is_overdue(self, today: date | None = None) -> bool:
        return self.effective_status(today) is LoanStatus.OVERDUE

    def days_late(self, today: date | None = None) -> int:
        """Days between the due date and the return date (or today while open)."""
        end = self.return_date.date() if self.return_date else (today or date.today())
        return max(0, (end - self.due_date).days)


class LoanDetail(Loan):
    """A loan joined with book and member display fields."""

    title: str
    author: str
    isbn: str
    category: str
    member_name: str
    current_status: LoanStatus = Field(
        default=LoanStatus.ISSUED,
        description="Status classified at read time (overdue is derived)",
    )
