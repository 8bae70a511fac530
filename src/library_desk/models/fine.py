"""
Fine policy and fine summaries.

The rate and grace period are configuration, never literals in the
settlement code. ``FinePolicy.compute`` is a pure function of a loan and a
date, so it can be tested without a database.
"""

from datetime import date
from decimal import ROUND_HALF_UP, Decimal

from pydantic import BaseModel, ConfigDict, Field

from .loan import Loan

CENTS = Decimal("0.01")


class FinePolicy(BaseModel):
    model_config = ConfigDict(frozen=True)

    daily_rate: Decimal = Field(default=Decimal("0.25"), ge=0)
    grace_days: int = Field(default=0, ge=0)

    def compute(self, loan: Loan, today: date | None = None) -> Decimal:
        """
        Fine owed on ``loan`` as of ``today``.

        Paid loans owe nothing regardless of elapsed time. The result is
        never negative and is rounded to cents.
        """
        if loan.fine_paid:
            return Decimal("0.00")
        chargeable_days = max(0, loan.days_late(today) - self.grace_days)
        return (self.daily_rate * chargeable_days).quantize(CENTS, rounding=ROUND_HALF_UP)


class LoanFine(BaseModel):
    loan_id: int
    book_id: int
    title: str
    due_date: date
    days_late: int
    amount: Decimal


class FineSummary(BaseModel):
    """Outstanding fines for one member."""

    member_id: int
    fines: list[LoanFine]
    total: Decimal
