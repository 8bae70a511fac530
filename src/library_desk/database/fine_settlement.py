"""
Fine settlement.

Fines are computed, never stored: ``FinePolicy.compute`` derives the amount
from a loan's dates whenever it is asked. What is stored is the settlement,
``issued_books.fine_paid`` plus one immutable ``payments`` row.

Recording a payment is one unit of work inside the caller's transaction:

1. Mark the loan paid with a conditional UPDATE on ``fine_paid = FALSE``
2. Insert the payment row
3. Notify every admin and librarian

A repeated settlement of the same loan matches zero rows in step 1 and fails
with ``AlreadyPaid``, leaving exactly one payment behind.
"""

import logging
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import desc, select, update
from sqlalchemy.orm import Session, aliased

from ..errors import AlreadyPaid, ValidationFailed
from ..models.fine import FinePolicy, FineSummary, LoanFine
from ..models.loan import Loan
from ..models.payment import Payment, PaymentDetail, PaymentMethod
from ..models.user import STAFF_ROLES
from .loan_manager import LoanManager
from .notifications import NotificationSink
from .repository import BaseRepository
from .schema import Book as BookDB
from .schema import IssuedBook as IssuedBookDB
from .schema import Payment as PaymentDB
from .schema import User as UserDB
from .session import safe_flush, safe_query

logger = logging.getLogger(__name__)


class FineSettlement(BaseRepository[PaymentDB, Payment]):
    def __init__(
        self,
        session: Session,
        policy: FinePolicy | None = None,
        notifications: NotificationSink | None = None,
    ):
        super().__init__(session)
        self.policy = policy or FinePolicy()
        self.loans = LoanManager(session)
        self.notifications = notifications or NotificationSink(session)

    @property
    def model_class(self) -> type[PaymentDB]:
        return PaymentDB

    @property
    def response_schema(self) -> type[Payment]:
        return Payment

    def compute_fine(self, loan: Loan, today: date | None = None) -> Decimal:
        return self.policy.compute(loan, today)

    def record_payment(
        self,
        member_id: int,
        issued_book_id: int,
        amount: Decimal,
        method: PaymentMethod = PaymentMethod.CASH,
        description: str | None = None,
        processed_by: int | None = None,
    ) -> Payment:
        """
        Settle the fine of one loan.

        Raises:
            NotFound: If the loan does not exist
            ValidationFailed: If the loan belongs to another member or the
                amount is not positive
            AlreadyPaid: If the loan's fine was already settled
        """
        amount = Decimal(amount)
        if amount <= 0:
            raise ValidationFailed("Payment amount must be positive")

        loan = self.loans.require(issued_book_id)
        if loan.member_id != member_id:
            raise ValidationFailed(f"Loan {issued_book_id} does not belong to member {member_id}")

        book = self.loans.inventory.require(loan.book_id)
        member = self.loans.users.require(member_id)

        now = datetime.now()
        stmt = (
            update(IssuedBookDB)
            .where(IssuedBookDB.id == issued_book_id, IssuedBookDB.fine_paid.is_(False))
            .values(fine_paid=True, payment_date=now)
            .execution_options(synchronize_session=False)
        )
        result = safe_query(self.session, lambda s: s.execute(stmt), "Failed to mark fine paid")
        if result.rowcount != 1:
            raise AlreadyPaid(f"Fine for loan {issued_book_id} has already been paid")

        payment = PaymentDB(
            amount=amount,
            member_id=member_id,
            issued_book_id=issued_book_id,
            processed_by=processed_by,
            payment_date=now,
            description=description,
            payment_method=PaymentMethod(method),
        )
        self.session.add(payment)
        safe_flush(self.session, "record payment")

        notified = self.notifications.notify_roles(
            STAFF_ROLES,
            f"Payment of ${amount:.2f} received from {member.name} for '{book.title}'",
            type="payment",
            related_id=payment.id,
            related_type="payment",
        )

        logger.info(
            "Recorded payment %s of %s for loan %s (member %s, %d staff notified)",
            payment.id,
            amount,
            issued_book_id,
            member_id,
            notified,
        )
        return self._to_response_model(payment)

    def list_payments(self) -> list[PaymentDetail]:
        """All payments with member and processor names, newest first."""
        return self._list_details(None)

    def list_for_member(self, member_id: int) -> list[PaymentDetail]:
        return self._list_details(member_id)

    def outstanding_fines(self, member_id: int, today: date | None = None) -> FineSummary:
        """Unpaid, non-zero fines on the member's loans and their total."""
        query = (
            select(IssuedBookDB, BookDB.title)
            .join(BookDB, IssuedBookDB.book_id == BookDB.id)
            .where(IssuedBookDB.member_id == member_id, IssuedBookDB.fine_paid.is_(False))
            .order_by(IssuedBookDB.due_date)
        )
        rows = safe_query(self.session, lambda s: s.execute(query).all(), "Failed to load fines")

        fines = []
        for loan_row, title in rows:
            loan = Loan.model_validate(loan_row, from_attributes=True)
            amount = self.compute_fine(loan, today)
            if amount > 0:
                fines.append(
                    LoanFine(
                        loan_id=loan.id,
                        book_id=loan.book_id,
                        title=title,
                        due_date=loan.due_date,
                        days_late=loan.days_late(today),
                        amount=amount,
                    )
                )
        total = sum((fine.amount for fine in fines), Decimal("0.00"))
        return FineSummary(member_id=member_id, fines=fines, total=total)

    def _list_details(self, member_id: int | None) -> list[PaymentDetail]:
        processor = aliased(UserDB)
        query = (
            select(PaymentDB, UserDB.name, processor.name)
            .join(UserDB, PaymentDB.member_id == UserDB.id)
            .outerjoin(processor, PaymentDB.processed_by == processor.id)
            .order_by(desc(PaymentDB.payment_date), desc(PaymentDB.id))
        )
        if member_id is not None:
            query = query.where(PaymentDB.member_id == member_id)

        rows = safe_query(self.session, lambda s: s.execute(query).all(), "Failed to list payments")
        return [
            PaymentDetail(
                **self._to_response_model(payment).model_dump(),
                member_name=member_name,
                processed_by_name=processor_name,
            )
            for payment, member_name, processor_name in rows
        ]
