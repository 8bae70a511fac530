"""
Loan manager for the Library Desk backend.

This component owns the issue/return state machine of a loan:

    issued --return--> returned (terminal)

``overdue`` is not a stored transition. An open loan whose due date has
passed is classified as overdue whenever it is read or counted.

Each mutation pairs a loan write with an inventory ledger call inside the
caller's transaction, so a copy is never taken off (or put back on) the shelf
without the matching loan row changing too:

1. ``issue``: reserve a copy, insert the loan
2. ``return_loan``: close the loan with a conditional UPDATE, release the copy
"""

import logging
from datetime import date, datetime, timedelta

from sqlalchemy import and_, desc, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..errors import AlreadyIssued, NotFound, OutOfStock, ValidationFailed
from ..models.loan import Loan, LoanDetail, LoanStatus
from ..models.stats import ActivityItem, LoanCounts
from .inventory import InventoryLedger
from .repository import BaseRepository
from .schema import Book as BookDB
from .schema import IssuedBook as IssuedBookDB
from .schema import User as UserDB
from .session import safe_flush, safe_query
from .user_repository import UserRepository

logger = logging.getLogger(__name__)


class LoanManager(BaseRepository[IssuedBookDB, Loan]):
    """Issues and returns loans, coordinating with the inventory ledger."""

    def __init__(self, session: Session, default_loan_days: int = 14):
        super().__init__(session)
        self.default_loan_days = default_loan_days
        self.inventory = InventoryLedger(session)
        self.users = UserRepository(session)

    @property
    def model_class(self) -> type[IssuedBookDB]:
        return IssuedBookDB

    @property
    def response_schema(self) -> type[Loan]:
        return Loan

    @property
    def entity_name(self) -> str:
        return "Loan"

    def issue(
        self,
        book_id: int,
        member_id: int,
        due_date: date | None = None,
        today: date | None = None,
    ) -> Loan:
        """
        Issue one copy of a book to a member.

        Args:
            book_id: Book to issue
            member_id: User holding the member role
            due_date: Defaults to today plus the default loan period
            today: Reference date (tests pin it)

        Raises:
            NotFound: If the book or member does not exist
            OutOfStock: If no copy is available
            AlreadyIssued: If the member already holds an open loan for the book
            ValidationFailed: If the due date is in the past
        """
        now = datetime.now()
        today = today or now.date()

        book = self.inventory.require(book_id)
        if not book.is_available:
            raise OutOfStock(f"No copies of '{book.title}' available")

        self.users.require_member(member_id)

        due_date = due_date or (today + timedelta(days=self.default_loan_days))
        if due_date < today:
            raise ValidationFailed("Due date cannot be in the past")

        if self.has_open_loan(book_id, member_id):
            raise AlreadyIssued(f"Member {member_id} already has book {book_id} issued")

        # Authoritative availability check: the conditional decrement.
        self.inventory.reserve_copy(book_id)

        loan = IssuedBookDB(
            book_id=book_id,
            member_id=member_id,
            issue_date=now,
            due_date=due_date,
            status=LoanStatus.ISSUED,
            fine_paid=False,
        )
        self.session.add(loan)
        try:
            safe_flush(self.session, "issue loan")
        except IntegrityError as e:
            raise AlreadyIssued(f"Member {member_id} already has book {book_id} issued") from e

        logger.info(
            "Issued book %s to member %s as loan %s (due %s)",
            book_id,
            member_id,
            loan.id,
            due_date.isoformat(),
        )
        return self._to_response_model(loan)

    def return_loan(self, loan_id: int, now: datetime | None = None) -> Loan:
        """
        Close an open loan and put its copy back on the shelf.

        A second return of the same loan fails rather than succeeding quietly,
        and it never touches the inventory.

        Raises:
            NotFound: If the loan does not exist or was already returned
            IntegrityViolation: If the book already has every copy on the shelf
        """
        now = now or datetime.now()
        stmt = (
            update(IssuedBookDB)
            .where(IssuedBookDB.id == loan_id, IssuedBookDB.return_date.is_(None))
            .values(return_date=now, status=LoanStatus.RETURNED)
            .execution_options(synchronize_session=False)
        )
        result = safe_query(self.session, lambda s: s.execute(stmt), "Failed to return loan")
        if result.rowcount != 1:
            raise NotFound(f"Loan {loan_id} not found or already returned")

        loan = self._require_row(loan_id)
        self.inventory.release_copy(loan.book_id)

        logger.info("Returned loan %s (book %s)", loan_id, loan.book_id)
        return self._to_response_model(loan)

    def has_open_loan(self, book_id: int, member_id: int) -> bool:
        query = (
            select(func.count())
            .select_from(IssuedBookDB)
            .where(
                IssuedBookDB.book_id == book_id,
                IssuedBookDB.member_id == member_id,
                IssuedBookDB.return_date.is_(None),
            )
        )
        count = safe_query(
            self.session, lambda s: s.execute(query).scalar(), "Failed to check open loans"
        )
        return bool(count)

    def get_loan(self, loan_id: int) -> Loan:
        return self.require(loan_id)

    def classify(self, loan: Loan, today: date | None = None) -> LoanStatus:
        return loan.effective_status(today)

    def borrowed_count(self) -> int:
        """Open loans, overdue ones included."""
        query = (
            select(func.count())
            .select_from(IssuedBookDB)
            .where(IssuedBookDB.return_date.is_(None))
        )
        return (
            safe_query(
                self.session, lambda s: s.execute(query).scalar(), "Failed to count borrowed books"
            )
            or 0
        )

    def overdue_count(self, today: date | None = None) -> int:
        """Open loans whose due date is before ``today``."""
        today = today or date.today()
        query = (
            select(func.count())
            .select_from(IssuedBookDB)
            .where(and_(IssuedBookDB.return_date.is_(None), IssuedBookDB.due_date < today))
        )
        return (
            safe_query(
                self.session, lambda s: s.execute(query).scalar(), "Failed to count overdue books"
            )
            or 0
        )

    def loan_counts(self, today: date | None = None) -> LoanCounts:
        return LoanCounts(borrowed=self.borrowed_count(), overdue=self.overdue_count(today))

    def list_loans(self, today: date | None = None) -> list[LoanDetail]:
        """Every loan with book and member display fields, newest issue first."""
        return self._list_details(None, today)

    def list_for_member(self, member_id: int, today: date | None = None) -> list[LoanDetail]:
        return self._list_details(member_id, today)

    def recent_activity(self, since: datetime) -> list[ActivityItem]:
        """Issues and returns at or after ``since``."""
        issued = safe_query(
            self.session,
            lambda s: s.execute(
                select(BookDB.title, IssuedBookDB.issue_date)
                .join(BookDB, IssuedBookDB.book_id == BookDB.id)
                .where(IssuedBookDB.issue_date >= since)
            ).all(),
            "Failed to load recent issues",
        )
        returned = safe_query(
            self.session,
            lambda s: s.execute(
                select(BookDB.title, IssuedBookDB.return_date)
                .join(BookDB, IssuedBookDB.book_id == BookDB.id)
                .where(IssuedBookDB.return_date >= since)
            ).all(),
            "Failed to load recent returns",
        )
        return [
            ActivityItem(type="issue", message=f"Book issued: {title}", timestamp=ts)
            for title, ts in issued
        ] + [
            ActivityItem(type="return", message=f"Book returned: {title}", timestamp=ts)
            for title, ts in returned
        ]

    def _list_details(self, member_id: int | None, today: date | None) -> list[LoanDetail]:
        query = (
            select(
                IssuedBookDB,
                BookDB.title,
                BookDB.author,
                BookDB.isbn,
                BookDB.category,
                UserDB.name,
            )
            .join(BookDB, IssuedBookDB.book_id == BookDB.id)
            .join(UserDB, IssuedBookDB.member_id == UserDB.id)
            .order_by(desc(IssuedBookDB.issue_date), desc(IssuedBookDB.id))
        )
        if member_id is not None:
            query = query.where(IssuedBookDB.member_id == member_id)

        rows = safe_query(self.session, lambda s: s.execute(query).all(), "Failed to list loans")
        details = []
        for loan_row, title, author, isbn, category, member_name in rows:
            loan = self._to_response_model(loan_row)
            details.append(
                LoanDetail(
                    **loan.model_dump(),
                    title=title,
                    author=author,
                    isbn=isbn,
                    category=category,
                    member_name=member_name,
                    current_status=loan.effective_status(today),
                )
            )
        return details
