"""
Library desk: the single entry point for every library operation.

Each public method follows the same lifecycle:

1. Open one transaction (``DatabaseManager.session_scope``)
2. Authenticate the bearer token into a ``Principal``
3. Check the access policy for the operation
4. Run the component call(s) inside the same transaction
5. Commit on success, roll back on any error

Components are constructed per transaction around its session, so nothing
outlives a unit of work except the injected ``DatabaseManager``.
"""

import logging
from collections.abc import Generator
from contextlib import contextmanager
from datetime import date, datetime, timedelta

from sqlalchemy.orm import Session

from .auth.authenticator import Authenticator
from .auth.policy import Operation, authorize
from .config import DeskConfig
from .database.fine_settlement import FineSettlement
from .database.inventory import InventoryLedger
from .database.loan_manager import LoanManager
from .database.notifications import NotificationSink
from .database.request_workflow import RequestWorkflow
from .database.session import DatabaseManager
from .database.user_repository import UserRepository
from .errors import ValidationFailed
from .models.book import Book, BookCreate
from .models.fine import FinePolicy, FineSummary
from .models.loan import Loan, LoanDetail
from .models.notification import Notification
from .models.payment import Payment, PaymentCreate, PaymentDetail
from .models.request import BookRequest, PendingRequest, RequestStatus
from .models.stats import ActivityItem, DashboardStats, LoanCounts
from .models.user import AccessToken, Principal, Role, User
from .observability import traced

logger = logging.getLogger(__name__)

ACTIVITY_WINDOW = timedelta(days=7)
ACTIVITY_LIMIT = 10


def _log_operation(operation: str, **kwargs) -> None:
    """Log operation details for audit trail."""
    logger.info(
        "Operation: %s | Details: %s", operation, " | ".join(f"{k}={v}" for k, v in kwargs.items())
    )


class LibraryDesk:
    def __init__(
        self,
        db: DatabaseManager,
        fine_policy: FinePolicy | None = None,
        default_loan_days: int = 14,
        token_ttl_minutes: int = 7 * 24 * 60,
    ):
        self.db = db
        self.fine_policy = fine_policy or FinePolicy()
        self.default_loan_days = default_loan_days
        self.token_ttl_minutes = token_ttl_minutes

    @classmethod
    def from_config(cls, config: DeskConfig, db: DatabaseManager | None = None) -> "LibraryDesk":
        db = db or DatabaseManager(
            config.database_url,
            sqlite_busy_timeout=config.sqlite_busy_timeout,
            echo=config.debug,
        )
        return cls(
            db,
            fine_policy=config.fine_policy,
            default_loan_days=config.default_loan_days,
            token_ttl_minutes=config.token_ttl_minutes,
        )

    @contextmanager
    def _authenticated(self, token: str | None) -> Generator[tuple[Session, Principal], None, None]:
        """Open a transaction for a call whose policy check needs loaded rows."""
        with self.db.session_scope() as session:
            yield session, self._authenticator(session).authenticate(token)

    @contextmanager
    def _authorized(
        self, token: str | None, operation: Operation, owner_id: int | None = None
    ) -> Generator[tuple[Session, Principal], None, None]:
        with self._authenticated(token) as (session, principal):
            authorize(principal, operation, owner_id)
            yield session, principal

    def _authenticator(self, session: Session) -> Authenticator:
        return Authenticator(session, token_ttl_minutes=self.token_ttl_minutes)

    def _loans(self, session: Session) -> LoanManager:
        return LoanManager(session, default_loan_days=self.default_loan_days)

    # === Accounts ===

    @traced("register")
    def register(self, name: str, email: str, password: str) -> User:
        """Self-service sign-up; always creates a member."""
        with self.db.session_scope() as session:
            user = self._authenticator(session).register(name, email, password, Role.MEMBER)
        _log_operation("register", user_id=user.id)
        return user

    @traced("create_user")
    def create_user(
        self, token: str, name: str, email: str, password: str, role: Role | str
    ) -> User:
        with self._authorized(token, Operation.CREATE_USER) as (session, principal):
            user = self._authenticator(session).register(name, email, password, role)
        _log_operation("create_user", user_id=user.id, role=user.role.value, by=principal.id)
        return user

    @traced("login")
    def login(self, email: str, password: str) -> AccessToken:
        with self.db.session_scope() as session:
            return self._authenticator(session).login(email, password)

    @traced("logout")
    def logout(self, token: str) -> bool:
        with self.db.session_scope() as session:
            return self._authenticator(session).logout(token)

    @traced("list_users")
    def list_users(self, token: str, role: Role | None = None) -> list[User]:
        with self._authorized(token, Operation.LIST_USERS) as (session, _):
            return UserRepository(session).list_users(role)

    @traced("create_member")
    def create_member(self, token: str, name: str, email: str, password: str) -> User:
        """Staff sign-up for a walk-in patron."""
        with self._authorized(token, Operation.CREATE_MEMBER) as (session, principal):
            user = self._authenticator(session).register(name, email, password, Role.MEMBER)
        _log_operation("create_member", user_id=user.id, by=principal.id)
        return user

    @traced("delete_user")
    def delete_user(self, token: str, user_id: int) -> User:
        with self._authorized(token, Operation.DELETE_USER) as (session, principal):
            if user_id == principal.id:
                raise ValidationFailed("You cannot delete your own account")
            user = UserRepository(session).delete(user_id)
        _log_operation("delete_user", user_id=user_id, role=user.role.value, by=principal.id)
        return user

    @traced("change_password")
    def change_password(self, token: str, user_id: int, new_password: str) -> User:
        """Set a new password; librarians may only reset member accounts."""
        with self._authenticated(token) as (session, principal):
            target = UserRepository(session).require(user_id)
            authorize(
                principal, Operation.CHANGE_PASSWORD, owner_id=user_id, target_role=target.role
            )
            user = self._authenticator(session).change_password(user_id, new_password, principal)
        _log_operation("change_password", user_id=user_id, by=principal.id)
        return user

    # === Catalog ===

    @traced("add_book")
    def add_book(self, token: str, data: BookCreate) -> Book:
        with self._authorized(token, Operation.ADD_BOOK) as (session, principal):
            book = InventoryLedger(session).add_book(data)
        _log_operation("add_book", book_id=book.id, isbn=book.isbn, by=principal.id)
        return book

    @traced("list_books")
    def list_books(self, token: str, available_only: bool = False) -> list[Book]:
        with self._authorized(token, Operation.LIST_BOOKS) as (session, _):
            return InventoryLedger(session).list_books(available_only)

    @traced("get_book")
    def get_book(self, token: str, book_id: int) -> Book:
        with self._authorized(token, Operation.LIST_BOOKS) as (session, _):
            return InventoryLedger(session).require(book_id)

    # === Requests ===

    @traced("create_request")
    def create_request(self, token: str, book_id: int) -> BookRequest:
        with self._authorized(token, Operation.CREATE_REQUEST) as (session, principal):
            request = RequestWorkflow(session).create_request(principal.id, book_id)
        _log_operation(
            "create_request", request_id=request.id, book_id=book_id, member_id=principal.id
        )
        return request

    @traced("list_pending_requests")
    def list_pending_requests(self, token: str) -> list[PendingRequest]:
        with self._authorized(token, Operation.LIST_PENDING_REQUESTS) as (session, _):
            return RequestWorkflow(session).list_pending()

    @traced("resolve_request")
    def resolve_request(
        self, token: str, request_id: int, decision: RequestStatus | str
    ) -> BookRequest:
        with self._authorized(token, Operation.RESOLVE_REQUEST) as (session, principal):
            request = RequestWorkflow(session).resolve_request(request_id, decision, principal.id)
        _log_operation(
            "resolve_request", request_id=request_id, status=request.status.value, by=principal.id
        )
        return request

    @traced("my_requests")
    def my_requests(self, token: str) -> list[BookRequest]:
        with self._authorized(token, Operation.LIST_MY_REQUESTS) as (session, principal):
            return RequestWorkflow(session).list_for_member(principal.id)

    # === Loans ===

    @traced("issue_book")
    def issue_book(
        self, token: str, book_id: int, member_id: int, due_date: date | None = None
    ) -> Loan:
        with self._authorized(token, Operation.ISSUE_LOAN) as (session, principal):
            loan = self._loans(session).issue(book_id, member_id, due_date)
        _log_operation(
            "issue_book",
            loan_id=loan.id,
            book_id=book_id,
            member_id=member_id,
            due_date=loan.due_date.isoformat(),
            by=principal.id,
        )
        return loan

    @traced("return_book")
    def return_book(self, token: str, loan_id: int) -> Loan:
        with self._authorized(token, Operation.RETURN_LOAN) as (session, principal):
            loan = self._loans(session).return_loan(loan_id)
        _log_operation("return_book", loan_id=loan_id, book_id=loan.book_id, by=principal.id)
        return loan

    @traced("list_loans")
    def list_loans(self, token: str) -> list[LoanDetail]:
        with self._authorized(token, Operation.LIST_LOANS) as (session, _):
            return self._loans(session).list_loans()

    @traced("my_books")
    def my_books(self, token: str) -> list[LoanDetail]:
        with self._authorized(token, Operation.LIST_MY_LOANS) as (session, principal):
            return self._loans(session).list_for_member(principal.id)

    @traced("loan_counts")
    def loan_counts(self, token: str, today: date | None = None) -> LoanCounts:
        with self._authorized(token, Operation.LOAN_COUNTS) as (session, _):
            return self._loans(session).loan_counts(today)

    # === Fines and payments ===

    @traced("member_fines")
    def member_fines(self, token: str, member_id: int, today: date | None = None) -> FineSummary:
        with self._authorized(token, Operation.MEMBER_FINES, owner_id=member_id) as (session, _):
            UserRepository(session).require_member(member_id)
            return FineSettlement(session, self.fine_policy).outstanding_fines(member_id, today)

    @traced("record_payment")
    def record_payment(self, token: str, data: PaymentCreate) -> Payment:
        with self._authenticated(token) as (session, principal):
            loan = self._loans(session).require(data.issued_book_id)
            authorize(principal, Operation.RECORD_PAYMENT, owner_id=loan.member_id)
            payment = FineSettlement(session, self.fine_policy).record_payment(
                member_id=data.member_id,
                issued_book_id=data.issued_book_id,
                amount=data.amount,
                method=data.payment_method,
                description=data.description,
                processed_by=principal.id,
            )
        _log_operation(
            "record_payment",
            payment_id=payment.id,
            loan_id=payment.issued_book_id,
            amount=payment.amount,
            by=principal.id,
        )
        return payment

    @traced("list_payments")
    def list_payments(self, token: str) -> list[PaymentDetail]:
        with self._authorized(token, Operation.LIST_PAYMENTS) as (session, _):
            return FineSettlement(session, self.fine_policy).list_payments()

    @traced("member_payments")
    def member_payments(self, token: str, member_id: int) -> list[PaymentDetail]:
        with self._authorized(
            token, Operation.LIST_MEMBER_PAYMENTS, owner_id=member_id
        ) as (session, _):
            return FineSettlement(session, self.fine_policy).list_for_member(member_id)

    # === Notifications ===

    @traced("notifications")
    def notifications(self, token: str, limit: int = 50) -> list[Notification]:
        with self._authorized(token, Operation.NOTIFICATIONS) as (session, principal):
            return NotificationSink(session).list_for_user(principal.id, limit)

    @traced("unread_count")
    def unread_count(self, token: str) -> int:
        with self._authorized(token, Operation.NOTIFICATIONS) as (session, principal):
            return NotificationSink(session).unread_count(principal.id)

    @traced("mark_notification_read")
    def mark_notification_read(self, token: str, notification_id: int) -> bool:
        with self._authorized(token, Operation.NOTIFICATIONS) as (session, principal):
            return NotificationSink(session).mark_read(notification_id, principal.id)

    # === Dashboard ===

    @traced("dashboard_stats")
    def dashboard_stats(self, token: str, today: date | None = None) -> DashboardStats:
        """Catalog and circulation totals plus the last week of activity."""
        with self._authorized(token, Operation.DASHBOARD_STATS) as (session, principal):
            inventory = InventoryLedger(session)
            users = UserRepository(session)
            counts = self._loans(session).loan_counts(today)

            since = datetime.now() - ACTIVITY_WINDOW
            activity = self._loans(session).recent_activity(since)
            activity.extend(
                ActivityItem(
                    type="user",
                    message=f"New user registered: {user.name}",
                    timestamp=user.created_at,
                )
                for user in users.registered_since(since)
            )
            activity.sort(key=lambda item: item.timestamp, reverse=True)

            return DashboardStats(
                total_books=inventory.count(),
                total_users=users.count_by_roles([Role.LIBRARIAN, Role.MEMBER]),
                total_borrowed=counts.borrowed,
                overdue_books=counts.overdue,
                availability_rate=inventory.availability_rate(),
                recent_activity=activity[:ACTIVITY_LIMIT],
                notifications=NotificationSink(session).list_for_user(principal.id, limit=10),
            )
