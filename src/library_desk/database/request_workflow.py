"""
Request workflow.

A member asks for a book; staff approve or reject the request:

    pending --approve--> approved (terminal)
    pending --reject---> rejected (terminal)

Approval records the decision and tells the member. It does not take a copy
off the shelf: issuing is a separate step in the loan manager.
"""

import logging
from datetime import datetime

from sqlalchemy import desc, func, select, update
from sqlalchemy.exc import IntegrityError

from ..errors import (
    AlreadyIssued,
    DuplicateRequest,
    OutOfStock,
    RequestAlreadyResolved,
    ValidationFailed,
)
from ..models.request import BookRequest, PendingRequest, RequestStatus
from .inventory import InventoryLedger
from .loan_manager import LoanManager
from .notifications import NotificationSink
from .repository import BaseRepository
from .schema import Book as BookDB
from .schema import BookRequest as BookRequestDB
from .schema import User as UserDB
from .session import safe_flush, safe_query

logger = logging.getLogger(__name__)


class RequestWorkflow(BaseRepository[BookRequestDB, BookRequest]):
    def __init__(self, session, notifications: NotificationSink | None = None):
        super().__init__(session)
        self.inventory = InventoryLedger(session)
        self.loans = LoanManager(session)
        self.notifications = notifications or NotificationSink(session)

    @property
    def model_class(self) -> type[BookRequestDB]:
        return BookRequestDB

    @property
    def response_schema(self) -> type[BookRequest]:
        return BookRequest

    @property
    def entity_name(self) -> str:
        return "Request"

    def create_request(self, member_id: int, book_id: int) -> BookRequest:
        """
        Record a pending request from ``member_id`` for ``book_id``.

        Raises:
            NotFound: If the book does not exist
            OutOfStock: If no copy is currently available
            DuplicateRequest: If the member already has a pending request for the book
            AlreadyIssued: If the member currently holds the book
        """
        book = self.inventory.require(book_id)
        if not book.is_available:
            raise OutOfStock(f"No copies of '{book.title}' available")

        if self.has_pending(book_id, member_id):
            raise DuplicateRequest("You already have a pending request for this book")

        if self.loans.has_open_loan(book_id, member_id):
            raise AlreadyIssued("You already have this book issued")

        request = BookRequestDB(
            book_id=book_id,
            member_id=member_id,
            status=RequestStatus.PENDING,
            request_date=datetime.now(),
        )
        self.session.add(request)
        try:
            safe_flush(self.session, "create request")
        except IntegrityError as e:
            raise DuplicateRequest("You already have a pending request for this book") from e

        logger.info("Member %s requested book %s (request %s)", member_id, book_id, request.id)
        return self._to_response_model(request)

    def resolve_request(
        self, request_id: int, decision: RequestStatus | str, resolved_by: int
    ) -> BookRequest:
        """
        Approve or reject a pending request and notify the member.

        The status change is a conditional UPDATE on ``status = 'pending'``,
        so two staff resolving the same request cannot both win.

        Raises:
            ValidationFailed: If ``decision`` is not approved or rejected
            NotFound: If the request does not exist
            RequestAlreadyResolved: If the request is no longer pending
        """
        try:
            decision = RequestStatus(decision)
        except ValueError as e:
            raise ValidationFailed(f"Unknown decision '{decision}'") from e
        if not decision.is_terminal:
            raise ValidationFailed("Decision must be 'approved' or 'rejected'")

        stmt = (
            update(BookRequestDB)
            .where(BookRequestDB.id == request_id, BookRequestDB.status == RequestStatus.PENDING)
            .values(status=decision, resolved_by=resolved_by, resolved_at=datetime.now())
            .execution_options(synchronize_session=False)
        )
        result = safe_query(self.session, lambda s: s.execute(stmt), "Failed to resolve request")

        if result.rowcount != 1:
            request = self._require_row(request_id)
            raise RequestAlreadyResolved(f"Request {request_id} is already {request.status.value}")

        request = self._require_row(request_id)
        book = self.inventory.require(request.book_id)
        self.notifications.notify(
            request.member_id,
            f"Your request for '{book.title}' has been {decision.value}",
            type=f"request_{decision.value}",
            related_id=request.id,
            related_type="book_request",
        )

        logger.info("Request %s %s by user %s", request_id, decision.value, resolved_by)
        return self._to_response_model(request)

    def has_pending(self, book_id: int, member_id: int) -> bool:
        query = (
            select(func.count())
            .select_from(BookRequestDB)
            .where(
                BookRequestDB.book_id == book_id,
                BookRequestDB.member_id == member_id,
                BookRequestDB.status == RequestStatus.PENDING,
            )
        )
        return bool(
            safe_query(
                self.session,
                lambda s: s.execute(query).scalar(),
                "Failed to check pending requests",
            )
        )

    def list_pending(self) -> list[PendingRequest]:
        """Pending requests with book and member details, newest first."""
        query = (
            select(BookRequestDB, BookDB.title, BookDB.author, UserDB.name, UserDB.email)
            .join(BookDB, BookRequestDB.book_id == BookDB.id)
            .join(UserDB, BookRequestDB.member_id == UserDB.id)
            .where(BookRequestDB.status == RequestStatus.PENDING)
            .order_by(desc(BookRequestDB.request_date), desc(BookRequestDB.id))
        )
        rows = safe_query(
            self.session, lambda s: s.execute(query).all(), "Failed to list pending requests"
        )
        return [
            PendingRequest(
                **self._to_response_model(request).model_dump(),
                title=title,
                author=author,
                member_name=member_name,
                member_email=member_email,
            )
            for request, title, author, member_name, member_email in rows
        ]

    def list_for_member(self, member_id: int) -> list[BookRequest]:
        query = (
            select(BookRequestDB)
            .where(BookRequestDB.member_id == member_id)
            .order_by(desc(BookRequestDB.request_date), desc(BookRequestDB.id))
        )
        rows = safe_query(
            self.session, lambda s: s.execute(query).scalars().all(), "Failed to list requests"
        )
        return [self._to_response_model(row) for row in rows]
