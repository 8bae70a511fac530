"""
SQLAlchemy database schema for the Library Desk backend.

The invariants the circulation core depends on are declared here as well as
checked in code, so a bug upstream cannot silently corrupt state:

1. ``0 <= available_copies <= total_copies`` on every book (check constraints)
2. At most one pending request per (book, member) (partial unique index)
3. At most one open loan per (book, member) (partial unique index)
4. Fines and payments are never negative (check constraints)
"""

from datetime import datetime

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    text,
)
from sqlalchemy.orm import declarative_base, relationship

from ..models.loan import LoanStatus
from ..models.payment import PaymentMethod
from ..models.request import RequestStatus
from ..models.user import Role

Base = declarative_base()


def _enum_column(enum_cls, name: str) -> Enum:
    """Store enum values (``'pending'``) rather than member names (``'PENDING'``)."""
    return Enum(
        enum_cls,
        name=name,
        native_enum=False,
        length=20,
        values_callable=lambda members: [m.value for m in members],
    )


class User(Base):
    """Users table. Owned by the authenticator; the core reads id and role only."""

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(200), nullable=False)
    email = Column(String(255), nullable=False, unique=True)
    password_hash = Column(String(255), nullable=False)
    role = Column(_enum_column(Role, "user_role"), nullable=False, default=Role.MEMBER)
    created_at = Column(DateTime, nullable=False, default=datetime.now)

    tokens = relationship("AuthToken", back_populates="user", cascade="all, delete-orphan")

    __table_args__ = (Index("idx_user_role", "role"),)


class AuthToken(Base):
    """Bearer tokens issued at login."""

    __tablename__ = "auth_tokens"

    token = Column(String(64), primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    issued_at = Column(DateTime, nullable=False, default=datetime.now)
    expires_at = Column(DateTime, nullable=False)

    user = relationship("User", back_populates="tokens")

    __table_args__ = (Index("idx_token_user", "user_id"),)


class Book(Base):
    """Books table. Copy counts are mutated only by the inventory ledger."""

    __tablename__ = "books"

    id = Column(Integer, primary_key=True, autoincrement=True)
    title = Column(String(500), nullable=False)
    author = Column(String(200), nullable=False)
    isbn = Column(String(13), nullable=False, unique=True)
    category = Column(String(100), nullable=False)
    rack_no = Column(String(20), nullable=False)
    total_copies = Column(Integer, nullable=False)
    available_copies = Column(Integer, nullable=False)
    created_at = Column(DateTime, nullable=False, default=datetime.now)

    loans = relationship("IssuedBook", back_populates="book")
    requests = relationship("BookRequest", back_populates="book")

    __table_args__ = (
        Index("idx_book_title", "title"),
        Index("idx_book_category", "category"),
        CheckConstraint("total_copies >= 0", name="check_total_copies_non_negative"),
        CheckConstraint("available_copies >= 0", name="check_available_copies_non_negative"),
        CheckConstraint(
            "available_copies <= total_copies", name="check_available_not_exceed_total"
        ),
    )


class BookRequest(Base):
    """Member requests for a book, resolved by staff."""

    __tablename__ = "book_requests"

    id = Column(Integer, primary_key=True, autoincrement=True)
    book_id = Column(Integer, ForeignKey("books.id"), nullable=False)
    member_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    status = Column(
        _enum_column(RequestStatus, "request_status"),
        nullable=False,
        default=RequestStatus.PENDING,
    )
    request_date = Column(DateTime, nullable=False, default=datetime.now)
    resolved_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    resolved_at = Column(DateTime, nullable=True)

    book = relationship("Book", back_populates="requests")
    member = relationship("User", foreign_keys=[member_id])

    __table_args__ = (
        Index("idx_request_status", "status"),
        Index(
            "uq_request_pending_per_member",
            "book_id",
            "member_id",
            unique=True,
            sqlite_where=text("status = 'pending'"),
            postgresql_where=text("status = 'pending'"),
        ),
    )


class IssuedBook(Base):
    """Loans: one issued copy of a book held by a member."""

    __tablename__ = "issued_books"

    id = Column(Integer, primary_key=True, autoincrement=True)
    book_id = Column(Integer, ForeignKey("books.id"), nullable=False)
    member_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    issue_date = Column(DateTime, nullable=False, default=datetime.now)
    due_date = Column(Date, nullable=False)
    return_date = Column(DateTime, nullable=True)
    status = Column(
        _enum_column(LoanStatus, "loan_status"), nullable=False, default=LoanStatus.ISSUED
    )
    fine_paid = Column(Boolean, nullable=False, default=False)
    payment_date = Column(DateTime, nullable=True)

    book = relationship("Book", back_populates="loans")
    member = relationship("User")
    payments = relationship("Payment", back_populates="loan")

    __table_args__ = (
        Index("idx_loan_member", "member_id"),
        Index("idx_loan_due_date", "due_date"),
        Index(
            "uq_loan_open_per_member",
            "book_id",
            "member_id",
            unique=True,
            sqlite_where=text("return_date IS NULL"),
            postgresql_where=text("return_date IS NULL"),
        ),
        CheckConstraint(
            "(return_date IS NULL AND status IN ('issued', 'overdue'))"
            " OR (return_date IS NOT NULL AND status = 'returned')",
            name="check_return_date_matches_status",
        ),
    )


class Payment(Base):
    """Fine payments. Immutable once created."""

    __tablename__ = "payments"

    id = Column(Integer, primary_key=True, autoincrement=True)
    amount = Column(Numeric(10, 2), nullable=False)
    member_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    issued_book_id = Column(Integer, ForeignKey("issued_books.id"), nullable=False)
    processed_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    payment_date = Column(DateTime, nullable=False, default=datetime.now)
    description = Column(Text, nullable=True)
    payment_method = Column(
        _enum_column(PaymentMethod, "payment_method"),
        nullable=False,
        default=PaymentMethod.CASH,
    )

    loan = relationship("IssuedBook", back_populates="payments")
    member = relationship("User", foreign_keys=[member_id])
    processor = relationship("User", foreign_keys=[processed_by])

    __table_args__ = (
        Index("idx_payment_member", "member_id"),
        CheckConstraint("amount > 0", name="check_payment_positive"),
    )


class Notification(Base):
    """Side-effect messages; ``user_id`` NULL means broadcast."""

    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    message = Column(Text, nullable=False)
    type = Column(String(50), nullable=False)
    related_id = Column(Integer, nullable=True)
    related_type = Column(String(50), nullable=True)
    is_read = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, nullable=False, default=datetime.now)

    __table_args__ = (Index("idx_notification_user", "user_id", "is_read"),)
