"""Test configuration and fixtures for the Library Desk backend.

1. Isolated test databases - each test gets its own SQLite file
2. Configuration isolation - the config singleton is reset around each test
3. Seeded users - an admin, a librarian and two members, each with a token
4. Observability - logfire is configured once with export and console off
"""

from collections.abc import Callable, Generator
from datetime import date, timedelta
from decimal import Decimal
from itertools import count
from pathlib import Path

import pytest
from sqlalchemy.orm import Session

from library_desk.auth.authenticator import hash_password
from library_desk.config import reset_config
from library_desk.database.loan_manager import LoanManager
from library_desk.database.session import DatabaseManager
from library_desk.database.user_repository import UserRepository
from library_desk.desk import LibraryDesk
from library_desk.models import Book, BookCreate, FinePolicy, Loan, Role, User
from library_desk.observability import ObservabilityConfig, initialize_observability

PASSWORD = "secret123"

# Seeded users only; registration tests use the real iteration count.
FAST_ITERATIONS = 1_000

SEED_USERS = {
    "admin": ("Ada Admin", "admin@example.com", Role.ADMIN),
    "librarian": ("Lena Librarian", "librarian@example.com", Role.LIBRARIAN),
    "member": ("Max Member", "member@example.com", Role.MEMBER),
    "other_member": ("Olga Other", "other@example.com", Role.MEMBER),
}

_isbn_counter = count(1)


def next_isbn() -> str:
    return f"978{next(_isbn_counter):010d}"


def make_book_data(copies: int = 1, title: str = "Test Book", **overrides) -> BookCreate:
    fields = {
        "title": title,
        "author": "Test Author",
        "isbn": next_isbn(),
        "category": "Fiction",
        "rack_no": "A-1",
        "total_copies": copies,
    }
    fields.update(overrides)
    return BookCreate(**fields)


@pytest.fixture
def book_data() -> Callable[..., BookCreate]:
    return make_book_data


# === Session-wide setup ===


@pytest.fixture(scope="session", autouse=True)
def _observability():
    initialize_observability(
        ObservabilityConfig(
            enabled=True,
            environment="test",
            send_to_logfire=False,
            console_output=False,
        )
    )


@pytest.fixture(autouse=True)
def _isolated_config():
    reset_config()
    yield
    reset_config()


# === Database Fixtures ===


@pytest.fixture
def test_db_path(tmp_path: Path) -> Path:
    return tmp_path / "test_library.db"


@pytest.fixture
def test_database_url(test_db_path: Path) -> str:
    return f"sqlite:///{test_db_path}"


@pytest.fixture
def db_manager(test_database_url: str) -> Generator[DatabaseManager, None, None]:
    manager = DatabaseManager(test_database_url, sqlite_busy_timeout=30.0)
    manager.init_database()
    yield manager
    manager.close()


@pytest.fixture
def seed_users(db_manager: DatabaseManager) -> dict[str, User]:
    with db_manager.session_scope() as session:
        repo = UserRepository(session)
        return {
            key: repo.create(name, email, hash_password(PASSWORD, FAST_ITERATIONS), role)
            for key, (name, email, role) in SEED_USERS.items()
        }


@pytest.fixture
def session(db_manager: DatabaseManager, seed_users) -> Generator[Session, None, None]:
    """A raw session for component tests; rolled back afterwards."""
    session = db_manager.create_session()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


# === Desk Fixtures ===


@pytest.fixture
def fine_policy() -> FinePolicy:
    return FinePolicy(daily_rate=Decimal("0.25"), grace_days=0)


@pytest.fixture
def desk(db_manager: DatabaseManager, fine_policy: FinePolicy) -> LibraryDesk:
    return LibraryDesk(db_manager, fine_policy=fine_policy, default_loan_days=14)


@pytest.fixture
def tokens(desk: LibraryDesk, seed_users: dict[str, User]) -> dict[str, str]:
    return {key: desk.login(user.email, PASSWORD).token for key, user in seed_users.items()}


@pytest.fixture
def add_book(desk: LibraryDesk, tokens: dict[str, str]) -> Callable[..., Book]:
    def _add(copies: int = 1, title: str = "Test Book", **overrides) -> Book:
        return desk.add_book(tokens["librarian"], make_book_data(copies, title, **overrides))

    return _add


@pytest.fixture
def overdue_loan(
    db_manager: DatabaseManager, add_book, seed_users: dict[str, User]
) -> Callable[..., Loan]:
    """Issue a loan that fell due ``days_late`` days ago."""

    def _issue(days_late: int = 4, member: str = "member") -> Loan:
        book = add_book(copies=1, title="Overdue Book")
        today = date.today()
        with db_manager.session_scope() as session:
            return LoanManager(session).issue(
                book.id,
                seed_users[member].id,
                due_date=today - timedelta(days=days_late),
                today=today - timedelta(days=days_late + 14),
            )

    return _issue


@pytest.fixture
def password() -> str:
    """Password of every seeded user."""
    return PASSWORD
