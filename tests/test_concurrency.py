"""Concurrent circulation against one SQLite file.

Each thread gets its own session from the pool, so these tests exercise the
conditional updates and the SQLite busy timeout rather than Python locks.
"""

from concurrent.futures import ThreadPoolExecutor
from decimal import Decimal

import pytest

from library_desk.auth.authenticator import hash_password
from library_desk.database.user_repository import UserRepository
from library_desk.errors import AlreadyPaid, OutOfStock
from library_desk.models import PaymentCreate, Role

WORKERS = 8

pytestmark = pytest.mark.slow


@pytest.fixture
def members(db_manager, seed_users):
    with db_manager.session_scope() as session:
        repo = UserRepository(session)
        return [
            repo.create(
                f"Reader {i}",
                f"reader{i}@example.com",
                hash_password("secret123", iterations=1_000),
                Role.MEMBER,
            ).id
            for i in range(WORKERS)
        ]


def run_parallel(fn, args):
    """Run ``fn`` once per argument; return results and raised exceptions."""

    def attempt(arg):
        try:
            return fn(arg), None
        except Exception as e:
            return None, e

    with ThreadPoolExecutor(max_workers=WORKERS) as pool:
        outcomes = list(pool.map(attempt, args))
    return [r for r, _ in outcomes if r is not None], [e for _, e in outcomes if e is not None]


def test_last_copy_is_issued_once(desk, tokens, add_book, members):
    book = add_book(copies=1, title="The Last Copy")

    loans, errors = run_parallel(
        lambda member_id: desk.issue_book(tokens["librarian"], book.id, member_id), members
    )

    assert len(loans) == 1
    assert len(errors) == WORKERS - 1
    assert all(isinstance(e, OutOfStock) for e in errors)
    assert desk.get_book(tokens["librarian"], book.id).available_copies == 0
    assert desk.loan_counts(tokens["librarian"]).borrowed == 1


def test_copies_are_never_oversold(desk, tokens, add_book, members):
    book = add_book(copies=3, title="Three Copies")

    loans, errors = run_parallel(
        lambda member_id: desk.issue_book(tokens["librarian"], book.id, member_id), members
    )

    assert len(loans) == 3
    assert all(isinstance(e, OutOfStock) for e in errors)
    assert len({loan.member_id for loan in loans}) == 3
    assert desk.get_book(tokens["librarian"], book.id).available_copies == 0


def test_concurrent_returns_release_once(desk, tokens, seed_users, add_book):
    book = add_book(copies=1)
    loan = desk.issue_book(tokens["librarian"], book.id, seed_users["member"].id)

    returned, errors = run_parallel(
        lambda _: desk.return_book(tokens["librarian"], loan.id), range(WORKERS)
    )

    assert len(returned) == 1
    assert len(errors) == WORKERS - 1
    assert desk.get_book(tokens["librarian"], book.id).available_copies == 1


def test_fine_is_paid_once(desk, tokens, seed_users, overdue_loan):
    loan = overdue_loan()
    data = PaymentCreate(
        member_id=seed_users["member"].id, issued_book_id=loan.id, amount=Decimal("1.00")
    )

    payments, errors = run_parallel(
        lambda _: desk.record_payment(tokens["librarian"], data), range(WORKERS)
    )

    assert len(payments) == 1
    assert all(isinstance(e, AlreadyPaid) for e in errors)
    assert len(desk.list_payments(tokens["admin"])) == 1
