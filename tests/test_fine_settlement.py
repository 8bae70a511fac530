"""Tests for the fine policy and payment settlement."""

from datetime import date, datetime, timedelta
from decimal import Decimal

import pytest

from library_desk.database.fine_settlement import FineSettlement
from library_desk.database.inventory import InventoryLedger
from library_desk.database.loan_manager import LoanManager
from library_desk.database.notifications import NotificationSink
from library_desk.errors import AlreadyPaid, Conflict, NotFound, ValidationFailed
from library_desk.models import FinePolicy, Loan, PaymentMethod

TODAY = date(2024, 3, 20)


def make_loan(due: date, returned: datetime | None = None, fine_paid: bool = False) -> Loan:
    return Loan(
        id=1,
        book_id=1,
        member_id=1,
        issue_date=datetime(2024, 3, 1, 10, 0),
        due_date=due,
        return_date=returned,
        fine_paid=fine_paid,
    )


class TestFinePolicy:
    policy = FinePolicy(daily_rate=Decimal("0.25"))

    def test_not_late_owes_nothing(self):
        assert self.policy.compute(make_loan(TODAY), TODAY) == Decimal("0.00")
        assert self.policy.compute(make_loan(TODAY + timedelta(days=5)), TODAY) == Decimal("0.00")

    def test_open_loan_accrues_until_today(self):
        loan = make_loan(TODAY - timedelta(days=3))

        assert self.policy.compute(loan, TODAY) == Decimal("0.75")

    def test_returned_loan_stops_at_return_date(self):
        loan = make_loan(TODAY - timedelta(days=10), returned=datetime(2024, 3, 12, 16, 30))

        # Due 10 March, returned 12 March
        assert self.policy.compute(loan, TODAY) == Decimal("0.50")

    def test_grace_days_are_forgiven(self):
        policy = FinePolicy(daily_rate=Decimal("1.00"), grace_days=2)

        assert policy.compute(make_loan(TODAY - timedelta(days=1)), TODAY) == Decimal("0.00")
        assert policy.compute(make_loan(TODAY - timedelta(days=5)), TODAY) == Decimal("3.00")

    def test_paid_is_sticky(self):
        loan = make_loan(TODAY - timedelta(days=30), fine_paid=True)

        assert self.policy.compute(loan, TODAY) == Decimal("0.00")

    def test_never_negative(self):
        policy = FinePolicy(daily_rate=Decimal("0.10"), grace_days=100)

        assert policy.compute(make_loan(TODAY - timedelta(days=3)), TODAY) == Decimal("0.00")


@pytest.fixture
def settlement(session, fine_policy):
    return FineSettlement(session, fine_policy)


@pytest.fixture
def late_loan(session, book_data, seed_users):
    """A loan that fell due four days ago and is still open."""
    book = InventoryLedger(session).add_book(book_data(title="Late Book"))
    today = date.today()
    return LoanManager(session).issue(
        book.id,
        seed_users["member"].id,
        due_date=today - timedelta(days=4),
        today=today - timedelta(days=18),
    )


class TestRecordPayment:
    def test_payment_settles_the_loan(self, session, settlement, late_loan, seed_users):
        payment = settlement.record_payment(
            member_id=seed_users["member"].id,
            issued_book_id=late_loan.id,
            amount=Decimal("1.00"),
            method=PaymentMethod.CARD,
            description="Late fee",
            processed_by=seed_users["librarian"].id,
        )

        assert payment.amount == Decimal("1.00")
        assert payment.payment_method is PaymentMethod.CARD
        loan = LoanManager(session).get_loan(late_loan.id)
        assert loan.fine_paid is True
        assert loan.payment_date is not None
        assert settlement.compute_fine(loan) == Decimal("0.00")

    def test_staff_are_notified(self, session, settlement, late_loan, seed_users):
        payment = settlement.record_payment(
            seed_users["member"].id, late_loan.id, Decimal("1.00")
        )

        sink = NotificationSink(session)
        for role in ("admin", "librarian"):
            [notification] = sink.list_for_user(seed_users[role].id)
            assert notification.type == "payment"
            assert notification.related_id == payment.id
            assert "Max Member" in notification.message
        assert sink.list_for_user(seed_users["member"].id) == []

    def test_second_payment_is_rejected(self, settlement, late_loan, seed_users):
        member_id = seed_users["member"].id
        settlement.record_payment(member_id, late_loan.id, Decimal("1.00"))

        with pytest.raises(AlreadyPaid) as exc_info:
            settlement.record_payment(member_id, late_loan.id, Decimal("1.00"))

        assert isinstance(exc_info.value, Conflict)
        assert len(settlement.list_for_member(member_id)) == 1

    def test_loan_of_another_member(self, settlement, late_loan, seed_users):
        with pytest.raises(ValidationFailed):
            settlement.record_payment(seed_users["other_member"].id, late_loan.id, Decimal("1.00"))

    @pytest.mark.parametrize("amount", [Decimal("0"), Decimal("-2.50")])
    def test_amount_must_be_positive(self, settlement, late_loan, seed_users, amount):
        with pytest.raises(ValidationFailed):
            settlement.record_payment(seed_users["member"].id, late_loan.id, amount)

    def test_missing_loan(self, settlement, seed_users):
        with pytest.raises(NotFound):
            settlement.record_payment(seed_users["member"].id, 999, Decimal("1.00"))


class TestQueries:
    def test_outstanding_fines(self, settlement, late_loan, seed_users):
        summary = settlement.outstanding_fines(seed_users["member"].id)

        assert summary.total == Decimal("1.00")
        [fine] = summary.fines
        assert fine.loan_id == late_loan.id
        assert fine.title == "Late Book"
        assert fine.days_late == 4

    def test_paid_fines_are_not_outstanding(self, settlement, late_loan, seed_users):
        settlement.record_payment(seed_users["member"].id, late_loan.id, Decimal("1.00"))

        summary = settlement.outstanding_fines(seed_users["member"].id)

        assert summary.fines == []
        assert summary.total == Decimal("0.00")

    def test_list_payments_has_names(self, settlement, late_loan, seed_users):
        settlement.record_payment(
            seed_users["member"].id,
            late_loan.id,
            Decimal("1.00"),
            processed_by=seed_users["librarian"].id,
        )

        [detail] = settlement.list_payments()

        assert detail.member_name == "Max Member"
        assert detail.processed_by_name == "Lena Librarian"
