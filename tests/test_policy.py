"""Tests for the access policy table."""

import pytest

from library_desk.auth.policy import POLICY, Operation, authorize, is_allowed
from library_desk.errors import Forbidden
from library_desk.models import Principal, Role

ADMIN = Principal(id=1, role=Role.ADMIN)
LIBRARIAN = Principal(id=2, role=Role.LIBRARIAN)
MEMBER = Principal(id=3, role=Role.MEMBER)


def test_every_operation_has_a_rule():
    assert set(POLICY) == set(Operation)


@pytest.mark.parametrize(
    ("operation", "allowed"),
    [
        (Operation.ADD_BOOK, {Role.ADMIN, Role.LIBRARIAN}),
        (Operation.LIST_BOOKS, {Role.ADMIN, Role.LIBRARIAN, Role.MEMBER}),
        (Operation.CREATE_REQUEST, {Role.MEMBER}),
        (Operation.LIST_PENDING_REQUESTS, {Role.ADMIN, Role.LIBRARIAN}),
        (Operation.RESOLVE_REQUEST, {Role.ADMIN, Role.LIBRARIAN}),
        (Operation.ISSUE_LOAN, {Role.ADMIN, Role.LIBRARIAN}),
        (Operation.RETURN_LOAN, {Role.ADMIN, Role.LIBRARIAN, Role.MEMBER}),
        (Operation.LIST_MY_LOANS, {Role.MEMBER}),
        (Operation.RECORD_PAYMENT, {Role.ADMIN, Role.LIBRARIAN}),
        (Operation.DASHBOARD_STATS, {Role.ADMIN}),
        (Operation.CREATE_USER, {Role.ADMIN}),
        (Operation.CREATE_MEMBER, {Role.ADMIN, Role.LIBRARIAN}),
        (Operation.DELETE_USER, {Role.ADMIN}),
    ],
)
def test_roles_per_operation(operation, allowed):
    for principal in (ADMIN, LIBRARIAN, MEMBER):
        assert is_allowed(principal, operation) is (principal.role in allowed)


class TestOwnership:
    def test_member_may_pay_own_fine(self):
        authorize(MEMBER, Operation.RECORD_PAYMENT, owner_id=MEMBER.id)

    def test_member_may_not_pay_for_someone_else(self):
        with pytest.raises(Forbidden):
            authorize(MEMBER, Operation.RECORD_PAYMENT, owner_id=99)

    def test_ownership_without_owner_id_is_denied(self):
        with pytest.raises(Forbidden):
            authorize(MEMBER, Operation.RECORD_PAYMENT)

    def test_ownership_does_not_unlock_other_operations(self):
        with pytest.raises(Forbidden):
            authorize(MEMBER, Operation.ISSUE_LOAN, owner_id=MEMBER.id)

    @pytest.mark.parametrize("operation", [Operation.MEMBER_FINES, Operation.LIST_MEMBER_PAYMENTS])
    def test_member_may_view_own_records(self, operation):
        assert is_allowed(MEMBER, operation, owner_id=MEMBER.id)
        assert not is_allowed(MEMBER, operation, owner_id=LIBRARIAN.id)

    def test_staff_need_no_ownership(self):
        authorize(LIBRARIAN, Operation.RECORD_PAYMENT, owner_id=MEMBER.id)


class TestPasswordChanges:
    def test_anyone_may_change_their_own(self):
        for principal in (ADMIN, LIBRARIAN, MEMBER):
            authorize(
                principal,
                Operation.CHANGE_PASSWORD,
                owner_id=principal.id,
                target_role=principal.role,
            )

    def test_member_may_not_change_another(self):
        assert not is_allowed(
            MEMBER, Operation.CHANGE_PASSWORD, owner_id=4, target_role=Role.MEMBER
        )

    def test_librarian_may_change_a_member(self):
        assert is_allowed(LIBRARIAN, Operation.CHANGE_PASSWORD, owner_id=3, target_role=Role.MEMBER)

    @pytest.mark.parametrize("target", [Role.LIBRARIAN, Role.ADMIN])
    def test_librarian_may_not_change_staff(self, target):
        with pytest.raises(Forbidden, match="only change password for member accounts"):
            authorize(LIBRARIAN, Operation.CHANGE_PASSWORD, owner_id=9, target_role=target)

    @pytest.mark.parametrize("target", list(Role))
    def test_admin_may_change_anyone(self, target):
        assert is_allowed(ADMIN, Operation.CHANGE_PASSWORD, owner_id=9, target_role=target)


def test_forbidden_message_names_the_role():
    with pytest.raises(Forbidden, match="member"):
        authorize(MEMBER, Operation.DASHBOARD_STATS)
