"""
Access policy.

Who may do what is one table, checked once per desk operation before any
business logic runs. A rule lists the roles allowed to perform an operation
on anyone's behalf. Rules with ``owner_allowed`` also admit the principal
the operation is about (a member paying their own fine). ``target_roles``
narrows what a role may act on: librarians manage member accounts only.
"""

from dataclasses import dataclass, field
from enum import Enum

from ..errors import Forbidden
from ..models.user import Principal, Role

ADMIN_ONLY = frozenset({Role.ADMIN})
STAFF = frozenset({Role.ADMIN, Role.LIBRARIAN})
MEMBERS = frozenset({Role.MEMBER})
EVERYONE = frozenset(Role)


class Operation(str, Enum):
    ADD_BOOK = "add_book"
    LIST_BOOKS = "list_books"
    CREATE_REQUEST = "create_request"
    LIST_PENDING_REQUESTS = "list_pending_requests"
    RESOLVE_REQUEST = "resolve_request"
    LIST_MY_REQUESTS = "list_my_requests"
    ISSUE_LOAN = "issue_loan"
    RETURN_LOAN = "return_loan"
    LIST_LOANS = "list_loans"
    LIST_MY_LOANS = "list_my_loans"
    RECORD_PAYMENT = "record_payment"
    LIST_PAYMENTS = "list_payments"
    LIST_MEMBER_PAYMENTS = "list_member_payments"
    MEMBER_FINES = "member_fines"
    DASHBOARD_STATS = "dashboard_stats"
    LOAN_COUNTS = "loan_counts"
    CREATE_USER = "create_user"
    CREATE_MEMBER = "create_member"
    DELETE_USER = "delete_user"
    CHANGE_PASSWORD = "change_password"
    LIST_USERS = "list_users"
    NOTIFICATIONS = "notifications"


@dataclass(frozen=True)
class Rule:
    roles: frozenset[Role]
    owner_allowed: bool = False
    target_roles: dict[Role, frozenset[Role]] = field(default_factory=dict)


POLICY: dict[Operation, Rule] = {
    Operation.ADD_BOOK: Rule(STAFF),
    Operation.LIST_BOOKS: Rule(EVERYONE),
    Operation.CREATE_REQUEST: Rule(MEMBERS),
    Operation.LIST_PENDING_REQUESTS: Rule(STAFF),
    Operation.RESOLVE_REQUEST: Rule(STAFF),
    Operation.LIST_MY_REQUESTS: Rule(MEMBERS),
    Operation.ISSUE_LOAN: Rule(STAFF),
    Operation.RETURN_LOAN: Rule(EVERYONE),
    Operation.LIST_LOANS: Rule(STAFF),
    Operation.LIST_MY_LOANS: Rule(MEMBERS),
    Operation.RECORD_PAYMENT: Rule(STAFF, owner_allowed=True),
    Operation.LIST_PAYMENTS: Rule(STAFF),
    Operation.LIST_MEMBER_PAYMENTS: Rule(STAFF, owner_allowed=True),
    Operation.MEMBER_FINES: Rule(STAFF, owner_allowed=True),
    Operation.DASHBOARD_STATS: Rule(ADMIN_ONLY),
    Operation.LOAN_COUNTS: Rule(STAFF),
    Operation.CREATE_USER: Rule(ADMIN_ONLY),
    Operation.CREATE_MEMBER: Rule(STAFF),
    Operation.DELETE_USER: Rule(ADMIN_ONLY),
    Operation.CHANGE_PASSWORD: Rule(
        STAFF, owner_allowed=True, target_roles={Role.LIBRARIAN: MEMBERS}
    ),
    Operation.LIST_USERS: Rule(STAFF),
    Operation.NOTIFICATIONS: Rule(EVERYONE),
}


def is_allowed(
    principal: Principal,
    operation: Operation,
    owner_id: int | None = None,
    target_role: Role | None = None,
) -> bool:
    rule = POLICY[operation]
    if principal.role in rule.roles:
        targets = rule.target_roles.get(principal.role)
        if targets is None or target_role in targets:
            return True
    return rule.owner_allowed and owner_id is not None and principal.id == owner_id


def authorize(
    principal: Principal,
    operation: Operation,
    owner_id: int | None = None,
    target_role: Role | None = None,
) -> None:
    """Raise ``Forbidden`` unless ``principal`` may perform ``operation``."""
    if is_allowed(principal, operation, owner_id, target_role):
        return
    action = operation.value.replace("_", " ")
    targets = POLICY[operation].target_roles.get(principal.role)
    if targets:
        names = ", ".join(sorted(role.value for role in targets))
        raise Forbidden(f"Role '{principal.role.value}' may only {action} for {names} accounts")
    raise Forbidden(f"Role '{principal.role.value}' may not {action}")
