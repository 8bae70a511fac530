"""User lookups shared by the authenticator and the circulation components."""

from collections.abc import Iterable
from datetime import datetime

from sqlalchemy import delete, desc, exists, func, or_, select, update
from sqlalchemy.exc import IntegrityError

from ..errors import DuplicateEmail, NotFound, UserInUse
from ..models.user import Role, User
from .repository import BaseRepository
from .schema import BookRequest as BookRequestDB
from .schema import IssuedBook as IssuedBookDB
from .schema import Notification as NotificationDB
from .schema import Payment as PaymentDB
from .schema import User as UserDB
from .session import safe_flush, safe_query


class UserRepository(BaseRepository[UserDB, User]):
    @property
    def model_class(self) -> type[UserDB]:
        return UserDB

    @property
    def response_schema(self) -> type[User]:
        return User

    def get_row_by_email(self, email: str) -> UserDB | None:
        """Return the raw row (password hash included) for credential checks."""
        return safe_query(
            self.session,
            lambda s: s.execute(
                select(UserDB).where(func.lower(UserDB.email) == email.lower())
            ).scalar_one_or_none(),
            "Failed to get user by email",
        )

    def create(self, name: str, email: str, password_hash: str, role: Role) -> User:
        if self.get_row_by_email(email) is not None:
            raise DuplicateEmail(f"User with email {email} already exists")

        user = UserDB(name=name, email=email.lower(), password_hash=password_hash, role=role)
        self.session.add(user)
        try:
            safe_flush(self.session, "create user")
        except IntegrityError as e:
            raise DuplicateEmail(f"User with email {email} already exists") from e
        return self._to_response_model(user)

    def require_member(self, member_id: int) -> User:
        """Return the user if it exists and holds the member role."""
        user = self.get_by_id(member_id)
        if user is None or user.role is not Role.MEMBER:
            raise NotFound(f"Member {member_id} not found")
        return user

    def list_users(self, role: Role | None = None) -> list[User]:
        """Users newest first; without a role filter, admins are left out."""
        query = select(UserDB).order_by(desc(UserDB.created_at), desc(UserDB.id))
        if role is not None:
            query = query.where(UserDB.role == role)
        else:
            query = query.where(UserDB.role.in_([Role.LIBRARIAN, Role.MEMBER]))
        rows = safe_query(
            self.session, lambda s: s.execute(query).scalars().all(), "Failed to list users"
        )
        return [self._to_response_model(row) for row in rows]

    def count_by_roles(self, roles: Iterable[Role]) -> int:
        query = select(func.count()).select_from(UserDB).where(UserDB.role.in_(list(roles)))
        return (
            safe_query(self.session, lambda s: s.execute(query).scalar(), "Failed to count users")
            or 0
        )

    def registered_since(self, since: datetime) -> list[User]:
        query = (
            select(UserDB)
            .where(UserDB.created_at >= since, UserDB.role != Role.ADMIN)
            .order_by(desc(UserDB.created_at))
        )
        rows = safe_query(
            self.session, lambda s: s.execute(query).scalars().all(), "Failed to list new users"
        )
        return [self._to_response_model(row) for row in rows]

    def set_password_hash(self, user_id: int, password_hash: str) -> User:
        stmt = (
            update(UserDB)
            .where(UserDB.id == user_id)
            .values(password_hash=password_hash)
            .execution_options(synchronize_session=False)
        )
        result = safe_query(self.session, lambda s: s.execute(stmt), "Failed to update password")
        if result.rowcount != 1:
            raise NotFound(f"User {user_id} not found")
        return self.require(user_id)

    def has_history(self, user_id: int) -> bool:
        """True if any loan, request or payment refers to the user."""
        query = select(
            or_(
                exists().where(IssuedBookDB.member_id == user_id),
                exists().where(
                    or_(BookRequestDB.member_id == user_id, BookRequestDB.resolved_by == user_id)
                ),
                exists().where(
                    or_(PaymentDB.member_id == user_id, PaymentDB.processed_by == user_id)
                ),
            )
        )
        return bool(
            safe_query(self.session, lambda s: s.scalar(query), "Failed to check user history")
        )

    def delete(self, user_id: int) -> User:
        """
        Remove a user together with their tokens and notifications.

        Circulation records are kept, so a user any of them refers to
        cannot be removed.

        Raises:
            NotFound: If the user does not exist
            UserInUse: If loans, requests or payments refer to the user
        """
        row = self._require_row(user_id)
        if self.has_history(user_id):
            raise UserInUse(f"User {user_id} has circulation history and cannot be deleted")

        user = self._to_response_model(row)
        safe_query(
            self.session,
            lambda s: s.execute(delete(NotificationDB).where(NotificationDB.user_id == user_id)),
            "Failed to delete notifications",
        )
        self.session.delete(row)
        safe_flush(self.session, "delete user")
        return user
