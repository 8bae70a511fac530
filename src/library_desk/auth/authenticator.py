"""
Authenticator: credentials in, principals out.

Passwords are stored as salted PBKDF2-HMAC-SHA256 digests in the form
``pbkdf2_sha256$<iterations>$<salt hex>$<digest hex>``. Logging in issues a
random bearer token stored in ``auth_tokens`` with an expiry; every desk
operation turns that token back into a ``Principal`` before doing anything
else.
"""

import hashlib
import hmac
import logging
import secrets
from datetime import datetime, timedelta

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from ..database.notifications import NotificationSink
from ..database.schema import AuthToken as AuthTokenDB
from ..database.schema import User as UserDB
from ..database.session import safe_flush, safe_query
from ..database.user_repository import UserRepository
from ..errors import InvalidToken, TokenExpired, Unauthenticated, ValidationFailed
from ..models.user import AccessToken, Principal, Role, User

logger = logging.getLogger(__name__)

PBKDF2_ITERATIONS = 260_000
MIN_PASSWORD_LENGTH = 6
_SCHEME = "pbkdf2_sha256"

_CHANGED_BY = {
    Role.ADMIN: "Your password was changed by an administrator",
    Role.LIBRARIAN: "Your password was updated by a librarian",
}


def hash_password(password: str, iterations: int = PBKDF2_ITERATIONS) -> str:
    salt = secrets.token_hex(16)
    digest = hashlib.pbkdf2_hmac(
        "sha256", password.encode("utf-8"), bytes.fromhex(salt), iterations
    )
    return f"{_SCHEME}${iterations}${salt}${digest.hex()}"


def _check_password(password: str) -> None:
    if len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationFailed(f"Password must be at least {MIN_PASSWORD_LENGTH} characters long")


def verify_password(password: str, encoded: str) -> bool:
    """Check ``password`` against an encoded hash; malformed hashes never match."""
    try:
        scheme, iterations, salt, expected = encoded.split("$")
        rounds = int(iterations)
        salt_bytes = bytes.fromhex(salt)
    except ValueError:
        return False
    if scheme != _SCHEME:
        return False
    digest = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt_bytes, rounds)
    return hmac.compare_digest(digest.hex(), expected)


class Authenticator:
    def __init__(
        self,
        session: Session,
        token_ttl_minutes: int = 7 * 24 * 60,
        notifications: NotificationSink | None = None,
    ):
        self.session = session
        self.token_ttl = timedelta(minutes=token_ttl_minutes)
        self.users = UserRepository(session)
        self.notifications = notifications or NotificationSink(session)

    def register(
        self, name: str, email: str, password: str, role: Role | str = Role.MEMBER
    ) -> User:
        """
        Create a user with a hashed password.

        Raises:
            ValidationFailed: If the password is too short or the role is unknown
            DuplicateEmail: If the email is already registered
        """
        _check_password(password)
        try:
            role = Role(role)
        except ValueError as e:
            raise ValidationFailed(f"Invalid role '{role}'") from e

        user = self.users.create(name, email, hash_password(password), role)
        logger.info("Registered user %s with role %s", user.id, role.value)
        return user

    def login(self, email: str, password: str) -> AccessToken:
        """
        Verify credentials and issue a bearer token.

        Raises:
            Unauthenticated: If the email is unknown or the password is wrong
        """
        row = self.users.get_row_by_email(email)
        if row is None or not verify_password(password, row.password_hash):
            logger.warning("Failed login attempt for %s", email)
            raise Unauthenticated("Invalid email or password")

        now = datetime.now()
        self._purge_expired(now)
        token = AuthTokenDB(
            token=secrets.token_hex(32),
            user_id=row.id,
            issued_at=now,
            expires_at=now + self.token_ttl,
        )
        self.session.add(token)
        safe_flush(self.session, "issue token")

        logger.info("User %s logged in", row.id)
        return AccessToken(
            token=token.token,
            expires_at=token.expires_at,
            user=User.model_validate(row, from_attributes=True),
        )

    def authenticate(self, token: str | None) -> Principal:
        """
        Resolve a bearer token to the principal it was issued to.

        Raises:
            Unauthenticated: If no token was supplied
            InvalidToken: If the token is unknown
            TokenExpired: If the token is past its expiry
        """
        if not token:
            raise Unauthenticated("Authentication token required")

        row = safe_query(
            self.session,
            lambda s: s.execute(
                select(AuthTokenDB.expires_at, UserDB.id, UserDB.role)
                .join(UserDB, AuthTokenDB.user_id == UserDB.id)
                .where(AuthTokenDB.token == token)
            ).first(),
            "Failed to look up token",
        )
        if row is None:
            raise InvalidToken()

        expires_at, user_id, role = row
        if expires_at <= datetime.now():
            raise TokenExpired()
        return Principal(id=user_id, role=role)

    def logout(self, token: str) -> bool:
        """Revoke a token; False if it was not known."""
        result = safe_query(
            self.session,
            lambda s: s.execute(delete(AuthTokenDB).where(AuthTokenDB.token == token)),
            "Failed to revoke token",
        )
        return result.rowcount == 1

    def change_password(self, user_id: int, new_password: str, changed_by: Principal) -> User:
        """
        Replace a user's password and notify them.

        A change made by a librarian is also reported to every admin.

        Raises:
            ValidationFailed: If the new password is too short
            NotFound: If the user does not exist
        """
        _check_password(new_password)
        user = self.users.set_password_hash(user_id, hash_password(new_password))

        if changed_by.id == user_id:
            message = "Your password was changed"
        else:
            message = _CHANGED_BY.get(changed_by.role, "Your password was changed")
        self.notifications.notify(
            user_id, message, type="password_change", related_id=user_id, related_type="user"
        )
        if changed_by.role is Role.LIBRARIAN and changed_by.id != user_id:
            librarian = self.users.require(changed_by.id)
            self.notifications.notify_roles(
                [Role.ADMIN],
                f"Librarian {librarian.name} updated password for member {user.name}",
                type="password_change",
                related_id=user_id,
                related_type="user",
            )

        logger.info("Password for user %s changed by user %s", user_id, changed_by.id)
        return user

    def _purge_expired(self, now: datetime) -> None:
        result = safe_query(
            self.session,
            lambda s: s.execute(delete(AuthTokenDB).where(AuthTokenDB.expires_at <= now)),
            "Failed to purge expired tokens",
        )
        if result.rowcount:
            logger.debug("Purged %d expired token(s)", result.rowcount)
