"""Account registration, login, and bearer-token authentication."""

from __future__ import annotations

import logging
from uuid import UUID

from src.errors import AuthenticationError, ConflictError, PermissionDeniedError
from src.schema import SubscriptionTier, User, UserRole
from src.security import PasswordHasher, TokenService
from src.storage import UserRepository

INVALID_CREDENTIALS_MESSAGE = "Invalid username or password."

logger = logging.getLogger(__name__)


class AuthService:
    """Owns credentials and token issuance for user accounts."""

    def __init__(
        self,
        users: UserRepository,
        *,
        hasher: PasswordHasher,
        tokens: TokenService,
    ) -> None:
        self._users = users
        self._hasher = hasher
        self._tokens = tokens

    def _ensure_available(self, username: str, email: str) -> None:
        if self._users.exists_by_username(username):
            raise ConflictError(f"Username '{username}' already exists.")
        if self._users.exists_by_email(email):
            raise ConflictError(f"Email '{email}' already exists.")

    def register(
        self,
        username: str,
        email: str,
        password: str,
        full_name: str | None = None,
    ) -> User:
        """Create a FREE-tier USER account."""
        self._ensure_available(username, email)
        user = User(
            username=username,
            email=email,
            password_hash=self._hasher.hash(password),
            full_name=full_name,
            role=UserRole.USER,
            subscription_tier=SubscriptionTier.FREE,
        )
        self._users.save(user)
        logger.info("Registered user %s", username)
        return user

    def create_account(
        self,
        username: str,
        email: str,
        password: str,
        *,
        full_name: str | None = None,
        role: UserRole = UserRole.USER,
        special_usage_limit: int | None = None,
        special: bool = False,
    ) -> User:
        """Create a pre-verified account on behalf of an operator or admin."""
        self._ensure_available(username, email)
        user = User(
            username=username,
            email=email,
            password_hash=self._hasher.hash(password),
            full_name=full_name,
            role=role,
            email_verified=True,
        )
        if special:
            user.make_special_user(special_usage_limit)
        self._users.save(user)
        logger.info("Created %s account %s (special=%s)", role.value, username, special)
        return user

    def login(self, username: str, password: str) -> tuple[User, str]:
        """Verify credentials, record the login, and issue a token."""
        user = self._users.get_by_username(username)
        password_hash = user.password_hash if user is not None else None
        if not self._hasher.verify(password, password_hash) or user is None:
            logger.info("Rejected login for %s", username)
            raise AuthenticationError(INVALID_CREDENTIALS_MESSAGE)
        if not user.is_active:
            raise PermissionDeniedError("Account is disabled.")

        user.record_login()
        self._users.save(user)
        logger.info("User %s logged in", username)
        return user, self.issue_token(user)

    def issue_token(self, user: User) -> str:
        return self._tokens.issue(user)

    def authenticate(self, token: str, *, header_user_id: str | None = None) -> User:
        """Resolve the user behind a bearer token.

        A supplied X-User-Id header must name the same user as the token.
        """
        claims = self._tokens.verify(token)
        if header_user_id is not None:
            try:
                claimed_id = UUID(header_user_id)
            except ValueError as error:
                raise PermissionDeniedError("X-User-Id header is not a valid user id.") from error
            if claimed_id != claims.user_id:
                raise PermissionDeniedError("X-User-Id header does not match the bearer token.")

        user = self._users.get(claims.user_id)
        if user is None:
            raise AuthenticationError("User for this token no longer exists.")
        if not user.is_active:
            raise PermissionDeniedError("Account is disabled.")
        return user
