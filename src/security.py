"""Password hashing and bearer token helpers."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from uuid import UUID

import bcrypt
import jwt

from src.errors import AuthenticationError, ValidationFailedError
from src.schema import User

JWT_ALGORITHM = "HS256"
DEFAULT_BCRYPT_ROUNDS = 12
BCRYPT_MAX_PASSWORD_BYTES = 72


class PasswordHasher:
    """bcrypt password hashing with a configurable work factor."""

    def __init__(self, rounds: int = DEFAULT_BCRYPT_ROUNDS) -> None:
        self._rounds = rounds
        self._dummy_hash: bytes | None = None

    def hash(self, password: str) -> str:
        encoded = password.encode("utf-8")
        if len(encoded) > BCRYPT_MAX_PASSWORD_BYTES:
            raise ValidationFailedError(
                f"Password must be at most {BCRYPT_MAX_PASSWORD_BYTES} bytes."
            )
        return bcrypt.hashpw(encoded, bcrypt.gensalt(rounds=self._rounds)).decode("utf-8")

    def verify(self, password: str, password_hash: str | None) -> bool:
        """Check a password, spending bcrypt time even when no hash exists."""
        encoded = password.encode("utf-8")[:BCRYPT_MAX_PASSWORD_BYTES]
        if password_hash is None:
            if self._dummy_hash is None:
                self._dummy_hash = bcrypt.hashpw(b"dummy", bcrypt.gensalt(rounds=self._rounds))
            bcrypt.checkpw(encoded, self._dummy_hash)
            return False
        return bcrypt.checkpw(encoded, password_hash.encode("utf-8"))


@dataclass(frozen=True, slots=True)
class TokenClaims:
    user_id: UUID
    username: str
    email: str
    expires_at: datetime


class TokenService:
    """Issue and verify HS256 bearer tokens."""

    def __init__(self, secret: str, *, expiration_seconds: int) -> None:
        self._secret = secret
        self._expiration = timedelta(seconds=expiration_seconds)

    def issue(self, user: User) -> str:
        issued_at = datetime.now(tz=UTC)
        return jwt.encode(
            {
                "sub": user.username,
                "userId": str(user.id),
                "email": user.email,
                "iat": issued_at,
                "exp": issued_at + self._expiration,
            },
            self._secret,
            algorithm=JWT_ALGORITHM,
        )

    def verify(self, token: str) -> TokenClaims:
        """Decode a token, raising AuthenticationError when it is unusable."""
        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[JWT_ALGORITHM],
                options={"require": ["sub", "userId", "exp"]},
            )
        except jwt.ExpiredSignatureError as error:
            raise AuthenticationError("Token has expired.") from error
        except jwt.InvalidTokenError as error:
            raise AuthenticationError("Invalid token.") from error

        try:
            user_id = UUID(str(payload["userId"]))
        except ValueError as error:
            raise AuthenticationError("Invalid token.") from error
        return TokenClaims(
            user_id=user_id,
            username=str(payload["sub"]),
            email=str(payload.get("email", "")),
            expires_at=datetime.fromtimestamp(payload["exp"], tz=UTC),
        )
