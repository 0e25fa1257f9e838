"""SQLite persistence for users, code reviews, and review findings."""

from __future__ import annotations

import json
import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any
from uuid import UUID

from src.errors import ConflictError
from src.schema import (
    CodeQualityScore,
    CodeReview,
    FindingCategory,
    FindingSeverity,
    ReviewFinding,
    ReviewStatus,
    SubscriptionTier,
    User,
    UserRole,
    utc_now,
)

SCHEMA_STATEMENTS = (
    """
    CREATE TABLE IF NOT EXISTS users (
        id TEXT PRIMARY KEY,
        username TEXT NOT NULL UNIQUE,
        email TEXT NOT NULL UNIQUE,
        password_hash TEXT,
        full_name TEXT,
        avatar_url TEXT,
        github_id INTEGER UNIQUE,
        github_username TEXT,
        github_access_token TEXT,
        role TEXT NOT NULL,
        subscription_tier TEXT NOT NULL,
        is_active INTEGER NOT NULL,
        email_verified INTEGER NOT NULL,
        is_special_user INTEGER NOT NULL,
        usage_limit INTEGER,
        reviews_count INTEGER NOT NULL,
        total_files_reviewed INTEGER NOT NULL,
        last_login_at TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS code_reviews (
        id TEXT PRIMARY KEY,
        user_id TEXT NOT NULL REFERENCES users (id) ON DELETE CASCADE,
        title TEXT NOT NULL,
        description TEXT,
        status TEXT NOT NULL,
        quality_score TEXT,
        total_files_analyzed INTEGER NOT NULL,
        total_lines_analyzed INTEGER NOT NULL,
        analysis_duration_ms INTEGER,
        started_at TEXT,
        completed_at TEXT,
        ai_model_used TEXT,
        tokens_used INTEGER,
        cost_usd REAL,
        created_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS review_findings (
        id TEXT PRIMARY KEY,
        code_review_id TEXT NOT NULL REFERENCES code_reviews (id) ON DELETE CASCADE,
        position INTEGER NOT NULL,
        title TEXT NOT NULL,
        description TEXT NOT NULL,
        severity TEXT NOT NULL,
        category TEXT NOT NULL,
        file_path TEXT,
        line_number INTEGER,
        end_line_number INTEGER,
        code_snippet TEXT,
        suggested_fix TEXT,
        explanation TEXT,
        resources_url TEXT,
        impact_score INTEGER,
        metrics_violated TEXT NOT NULL,
        is_resolved INTEGER NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_review_user_id ON code_reviews (user_id)",
    "CREATE INDEX IF NOT EXISTS idx_review_status ON code_reviews (status)",
    "CREATE INDEX IF NOT EXISTS idx_review_created_at ON code_reviews (created_at)",
    "CREATE INDEX IF NOT EXISTS idx_finding_review_id ON review_findings (code_review_id)",
    "CREATE INDEX IF NOT EXISTS idx_finding_severity ON review_findings (severity)",
    "CREATE INDEX IF NOT EXISTS idx_finding_category ON review_findings (category)",
)

USER_COLUMNS = (
    "id",
    "username",
    "email",
    "password_hash",
    "full_name",
    "avatar_url",
    "github_id",
    "github_username",
    "github_access_token",
    "role",
    "subscription_tier",
    "is_active",
    "email_verified",
    "is_special_user",
    "usage_limit",
    "reviews_count",
    "total_files_reviewed",
    "last_login_at",
    "created_at",
    "updated_at",
)

REVIEW_COLUMNS = (
    "id",
    "user_id",
    "title",
    "description",
    "status",
    "quality_score",
    "total_files_analyzed",
    "total_lines_analyzed",
    "analysis_duration_ms",
    "started_at",
    "completed_at",
    "ai_model_used",
    "tokens_used",
    "cost_usd",
    "created_at",
)

FINDING_COLUMNS = (
    "id",
    "code_review_id",
    "position",
    "title",
    "description",
    "severity",
    "category",
    "file_path",
    "line_number",
    "end_line_number",
    "code_snippet",
    "suggested_fix",
    "explanation",
    "resources_url",
    "impact_score",
    "metrics_violated",
    "is_resolved",
)


def _to_iso(value: datetime | None) -> str | None:
    return value.isoformat(timespec="microseconds") if value is not None else None


def _from_iso(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value is not None else None


def _upsert_sql(table: str, columns: tuple[str, ...]) -> str:
    """Build an INSERT ... ON CONFLICT(id) DO UPDATE statement."""
    placeholders = ", ".join("?" for _ in columns)
    updates = ",\n        ".join(
        f"{column}=excluded.{column}" for column in columns if column != "id"
    )
    return (
        f"INSERT INTO {table} ({', '.join(columns)})\n"
        f"VALUES ({placeholders})\n"
        f"ON CONFLICT(id) DO UPDATE SET\n        {updates}"
    )


class Database:
    """SQLite database handle that owns the schema."""

    def __init__(self, db_path: Path | str) -> None:
        self._db_path = Path(db_path)
        self._ensure_schema()

    @property
    def path(self) -> Path:
        return self._db_path

    @contextmanager
    def connect(self) -> Iterator[sqlite3.Connection]:
        """Open a connection that commits on success and always closes."""
        connection = sqlite3.connect(self._db_path)
        connection.row_factory = sqlite3.Row
        connection.execute("PRAGMA foreign_keys = ON")
        try:
            with connection:
                yield connection
        finally:
            connection.close()

    def _ensure_schema(self) -> None:
        """Create tables and indexes if missing."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        with self.connect() as connection:
            for statement in SCHEMA_STATEMENTS:
                connection.execute(statement)


class UserRepository:
    """Persistence operations for user accounts."""

    def __init__(self, database: Database) -> None:
        self._database = database

    def save(self, user: User) -> User:
        """Insert or update a user, refreshing updated_at."""
        user.updated_at = utc_now()
        row = (
            str(user.id),
            user.username,
            user.email,
            user.password_hash,
            user.full_name,
            user.avatar_url,
            user.github_id,
            user.github_username,
            user.github_access_token,
            user.role.value,
            user.subscription_tier.value,
            int(user.is_active),
            int(user.email_verified),
            int(user.is_special_user),
            user.usage_limit,
            user.reviews_count,
            user.total_files_reviewed,
            _to_iso(user.last_login_at),
            _to_iso(user.created_at),
            _to_iso(user.updated_at),
        )
        try:
            with self._database.connect() as connection:
                connection.execute(_upsert_sql("users", USER_COLUMNS), row)
        except sqlite3.IntegrityError as error:
            raise ConflictError(
                f"User '{user.username}' conflicts with an existing account."
            ) from error
        return user

    def _fetch_one(self, where: str, params: tuple[Any, ...]) -> User | None:
        with self._database.connect() as connection:
            row = connection.execute(f"SELECT * FROM users WHERE {where}", params).fetchone()
        return _user_from_row(row) if row is not None else None

    def _fetch_many(self, where: str = "1 = 1", params: tuple[Any, ...] = ()) -> list[User]:
        with self._database.connect() as connection:
            rows = connection.execute(
                f"SELECT * FROM users WHERE {where} ORDER BY created_at, username",
                params,
            ).fetchall()
        return [_user_from_row(row) for row in rows]

    def get(self, user_id: UUID) -> User | None:
        return self._fetch_one("id = ?", (str(user_id),))

    def get_by_username(self, username: str) -> User | None:
        return self._fetch_one("username = ?", (username,))

    def get_by_email(self, email: str) -> User | None:
        return self._fetch_one("lower(email) = lower(?)", (email,))

    def get_by_github_id(self, github_id: int) -> User | None:
        return self._fetch_one("github_id = ?", (github_id,))

    def exists_by_username(self, username: str) -> bool:
        return self.get_by_username(username) is not None

    def exists_by_email(self, email: str) -> bool:
        return self.get_by_email(email) is not None

    def list_all(self) -> list[User]:
        return self._fetch_many()

    def list_special(self) -> list[User]:
        return self._fetch_many("is_special_user = 1")

    def _count(self, where: str = "1 = 1") -> int:
        with self._database.connect() as connection:
            row = connection.execute(f"SELECT COUNT(*) FROM users WHERE {where}").fetchone()
        return int(row[0])

    def count_all(self) -> int:
        return self._count()

    def count_active(self) -> int:
        return self._count("is_active = 1")

    def count_special(self) -> int:
        return self._count("is_special_user = 1")

    def delete(self, user_id: UUID) -> None:
        with self._database.connect() as connection:
            connection.execute("DELETE FROM users WHERE id = ?", (str(user_id),))

    def _update_usage(self, user_id: UUID, assignment: str, *values: object) -> bool:
        """Apply an in-place counter update so concurrent writers are not lost."""
        with self._database.connect() as connection:
            cursor = connection.execute(
                f"UPDATE users SET {assignment}, updated_at = ? WHERE id = ?",
                (*values, _to_iso(utc_now()), str(user_id)),
            )
            return cursor.rowcount == 1

    def reserve_review_slot(self, user_id: UUID) -> bool:
        """Count one review against the stored quota in a single statement.

        Returns False when the account is missing, inactive, or out of reviews.
        """
        with self._database.connect() as connection:
            cursor = connection.execute(
                RESERVE_REVIEW_SQL,
                (
                    _to_iso(utc_now()),
                    str(user_id),
                    UserRole.ADMIN.value,
                    SubscriptionTier.PREMIUM.value,
                    SubscriptionTier.FREE.max_reviews_per_month,
                ),
            )
            return cursor.rowcount == 1

    def release_review_slot(self, user_id: UUID) -> None:
        """Give back a slot taken by reserve_review_slot for a review that failed."""
        self._update_usage(user_id, "reviews_count = MAX(reviews_count - 1, 0)")

    def add_files_reviewed(self, user_id: UUID, files_count: int) -> None:
        self._update_usage(
            user_id,
            "total_files_reviewed = total_files_reviewed + ?",
            files_count,
        )

    def reset_review_count(self, user_id: UUID) -> bool:
        return self._update_usage(user_id, "reviews_count = 0")


# Mirrors User.can_create_review so concurrent requests cannot overrun the quota.
RESERVE_REVIEW_SQL = """
UPDATE users
SET reviews_count = reviews_count + 1, updated_at = ?
WHERE id = ?
  AND is_active = 1
  AND (
    role = ?
    OR (is_special_user = 1 AND (usage_limit IS NULL OR reviews_count < usage_limit))
    OR (is_special_user = 0 AND (subscription_tier = ? OR reviews_count < ?))
  )
"""


def _user_from_row(row: sqlite3.Row) -> User:
    return User(
        id=UUID(row["id"]),
        username=row["username"],
        email=row["email"],
        password_hash=row["password_hash"],
        full_name=row["full_name"],
        avatar_url=row["avatar_url"],
        github_id=row["github_id"],
        github_username=row["github_username"],
        github_access_token=row["github_access_token"],
        role=UserRole(row["role"]),
        subscription_tier=SubscriptionTier(row["subscription_tier"]),
        is_active=bool(row["is_active"]),
        email_verified=bool(row["email_verified"]),
        is_special_user=bool(row["is_special_user"]),
        usage_limit=row["usage_limit"],
        reviews_count=row["reviews_count"],
        total_files_reviewed=row["total_files_reviewed"],
        last_login_at=_from_iso(row["last_login_at"]),
        created_at=_from_iso(row["created_at"]),
        updated_at=_from_iso(row["updated_at"]),
    )


class ReviewRepository:
    """Persistence operations for code reviews and their findings."""

    def __init__(self, database: Database) -> None:
        self._database = database

    def save(self, review: CodeReview) -> CodeReview:
        """Insert or update a review and replace its findings."""
        score_json = (
            review.quality_score.model_dump_json() if review.quality_score is not None else None
        )
        review_row = (
            str(review.id),
            str(review.reviewer_id),
            review.title,
            review.description,
            review.status.value,
            score_json,
            review.total_files_analyzed,
            review.total_lines_analyzed,
            review.analysis_duration_ms,
            _to_iso(review.started_at),
            _to_iso(review.completed_at),
            review.ai_model_used,
            review.tokens_used,
            review.cost_usd,
            _to_iso(review.created_at),
        )
        finding_rows = [
            (
                str(finding.id),
                str(review.id),
                position,
                finding.title,
                finding.description,
                finding.severity.value,
                finding.category.value,
                finding.file_path,
                finding.line_number,
                finding.end_line_number,
                finding.code_snippet,
                finding.suggested_fix,
                finding.explanation,
                finding.resources_url,
                finding.impact_score,
                json.dumps(finding.metrics_violated),
                int(finding.is_resolved),
            )
            for position, finding in enumerate(review.findings)
        ]
        placeholders = ", ".join("?" for _ in FINDING_COLUMNS)
        with self._database.connect() as connection:
            connection.execute(_upsert_sql("code_reviews", REVIEW_COLUMNS), review_row)
            connection.execute(
                "DELETE FROM review_findings WHERE code_review_id = ?",
                (str(review.id),),
            )
            connection.executemany(
                f"INSERT INTO review_findings ({', '.join(FINDING_COLUMNS)}) "
                f"VALUES ({placeholders})",
                finding_rows,
            )
        return review

    def get(self, review_id: UUID) -> CodeReview | None:
        with self._database.connect() as connection:
            row = connection.execute(
                "SELECT * FROM code_reviews WHERE id = ?",
                (str(review_id),),
            ).fetchone()
            if row is None:
                return None
            return self._review_from_row(connection, row)

    def list_by_reviewer(self, reviewer_id: UUID, *, limit: int | None = None) -> list[CodeReview]:
        """Return a reviewer's reviews, newest first."""
        query = "SELECT * FROM code_reviews WHERE user_id = ? ORDER BY created_at DESC"
        params: tuple[Any, ...] = (str(reviewer_id),)
        if limit is not None:
            query += " LIMIT ?"
            params = (str(reviewer_id), limit)
        with self._database.connect() as connection:
            rows = connection.execute(query, params).fetchall()
            return [self._review_from_row(connection, row) for row in rows]

    def count_all(self) -> int:
        with self._database.connect() as connection:
            row = connection.execute("SELECT COUNT(*) FROM code_reviews").fetchone()
        return int(row[0])

    def count_created_after(self, moment: datetime) -> int:
        with self._database.connect() as connection:
            row = connection.execute(
                "SELECT COUNT(*) FROM code_reviews WHERE created_at > ?",
                (_to_iso(moment),),
            ).fetchone()
        return int(row[0])

    def delete(self, review_id: UUID) -> None:
        with self._database.connect() as connection:
            connection.execute("DELETE FROM code_reviews WHERE id = ?", (str(review_id),))

    def set_finding_resolved(self, review_id: UUID, finding_id: UUID, *, resolved: bool) -> bool:
        """Flip one finding's resolved flag; return whether it existed."""
        with self._database.connect() as connection:
            cursor = connection.execute(
                "UPDATE review_findings SET is_resolved = ? "
                "WHERE id = ? AND code_review_id = ?",
                (int(resolved), str(finding_id), str(review_id)),
            )
        return cursor.rowcount > 0

    @staticmethod
    def _review_from_row(connection: sqlite3.Connection, row: sqlite3.Row) -> CodeReview:
        finding_rows = connection.execute(
            "SELECT * FROM review_findings WHERE code_review_id = ? ORDER BY position",
            (row["id"],),
        ).fetchall()
        score = (
            CodeQualityScore.model_validate_json(row["quality_score"])
            if row["quality_score"] is not None
            else None
        )
        return CodeReview(
            id=UUID(row["id"]),
            reviewer_id=UUID(row["user_id"]),
            title=row["title"],
            description=row["description"],
            status=ReviewStatus(row["status"]),
            findings=[_finding_from_row(finding_row) for finding_row in finding_rows],
            quality_score=score,
            total_files_analyzed=row["total_files_analyzed"],
            total_lines_analyzed=row["total_lines_analyzed"],
            analysis_duration_ms=row["analysis_duration_ms"],
            started_at=_from_iso(row["started_at"]),
            completed_at=_from_iso(row["completed_at"]),
            ai_model_used=row["ai_model_used"],
            tokens_used=row["tokens_used"],
            cost_usd=row["cost_usd"],
            created_at=_from_iso(row["created_at"]),
        )


def _finding_from_row(row: sqlite3.Row) -> ReviewFinding:
    return ReviewFinding(
        id=UUID(row["id"]),
        title=row["title"],
        description=row["description"],
        severity=FindingSeverity(row["severity"]),
        category=FindingCategory(row["category"]),
        file_path=row["file_path"],
        line_number=row["line_number"],
        end_line_number=row["end_line_number"],
        code_snippet=row["code_snippet"],
        suggested_fix=row["suggested_fix"],
        explanation=row["explanation"],
        resources_url=row["resources_url"],
        impact_score=row["impact_score"],
        metrics_violated=json.loads(row["metrics_violated"]),
        is_resolved=bool(row["is_resolved"]),
    )
