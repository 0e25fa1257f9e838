"""Administrative user management and usage statistics."""

from __future__ import annotations

import logging
from datetime import timedelta
from uuid import UUID

from src.auth import AuthService
from src.dto import AdminStatsDTO, CreateSpecialUserRequest, UpdateUserRequest
from src.errors import NotFoundError, PermissionDeniedError
from src.schema import User, UserRole, utc_now
from src.storage import ReviewRepository, UserRepository

logger = logging.getLogger(__name__)


class AdminService:
    def __init__(
        self,
        users: UserRepository,
        reviews: ReviewRepository,
        auth: AuthService,
    ) -> None:
        self._users = users
        self._reviews = reviews
        self._auth = auth

    def list_users(self) -> list[User]:
        return self._users.list_all()

    def list_special_users(self) -> list[User]:
        return self._users.list_special()

    def get_user(self, user_id: UUID) -> User:
        user = self._users.get(user_id)
        if user is None:
            raise NotFoundError(f"User not found with id: {user_id}")
        return user

    def create_special_user(self, request: CreateSpecialUserRequest) -> User:
        """Create a verified account that bypasses tier quotas."""
        return self._auth.create_account(
            request.username,
            request.email,
            request.password,
            full_name=request.full_name,
            special=True,
            special_usage_limit=request.usage_limit,
        )

    def update_user(self, user_id: UUID, request: UpdateUserRequest) -> User:
        """Apply the fields present in a partial update."""
        user = self.get_user(user_id)
        if request.full_name is not None:
            user.full_name = request.full_name
        if request.role is not None:
            user.role = request.role
        if request.subscription_tier is not None:
            user.subscription_tier = request.subscription_tier
        if request.is_active is not None:
            user.is_active = request.is_active

        # usageLimit on its own only applies to accounts that are already special.
        if request.is_special_user is True:
            user.make_special_user(request.usage_limit)
        elif request.is_special_user is False:
            user.revoke_special_user()
        elif request.usage_limit is not None and user.is_special_user:
            user.usage_limit = request.usage_limit

        self._users.save(user)
        logger.info("Updated user %s", user.username)
        return user

    def delete_user(self, user_id: UUID) -> None:
        user = self.get_user(user_id)
        if user.role == UserRole.ADMIN:
            raise PermissionDeniedError("Cannot delete admin users.")
        self._users.delete(user.id)
        logger.info("Deleted user %s", user.username)

    def reset_usage(self, user_id: UUID) -> User:
        if not self._users.reset_review_count(user_id):
            raise NotFoundError(f"User not found with id: {user_id}")
        user = self.get_user(user_id)
        logger.info("Reset usage for user %s", user.username)
        return user

    def stats(self) -> AdminStatsDTO:
        now = utc_now()
        start_of_day = now.replace(hour=0, minute=0, second=0, microsecond=0)
        return AdminStatsDTO(
            total_users=self._users.count_all(),
            active_users=self._users.count_active(),
            special_users=self._users.count_special(),
            total_reviews=self._reviews.count_all(),
            reviews_today=self._reviews.count_created_after(start_of_day),
            reviews_this_week=self._reviews.count_created_after(now - timedelta(days=7)),
            reviews_this_month=self._reviews.count_created_after(now - timedelta(days=30)),
        )
