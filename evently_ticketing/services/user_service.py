"""
User service for profile lookups and first-sight provisioning.
"""

import logging
from typing import Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.user import User, UserRole
from ..schemas.user import UserProfileUpdate
from ..utils.auth import TokenData
from ..utils.exceptions import AuthenticationError

logger = logging.getLogger(__name__)


class UserService:
    """Service class for user operations."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_user_by_id(self, user_id: UUID) -> Optional[User]:
        """
        Get a user by ID.

        Args:
            user_id: The user ID

        Returns:
            The user if found, None otherwise
        """
        result = await self.db.execute(
            select(User).where(User.id == user_id)
        )
        return result.scalar_one_or_none()

    async def get_user_by_email(self, email: str) -> Optional[User]:
        """Get a user by email."""
        result = await self.db.execute(
            select(User).where(User.email == email)
        )
        return result.scalar_one_or_none()

    async def ensure_profile(self, token_data: TokenData) -> User:
        """
        Return the profile for a verified token, creating it on first sight.

        The display name comes from the token's metadata, falling back to
        the local part of the email address.

        Args:
            token_data: Claims of a verified access token

        Returns:
            The existing or newly created profile

        Raises:
            AuthenticationError: If the token carries no email and no profile exists
        """
        user_id = UUID(token_data.user_id)
        user = await self.get_user_by_id(user_id)
        if user is not None:
            return user

        if not token_data.email:
            raise AuthenticationError("Token has no email claim")

        user = User(
            id=user_id,
            email=token_data.email,
            full_name=token_data.full_name or token_data.email.split("@")[0],
            role=UserRole.USER,
        )
        self.db.add(user)
        await self.db.commit()

        logger.info(f"Created profile for user {user_id}")
        return user

    async def update_profile(self, user: User, data: UserProfileUpdate) -> User:
        """
        Update the caller's own profile.

        Args:
            user: The profile to update
            data: Fields to change

        Returns:
            The updated profile
        """
        for field, value in data.model_dump(exclude_unset=True).items():
            setattr(user, field, value)

        await self.db.commit()
        return user
