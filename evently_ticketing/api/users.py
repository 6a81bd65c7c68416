"""
Profile API endpoints.
"""

from typing import Any

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..models.user import User
from ..schemas.user import UserProfile, UserProfileUpdate
from ..services.user_service import UserService
from ..utils.dependencies import get_current_user


router = APIRouter(prefix="/users", tags=["users"])


@router.get("/me", response_model=UserProfile)
async def get_my_profile(current_user: User = Depends(get_current_user)) -> Any:
    """
    Get the current user's profile.

    The profile is created from the token claims on first use.
    """
    return UserProfile.model_validate(current_user)


@router.patch("/me", response_model=UserProfile)
async def update_my_profile(
    profile_data: UserProfileUpdate,
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
) -> Any:
    """
    Update name or phone number of the current user.

    Args:
        profile_data: Fields to change
        current_user: Authenticated user
        db: Database session

    Returns:
        Updated profile
    """
    user = await UserService(db).update_profile(current_user, profile_data)
    return UserProfile.model_validate(user)
