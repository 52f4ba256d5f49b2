"""Current-user profile endpoints."""

import structlog
from fastapi import APIRouter, Depends

from src.api.dependencies import get_current_user, verify_csrf
from src.models.auth import UpdateProfileRequest, UserProfileResponse
from src.models.user import AuthenticatedUser, User
from src.services.errors import NotFoundError, ValidationFailedError
from src.services.sanitize import sanitize_input, sanitize_name
from src.services.user_service import UserService

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/users", tags=["Users"])


def _profile_response(user: User) -> UserProfileResponse:
    return UserProfileResponse(
        id=user.id,
        email=user.email,
        name=user.name,
        avatar=user.avatar,
        created_at=user.created_at,
        updated_at=user.updated_at,
        provider=user.provider,
        can_edit_profile=user.is_oauth_account,
    )


@router.get("/me")
async def get_profile(
    current_user: AuthenticatedUser = Depends(get_current_user),
) -> UserProfileResponse:
    """Get the current user's profile, including how the account signs in."""
    user = await UserService().get_by_id(current_user.id)
    if user is None:
        raise NotFoundError("User not found")
    return _profile_response(user)


@router.patch("/me")
async def update_profile(
    request: UpdateProfileRequest,
    current_user: AuthenticatedUser = Depends(verify_csrf),
) -> UserProfileResponse:
    """Update name and/or avatar.

    Only OAuth-linked accounts may edit their profile. Requires a CSRF token.

    Raises:
        ValidationFailedError 400: If the account uses email/password
        ForbiddenError 403: If the CSRF header and cookie do not match
        NotFoundError 404: If the user no longer exists
    """
    user_service = UserService()

    user = await user_service.get_by_id(current_user.id)
    if user is None:
        raise NotFoundError("User not found")

    if not user.is_oauth_account:
        raise ValidationFailedError(
            "Profile editing is only available for OAuth accounts (Google/Facebook)",
            code="profile_not_editable",
        )

    name = sanitize_name(request.name) or None if request.name is not None else None
    avatar = sanitize_input(request.avatar) or None if request.avatar is not None else None

    updated = await user_service.update_profile(user.id, name=name, avatar=avatar)
    if updated is None:
        raise NotFoundError("User not found")

    return _profile_response(updated)
