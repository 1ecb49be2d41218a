"""Contact profiles used to address emails and find admin recipients."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status

from ..dependencies import get_repository
from ..repository import NotificationRepository
from ..schemas import ProfileResponse, ProfileUpdate

router = APIRouter(prefix="/profiles", tags=["profiles"])


def _serialize_profile(profile) -> dict[str, object]:
    return {
        "id": profile.id,
        "email": profile.email,
        "firstName": profile.first_name,
        "lastName": profile.last_name,
        "role": profile.role,
        "createdAt": profile.created_at,
        "updatedAt": profile.updated_at,
    }


@router.get("/{user_id}", response_model=ProfileResponse)
async def get_profile(
    user_id: str,
    repository: NotificationRepository = Depends(get_repository),
) -> ProfileResponse:
    profile = await repository.get_profile(user_id)
    if profile is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Profile not found")
    return ProfileResponse.model_validate(_serialize_profile(profile))


@router.put("/{user_id}", response_model=ProfileResponse)
async def save_profile(
    user_id: str,
    payload: ProfileUpdate,
    repository: NotificationRepository = Depends(get_repository),
) -> ProfileResponse:
    profile = await repository.save_profile(user_id, payload.model_dump(exclude_unset=True, exclude_none=True))
    return ProfileResponse.model_validate(_serialize_profile(profile))
