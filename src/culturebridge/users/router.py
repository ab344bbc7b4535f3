"""Profile router — /api/v1/profile/* endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from culturebridge.auth.dependencies import AuthUser, get_challenge_session, get_current_user
from culturebridge.challenges.levels import compute_level
from culturebridge.challenges.session import ChallengeSession, registry
from culturebridge.database import get_session
from culturebridge.errors import NotFound
from culturebridge.users.schemas import LevelResponse, MyProfileResponse, ProfileResponse
from culturebridge.users.service import ProfileSnapshot

router = APIRouter(prefix="/api/v1/profile", tags=["Profile"])


def profile_response(profile: ProfileSnapshot) -> ProfileResponse:
    """Build a ProfileResponse from a ProfileSnapshot."""
    return ProfileResponse(
        user_id=profile.user_id,
        username=profile.username,
        display_name=profile.display_name,
        avatar_url=profile.avatar_url,
        level=profile.level,
        total_points=profile.total_points,
        current_streak=profile.current_streak,
        max_streak=profile.max_streak,
        countries_bridged=list(profile.countries_bridged),
    )


@router.get("/me", response_model=MyProfileResponse)
async def get_my_profile(
    session: ChallengeSession = Depends(get_challenge_session),
    db: AsyncSession = Depends(get_session),
) -> MyProfileResponse:
    """Own profile with level progress. Falls back to the cached copy if the reload fails."""
    profile = await session.refresh_profile(db)
    if profile is None:
        msg = "Profile not found"
        raise NotFound(msg)

    info = compute_level(profile.total_points)
    return MyProfileResponse(
        profile=profile_response(profile),
        level_info=LevelResponse(
            level=info["level"],
            title=info["title"],
            points_into_level=info["points_into_level"],
            points_for_level=info["points_for_level"],
            next_title=info["next_title"],
        ),
    )


@router.post("/logout")
async def logout(user: AuthUser = Depends(get_current_user)) -> dict[str, str]:
    """Tear down the caller's live challenge session."""
    await registry.close(user.id)
    return {"status": "logged_out"}
