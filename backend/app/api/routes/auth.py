"""
Auth API Routes

Identity of the caller as seen by the store.
"""

from fastapi import APIRouter

from app.api.dependencies import CurrentProfile
from app.infrastructure.db.models.profile import ProfileRead


router = APIRouter(prefix="/auth", tags=["Auth"])


@router.get("/me", response_model=ProfileRead)
async def get_me(profile: CurrentProfile):
    """Profile of the token's user, created on first call."""
    return profile
