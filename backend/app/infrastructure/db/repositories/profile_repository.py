"""
Profile Repository

Profiles mirror Supabase Auth users; the first authenticated request
creates the row with the default `user` role.
"""

import logging
from typing import List, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.infrastructure.db.models.profile import Profile, ProfileRole
from app.infrastructure.db.repositories.base_repository import BaseRepository


logger = logging.getLogger(__name__)


class ProfileRepository(BaseRepository[Profile, Profile, Profile]):
    """Repository for profile lookups and lazy creation."""

    def __init__(self, session: AsyncSession):
        super().__init__(Profile, session)

    async def get_or_create(
        self,
        user_id: UUID,
        email: Optional[str] = None,
    ) -> Profile:
        """
        Get the profile for an auth user, creating it if missing.

        Args:
            user_id: Supabase auth user id
            email: Email claim from the token, stored on creation

        Returns:
            Existing or newly created Profile
        """
        profile = await self.get_by_id(user_id)
        if profile:
            return profile

        logger.info(f"Creating profile for user {user_id}")
        return await self.add(
            Profile(id=user_id, email=email, role=ProfileRole.USER)
        )

    async def list_admins(self) -> List[Profile]:
        stmt = select(Profile).where(Profile.role == ProfileRole.ADMIN)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())
