"""ProfileService: profile reads through the in-process cache, validated writes."""

from typing import Any

import structlog
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from sailsmart.core.exceptions import NotFoundError
from sailsmart.db.models.profile import Profile
from sailsmart.domain.matching import canonical_skill_name
from sailsmart.services.profile_cache import CoalescingInvalidator, ProfileCache

logger = structlog.get_logger(__name__)

UPDATABLE_FIELDS = {
    "full_name",
    "username",
    "roles",
    "experience_level",
    "risk_levels",
    "skills",
    "ai_processing_consent",
}


def profile_to_dict(profile: Profile) -> dict[str, Any]:
    return {
        "id": profile.id,
        "full_name": profile.full_name,
        "username": profile.username,
        "email": profile.email,
        "roles": list(profile.roles or []),
        "experience_level": profile.experience_level,
        "risk_levels": list(profile.risk_levels or []),
        "skills": list(profile.skills or []),
        "ai_processing_consent": bool(profile.ai_processing_consent),
    }


class ProfileService:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        cache: ProfileCache,
        invalidator: CoalescingInvalidator,
    ):
        self.session_factory = session_factory
        self.cache = cache
        self.invalidator = invalidator

    async def get_profile(self, user_id: str) -> dict | None:
        """Profile as a plain dict, from cache when fresh."""
        cached, is_fresh = self.cache.get(user_id)
        if is_fresh:
            return cached

        async with self.session_factory() as db:
            profile = await db.get(Profile, user_id)
        if profile is None:
            return None

        data = profile_to_dict(profile)
        self.cache.put(user_id, data)
        return data

    async def update_profile(self, user_id: str, changes: dict[str, Any]) -> dict:
        """Apply validated field changes and refresh the cache entry.

        Raises:
            NotFoundError: If the user has no profile
        """
        changes = {k: v for k, v in changes.items() if k in UPDATABLE_FIELDS}
        if "skills" in changes:
            changes["skills"] = [
                {"skill_name": canonical_skill_name(s["skill_name"]), "description": s.get("description") or ""}
                for s in changes["skills"]
            ]

        async with self.session_factory() as db:
            profile = await db.get(Profile, user_id)
            if profile is None:
                raise NotFoundError("Profile not found")
            for field, value in changes.items():
                setattr(profile, field, value)
            await db.commit()
            await db.refresh(profile)
            data = profile_to_dict(profile)

        self.cache.put(user_id, data)
        logger.info("profile_updated", user_id=user_id, fields=sorted(changes))
        return data

    async def set_ai_consent(self, user_id: str, consent: bool) -> bool:
        """Store the AI processing consent flag.

        Returns:
            False when the user has no profile yet
        """
        async with self.session_factory() as db:
            result = await db.execute(
                update(Profile).where(Profile.id == user_id).values(ai_processing_consent=consent)
            )
            await db.commit()

        self.invalidator.request(user_id)
        logger.info("profile_ai_consent_set", user_id=user_id, consent=consent, found=result.rowcount > 0)
        return result.rowcount > 0

