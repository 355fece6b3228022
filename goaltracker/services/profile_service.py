from typing import Optional
import logging

from goaltracker.db.data_client import DataClient
from goaltracker.schemas.profile_schema import IdentityUserData, Profile
from goaltracker.utils.util_func import get_current_time

logger = logging.getLogger(__name__)

ANONYMOUS_NAME = "Anonymous"


def profile_from_identity(data: IdentityUserData) -> Profile:
    full_name = " ".join(part for part in (data.first_name, data.last_name) if part)
    email = data.email_addresses[0].email_address if data.email_addresses else None
    return Profile(
        id=data.id,
        email=email,
        full_name=full_name,
        avatar_url=data.image_url or "",
        updated_at=get_current_time(),
    )


class ProfileService:
    def __init__(self, client: DataClient):
        self.client = client

    async def upsert_from_identity(self, data: IdentityUserData) -> Profile:
        profile = profile_from_identity(data)
        await self.client.upsert("profiles", profile.model_dump())
        logger.info(f"[Profiles] Upserted profile {profile.id}")
        return profile

    async def get_profile(self, user_id: str) -> Optional[Profile]:
        row = await self.client.select_one("profiles", {"id": user_id})
        return Profile.model_validate(row) if row else None
