"""Business and activity directories used by the proposal engine."""

import uuid
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tripbid.models.business import Business
from tripbid.models.trip import ItineraryItem


@dataclass(frozen=True)
class BusinessPublicInfo:
    id: uuid.UUID
    user_id: uuid.UUID
    name: str
    type: str
    logo_url: str | None
    rating: float | None = None
    review_count: int = 0

    @classmethod
    def from_business(cls, business: Business) -> "BusinessPublicInfo":
        return cls(
            id=business.id,
            user_id=business.user_id,
            name=business.business_name,
            type=business.business_type,
            logo_url=business.logo_url,
            rating=float(business.rating) if business.rating is not None else None,
            review_count=business.review_count or 0,
        )


class BusinessDirectory:
    async def get_active_business_by_user(
        self, db: AsyncSession, user_id: uuid.UUID
    ) -> Business | None:
        result = await db.execute(
            select(Business)
            .where(Business.user_id == user_id, Business.is_active == True)
            .order_by(Business.created_at)
        )
        return result.scalars().first()

    async def get_business_public_info(
        self, db: AsyncSession, business_id: uuid.UUID
    ) -> BusinessPublicInfo | None:
        result = await db.execute(select(Business).where(Business.id == business_id))
        business = result.scalar_one_or_none()
        if not business:
            return None
        return BusinessPublicInfo.from_business(business)


class ActivityDirectory:
    async def get_activity(
        self, db: AsyncSession, activity_id: uuid.UUID
    ) -> ItineraryItem | None:
        result = await db.execute(select(ItineraryItem).where(ItineraryItem.id == activity_id))
        return result.scalar_one_or_none()


business_directory = BusinessDirectory()
activity_directory = ActivityDirectory()
