"""Trip & need registry — trip ownership/visibility lookups and linked-need status."""

import logging
import uuid

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from tripbid.models.trip import Trip, TripServiceNeed

logger = logging.getLogger(__name__)

MARKETPLACE_VISIBILITY = "marketplace"


class TripRegistry:
    async def get_trip(self, db: AsyncSession, trip_id: uuid.UUID) -> Trip | None:
        result = await db.execute(select(Trip).where(Trip.id == trip_id))
        return result.scalar_one_or_none()

    def is_open_for_proposals(self, trip: Trip) -> bool:
        return trip.visibility == MARKETPLACE_VISIBILITY

    async def get_service_needs(
        self, db: AsyncSession, need_ids: list[uuid.UUID]
    ) -> list[TripServiceNeed]:
        if not need_ids:
            return []
        result = await db.execute(
            select(TripServiceNeed).where(TripServiceNeed.id.in_(need_ids))
        )
        return list(result.scalars().all())

    async def set_need_status(
        self, db: AsyncSession, need_ids: list[uuid.UUID], status: str
    ) -> int:
        if not need_ids:
            return 0
        result = await db.execute(
            update(TripServiceNeed)
            .where(TripServiceNeed.id.in_(need_ids))
            .values(status=status)
            .execution_options(synchronize_session=False)
        )
        logger.debug(f"Linked needs -> {status}: {result.rowcount} of {len(need_ids)}")
        return result.rowcount


trip_registry = TripRegistry()
