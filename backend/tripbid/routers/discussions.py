import uuid

from fastapi import APIRouter, Depends, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from tripbid.database import get_db
from tripbid.dependencies import get_current_user
from tripbid.models.discussion import Discussion
from tripbid.models.user import User
from tripbid.services.errors import ErrorCode, ProposalError
from tripbid.services.trip_registry import trip_registry

router = APIRouter()


@router.get("/trips/{trip_id}/discussions")
async def list_discussions(
    trip_id: uuid.UUID,
    limit: int = Query(100, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """Trip activity feed, proposal events included. Private trips are owner-only."""
    trip = await trip_registry.get_trip(db, trip_id)
    if not trip:
        raise ProposalError(ErrorCode.NOT_FOUND, "Trip not found", "TRIP_NOT_FOUND")
    if trip.visibility == "private" and trip.user_id != user.id:
        raise ProposalError(ErrorCode.FORBIDDEN, "Not authorized", "NOT_TRIP_OWNER")

    result = await db.execute(
        select(Discussion)
        .where(Discussion.trip_id == trip_id)
        .order_by(Discussion.created_at.desc())
        .limit(limit)
    )
    return {
        "discussions": [
            {
                "id": str(d.id),
                "trip_id": str(d.trip_id),
                "itinerary_item_id": str(d.itinerary_item_id) if d.itinerary_item_id else None,
                "user_id": str(d.user_id),
                "content": d.content,
                "message_type": d.message_type,
                "metadata": d.event_metadata,
                "created_at": d.created_at.isoformat() if d.created_at else None,
            }
            for d in result.scalars().all()
        ]
    }
