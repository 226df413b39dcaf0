"""Persistence for marketplace proposals and their message threads."""

import uuid

from sqlalchemy import Row, delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from tripbid.models.proposal import MarketplaceProposal, ProposalMessage, TERMINAL_STATUSES
from tripbid.models.trip import ItineraryItem, Trip
from tripbid.models.user import User


class ProposalStore:
    """Reads always repopulate from the database so guard checks see the latest commit."""

    async def create(self, db: AsyncSession, proposal: MarketplaceProposal) -> MarketplaceProposal:
        db.add(proposal)
        await db.flush()
        return proposal

    async def get_by_id(
        self, db: AsyncSession, proposal_id: uuid.UUID, for_update: bool = False
    ) -> MarketplaceProposal | None:
        query = (
            select(MarketplaceProposal)
            .where(MarketplaceProposal.id == proposal_id)
            .execution_options(populate_existing=True)
        )
        if for_update:
            query = query.with_for_update()
        result = await db.execute(query)
        return result.scalar_one_or_none()

    async def find_active_by_trip_and_business(
        self, db: AsyncSession, trip_id: uuid.UUID, business_id: uuid.UUID
    ) -> MarketplaceProposal | None:
        result = await db.execute(
            select(MarketplaceProposal)
            .where(
                MarketplaceProposal.trip_id == trip_id,
                MarketplaceProposal.business_id == business_id,
                MarketplaceProposal.status.notin_(TERMINAL_STATUSES),
            )
            .execution_options(populate_existing=True)
        )
        return result.scalars().first()

    async def list_by_trip(
        self, db: AsyncSession, trip_id: uuid.UUID, business_id: uuid.UUID | None = None
    ) -> list[MarketplaceProposal]:
        query = (
            select(MarketplaceProposal)
            .where(MarketplaceProposal.trip_id == trip_id)
            .order_by(MarketplaceProposal.created_at.desc())
        )
        if business_id is not None:
            query = query.where(MarketplaceProposal.business_id == business_id)
        result = await db.execute(query)
        return list(result.scalars().all())

    async def list_by_business(
        self,
        db: AsyncSession,
        business_id: uuid.UUID,
        status: str | None = None,
        limit: int = 50,
    ) -> list[Row]:
        """Business dashboard rows: each proposal with its trip, trip owner, and activity title."""
        query = (
            select(
                MarketplaceProposal,
                Trip.title.label("trip_title"),
                Trip.city.label("trip_city"),
                Trip.visibility.label("trip_visibility"),
                Trip.start_date.label("trip_start_date"),
                User.full_name.label("trip_owner_name"),
                User.avatar_url.label("trip_owner_avatar"),
                ItineraryItem.title.label("activity_title"),
            )
            .join(Trip, Trip.id == MarketplaceProposal.trip_id)
            .join(User, User.id == Trip.user_id)
            .outerjoin(ItineraryItem, ItineraryItem.id == MarketplaceProposal.activity_id)
            .where(MarketplaceProposal.business_id == business_id)
            .order_by(MarketplaceProposal.created_at.desc())
            .limit(limit)
        )
        if status and status != "all":
            query = query.where(MarketplaceProposal.status == status)
        result = await db.execute(query)
        return list(result.all())

    async def update(
        self, db: AsyncSession, proposal_id: uuid.UUID, patch: dict
    ) -> MarketplaceProposal:
        proposal = await self.get_by_id(db, proposal_id)
        if proposal is None:
            raise LookupError(f"Proposal {proposal_id} does not exist")
        for field, value in patch.items():
            setattr(proposal, field, value)
        await db.flush()
        return proposal

    async def delete(self, db: AsyncSession, proposal_id: uuid.UUID) -> bool:
        result = await db.execute(
            delete(MarketplaceProposal).where(MarketplaceProposal.id == proposal_id)
        )
        return result.rowcount > 0

    # ─── Message thread ───

    async def add_message(
        self,
        db: AsyncSession,
        proposal_id: uuid.UUID,
        sender_id: uuid.UUID,
        message: str,
        message_type: str = "user",
        attachments: list | None = None,
    ) -> ProposalMessage:
        entry = ProposalMessage(
            proposal_id=proposal_id,
            sender_id=sender_id,
            message=message,
            message_type=message_type,
            attachments=attachments or [],
        )
        db.add(entry)
        await db.flush()
        return entry

    async def list_messages(self, db: AsyncSession, proposal_id: uuid.UUID) -> list[ProposalMessage]:
        result = await db.execute(
            select(ProposalMessage)
            .where(ProposalMessage.proposal_id == proposal_id)
            .order_by(ProposalMessage.created_at)
        )
        return list(result.scalars().all())


proposal_store = ProposalStore()
