"""Audit notifier — writes proposal events into the trip's discussion log."""

import logging
import uuid

from sqlalchemy.ext.asyncio import AsyncSession

from tripbid.models.discussion import Discussion
from tripbid.models.proposal import MarketplaceProposal
from tripbid.services.directory_service import BusinessPublicInfo

logger = logging.getLogger(__name__)


class AuditNotifier:
    """Renders proposal events as human-readable trip discussion entries."""

    def render(
        self,
        event_kind: str,
        proposal: MarketplaceProposal,
        business: BusinessPublicInfo,
        activity_title: str | None = None,
        previous_status: str | None = None,
    ) -> tuple[str, dict]:
        name = business.name
        target = f"'{activity_title}'" if activity_title else "the trip"
        price = f"{proposal.currency} {proposal.total_price:,.2f}"
        reason = (proposal.terms or {}).get("withdrawal_reason")

        if event_kind == "proposal_created":
            content = f"{name} submitted a proposal for {target}: {price}"
        elif event_kind == "proposal_accepted" and previous_status == "withdrawal_requested":
            content = f"Withdrawal request from {name} was declined; the proposal for {target} stays accepted"
        elif event_kind == "proposal_accepted":
            content = f"Proposal from {name} for {target} was accepted ({price})"
        elif event_kind == "proposal_declined":
            content = f"Proposal from {name} for {target} was declined"
        elif event_kind == "proposal_withdrawn" and previous_status == "withdrawal_requested":
            content = f"Withdrawal of {name}'s proposal for {target} was approved"
        elif event_kind == "proposal_withdrawn":
            content = f"{name} withdrew their proposal for {target}"
        elif event_kind == "proposal_withdrawal_requested":
            content = f"{name} requested to withdraw their accepted proposal for {target}"
            if reason:
                content += f": {reason}"
        else:
            raise ValueError(f"Unknown proposal event kind: {event_kind}")

        metadata = {
            "proposal_id": str(proposal.id),
            "business_id": str(business.id),
            "business_name": name,
            "business_type": business.type,
            "business_logo": business.logo_url,
            "activity_id": str(proposal.activity_id) if proposal.activity_id else None,
            "activity_title": activity_title,
            "total_price": float(proposal.total_price),
            "currency": proposal.currency,
            "message": proposal.message or None,
            "previous_status": previous_status,
        }
        if event_kind == "proposal_withdrawal_requested":
            metadata["withdrawal_reason"] = reason
        return content, metadata

    async def record(
        self,
        db: AsyncSession,
        trip_id: uuid.UUID,
        activity_id: uuid.UUID | None,
        actor_user_id: uuid.UUID,
        content: str,
        event_kind: str,
        metadata: dict,
    ) -> Discussion:
        entry = Discussion(
            trip_id=trip_id,
            itinerary_item_id=activity_id,
            user_id=actor_user_id,
            content=content,
            message_type=event_kind,
            event_metadata=metadata,
        )
        db.add(entry)
        await db.flush()
        logger.debug(f"Recorded {event_kind} on trip {trip_id}")
        return entry


audit_notifier = AuditNotifier()
