"""Marketplace proposal router — submit, transition, delete, list, and message on proposals."""

import uuid

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from tripbid.database import get_db
from tripbid.dependencies import get_current_user
from tripbid.models.proposal import MarketplaceProposal
from tripbid.models.user import User
from tripbid.schemas.proposal import (
    BusinessProposalResponse,
    BusinessSummary,
    ProposalDetailResponse,
    ProposalMessageRequest,
    ProposalMessageResponse,
    ProposalResponse,
    SubmitProposalRequest,
    TransitionRequest,
)
from tripbid.services.directory_service import BusinessPublicInfo, business_directory
from tripbid.services.proposal_guard import effective_status
from tripbid.services.proposal_service import proposal_service

router = APIRouter()

_DASHBOARD_FIELDS = (
    "trip_title",
    "trip_city",
    "trip_visibility",
    "trip_start_date",
    "trip_owner_name",
    "trip_owner_avatar",
    "activity_title",
)


def _to_response(
    proposal: MarketplaceProposal, business: BusinessPublicInfo | None = None
) -> ProposalResponse:
    response = ProposalResponse.model_validate(proposal)
    response.effective_status = effective_status(proposal.status, proposal.expires_at)
    if business:
        response.business = BusinessSummary(
            id=business.id,
            name=business.name,
            type=business.type,
            logo_url=business.logo_url,
            rating=business.rating,
            review_count=business.review_count,
        )
    return response


def _to_dashboard_entry(row) -> BusinessProposalResponse:
    proposal = row.MarketplaceProposal
    entry = BusinessProposalResponse.model_validate(proposal)
    entry.effective_status = effective_status(proposal.status, proposal.expires_at)
    for field in _DASHBOARD_FIELDS:
        setattr(entry, field, getattr(row, field))
    return entry


async def _with_businesses(
    db: AsyncSession, proposals: list[MarketplaceProposal]
) -> list[ProposalResponse]:
    cache: dict[uuid.UUID, BusinessPublicInfo | None] = {}
    out = []
    for p in proposals:
        if p.business_id not in cache:
            cache[p.business_id] = await business_directory.get_business_public_info(db, p.business_id)
        out.append(_to_response(p, cache[p.business_id]))
    return out


@router.get("/trips/{trip_id}/proposals")
async def list_trip_proposals(
    trip_id: uuid.UUID,
    for_business: bool = Query(False),
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """Trip owner sees every proposal; with for_business the caller's own business proposals."""
    proposals = await proposal_service.list_proposals_for_trip(db, user.id, trip_id, for_business)
    return {"proposals": await _with_businesses(db, proposals)}


@router.post("/trips/{trip_id}/proposals", status_code=201)
async def submit_proposal(
    trip_id: uuid.UUID,
    req: SubmitProposalRequest,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    proposal = await proposal_service.submit_proposal(db, user.id, trip_id, req)
    return {"proposal": _to_response(proposal)}


@router.patch("/trips/{trip_id}/proposals/{proposal_id}")
async def transition_proposal(
    trip_id: uuid.UUID,
    proposal_id: uuid.UUID,
    req: TransitionRequest,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """Accept, decline, withdraw, or negotiate a withdrawal."""
    proposal = await proposal_service.transition_proposal(
        db, user.id, trip_id, proposal_id, req.status, req.message
    )
    return {"proposal": _to_response(proposal)}


@router.delete("/trips/{trip_id}/proposals/{proposal_id}")
async def delete_proposal(
    trip_id: uuid.UUID,
    proposal_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    await proposal_service.delete_proposal(db, user.id, trip_id, proposal_id)
    return {"ok": True}


@router.get("/businesses/me/proposals")
async def list_business_proposals(
    status: str | None = Query(None),
    limit: int | None = Query(None, ge=1, le=200),
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    rows = await proposal_service.list_proposals_for_business(db, user.id, status, limit)
    return {"proposals": [_to_dashboard_entry(row) for row in rows]}


@router.get("/proposals/{proposal_id}", response_model=ProposalDetailResponse)
async def get_proposal(
    proposal_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    proposal, business, messages = await proposal_service.get_proposal_detail(db, user.id, proposal_id)
    return ProposalDetailResponse(
        proposal=_to_response(proposal, business),
        messages=[ProposalMessageResponse.model_validate(m) for m in messages],
    )


@router.post("/proposals/{proposal_id}/messages", status_code=201)
async def post_proposal_message(
    proposal_id: uuid.UUID,
    req: ProposalMessageRequest,
    db: AsyncSession = Depends(get_db),
    user: User = Depends(get_current_user),
):
    entry = await proposal_service.post_message(db, user.id, proposal_id, req.message, req.attachments)
    return {"message": ProposalMessageResponse.model_validate(entry)}
