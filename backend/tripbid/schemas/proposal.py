import uuid
from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, Field


class ProposalTerms(BaseModel):
    """Known terms fields; anything else the client sends is kept as-is."""

    cancellation_policy: str | None = None
    payment_terms: str | None = None
    includes: list[str] | None = None
    excludes: list[str] | None = None
    # Written only by a withdrawal request
    withdrawal_reason: str | None = None

    model_config = {"extra": "allow"}


class SubmitProposalRequest(BaseModel):
    activity_id: uuid.UUID | None = None
    service_needs_ids: list[uuid.UUID] = Field(default_factory=list)
    # Line items and cost detail are stored as the client sends them
    services_offered: list[dict] | None = None
    pricing_breakdown: list | dict | None = None
    total_price: Decimal | None = None
    currency: str | None = Field(None, min_length=3, max_length=3)
    message: str | None = None
    terms: ProposalTerms | None = None
    attachments: list = Field(default_factory=list)
    expires_at: datetime | None = None


class TransitionRequest(BaseModel):
    status: str
    message: str | None = None


class ProposalMessageRequest(BaseModel):
    message: str
    attachments: list = Field(default_factory=list)


class BusinessSummary(BaseModel):
    id: uuid.UUID
    name: str
    type: str
    logo_url: str | None = None
    rating: float | None = None
    review_count: int = 0


class ProposalResponse(BaseModel):
    id: uuid.UUID
    trip_id: uuid.UUID
    business_id: uuid.UUID
    activity_id: uuid.UUID | None
    service_needs_ids: list
    services_offered: list
    pricing_breakdown: list | dict
    total_price: float
    currency: str
    message: str | None
    response_message: str | None
    terms: dict | None
    attachments: list
    status: str
    effective_status: str | None = None
    expires_at: datetime | None
    created_at: datetime
    updated_at: datetime
    business: BusinessSummary | None = None

    model_config = {"from_attributes": True}


class ProposalMessageResponse(BaseModel):
    id: uuid.UUID
    proposal_id: uuid.UUID
    sender_id: uuid.UUID
    message: str
    message_type: str
    attachments: list
    created_at: datetime

    model_config = {"from_attributes": True}


class ProposalDetailResponse(BaseModel):
    proposal: ProposalResponse
    messages: list[ProposalMessageResponse]


class BusinessProposalResponse(ProposalResponse):
    """A business dashboard entry: the proposal plus the trip it was made on."""

    trip_title: str | None = None
    trip_city: str | None = None
    trip_visibility: str | None = None
    trip_start_date: date | None = None
    trip_owner_name: str | None = None
    trip_owner_avatar: str | None = None
    activity_title: str | None = None
