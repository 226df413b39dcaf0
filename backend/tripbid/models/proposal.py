import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import DateTime, ForeignKey, Index, Numeric, String, Text, Uuid, func, text
from sqlalchemy.orm import Mapped, mapped_column

from tripbid.database import Base, JSONType

PROPOSAL_STATUSES = (
    "pending",
    "accepted",
    "declined",
    "withdrawn",
    "withdrawal_requested",
    "expired",
)
TERMINAL_STATUSES = ("declined", "expired", "withdrawn")

_ACTIVE_WHERE = text("status NOT IN ('declined', 'expired', 'withdrawn')")


class MarketplaceProposal(Base):
    __tablename__ = "marketplace_proposals"
    __table_args__ = (
        # One non-terminal proposal per bidder and trip
        Index(
            "uq_marketplace_proposals_active_bidder",
            "trip_id",
            "business_id",
            unique=True,
            postgresql_where=_ACTIVE_WHERE,
            sqlite_where=_ACTIVE_WHERE,
        ),
        Index("idx_marketplace_proposals_business", "business_id", "created_at"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    trip_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("trips.id", ondelete="CASCADE"), nullable=False
    )
    business_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("businesses.id", ondelete="CASCADE"), nullable=False
    )
    activity_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("itinerary_items.id", ondelete="SET NULL")
    )
    service_needs_ids: Mapped[list] = mapped_column(JSONType, default=list)
    services_offered: Mapped[list] = mapped_column(JSONType, nullable=False)
    pricing_breakdown: Mapped[list | dict] = mapped_column(JSONType, nullable=False)
    total_price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), default="USD")
    message: Mapped[str | None] = mapped_column(Text)
    response_message: Mapped[str | None] = mapped_column(Text)
    terms: Mapped[dict | None] = mapped_column(JSONType)
    attachments: Mapped[list] = mapped_column(JSONType, default=list)
    status: Mapped[str] = mapped_column(String(30), default="pending")
    expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )


class ProposalMessage(Base):
    __tablename__ = "proposal_messages"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    proposal_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("marketplace_proposals.id", ondelete="CASCADE"), nullable=False
    )
    sender_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("users.id"), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    message_type: Mapped[str] = mapped_column(String(20), default="user")  # user | system
    attachments: Mapped[list] = mapped_column(JSONType, default=list)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
