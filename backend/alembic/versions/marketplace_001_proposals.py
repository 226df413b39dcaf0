"""Marketplace proposals, proposal threads, and the trip discussion log

Revision ID: marketplace_001
Revises:
Create Date: 2026-10-19
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB, UUID

revision = "marketplace_001"
down_revision = None
branch_labels = None
depends_on = None


def _timestamp(name: str) -> sa.Column:
    return sa.Column(name, sa.DateTime(timezone=True), server_default=sa.func.now())


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("email", sa.String(255), nullable=False, unique=True),
        sa.Column("password_hash", sa.String(255), nullable=False),
        sa.Column("full_name", sa.String(255)),
        sa.Column("avatar_url", sa.String(500)),
        sa.Column("is_active", sa.Boolean, server_default=sa.text("true")),
        _timestamp("created_at"),
    )

    op.create_table(
        "businesses",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("user_id", UUID(as_uuid=True), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("business_type", sa.String(20), nullable=False),
        sa.Column("business_name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text),
        sa.Column("logo_url", sa.String(500)),
        sa.Column("verified", sa.Boolean, server_default=sa.text("false")),
        sa.Column("rating", sa.Numeric(3, 2), server_default="0"),
        sa.Column("review_count", sa.Integer, server_default="0"),
        sa.Column("is_active", sa.Boolean, server_default=sa.text("true")),
        _timestamp("created_at"),
    )
    op.create_index("ix_businesses_user_id", "businesses", ["user_id"])

    op.create_table(
        "trips",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("user_id", UUID(as_uuid=True), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("title", sa.String(255)),
        sa.Column("city", sa.String(100)),
        sa.Column("visibility", sa.String(20), server_default="private"),
        sa.Column("start_date", sa.Date),
        _timestamp("created_at"),
        _timestamp("updated_at"),
    )

    op.create_table(
        "itinerary_items",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "trip_id", UUID(as_uuid=True), sa.ForeignKey("trips.id", ondelete="CASCADE"), nullable=False
        ),
        sa.Column("day_number", sa.Integer, server_default="1"),
        sa.Column("sequence", sa.Integer, server_default="1"),
        sa.Column("title", sa.String(255), nullable=False),
        _timestamp("created_at"),
    )

    op.create_table(
        "trip_service_needs",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "trip_id", UUID(as_uuid=True), sa.ForeignKey("trips.id", ondelete="CASCADE"), nullable=False
        ),
        sa.Column(
            "activity_id", UUID(as_uuid=True), sa.ForeignKey("itinerary_items.id", ondelete="SET NULL")
        ),
        sa.Column("category", sa.String(50), nullable=False),
        sa.Column("description", sa.Text),
        sa.Column("status", sa.String(20), server_default="open"),
        _timestamp("created_at"),
    )

    op.create_table(
        "marketplace_proposals",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "trip_id", UUID(as_uuid=True), sa.ForeignKey("trips.id", ondelete="CASCADE"), nullable=False
        ),
        sa.Column(
            "business_id",
            UUID(as_uuid=True),
            sa.ForeignKey("businesses.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "activity_id", UUID(as_uuid=True), sa.ForeignKey("itinerary_items.id", ondelete="SET NULL")
        ),
        sa.Column("service_needs_ids", JSONB, server_default="[]"),
        sa.Column("services_offered", JSONB, nullable=False),
        sa.Column("pricing_breakdown", JSONB, nullable=False),
        sa.Column("total_price", sa.Numeric(10, 2), nullable=False),
        sa.Column("currency", sa.String(3), server_default="USD"),
        sa.Column("message", sa.Text),
        sa.Column("response_message", sa.Text),
        sa.Column("terms", JSONB),
        sa.Column("attachments", JSONB, server_default="[]"),
        sa.Column("status", sa.String(30), server_default="pending"),
        sa.Column("expires_at", sa.DateTime(timezone=True)),
        _timestamp("created_at"),
        _timestamp("updated_at"),
    )
    # At most one non-terminal proposal per bidder and trip
    op.create_index(
        "uq_marketplace_proposals_active_bidder",
        "marketplace_proposals",
        ["trip_id", "business_id"],
        unique=True,
        postgresql_where=sa.text("status NOT IN ('declined', 'expired', 'withdrawn')"),
    )
    op.create_index(
        "idx_marketplace_proposals_business",
        "marketplace_proposals",
        ["business_id", "created_at"],
    )

    op.create_table(
        "proposal_messages",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "proposal_id",
            UUID(as_uuid=True),
            sa.ForeignKey("marketplace_proposals.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("sender_id", UUID(as_uuid=True), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("message", sa.Text, nullable=False),
        sa.Column("message_type", sa.String(20), server_default="user"),
        sa.Column("attachments", JSONB, server_default="[]"),
        _timestamp("created_at"),
    )
    op.create_index("ix_proposal_messages_proposal_id", "proposal_messages", ["proposal_id"])

    op.create_table(
        "discussions",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "trip_id", UUID(as_uuid=True), sa.ForeignKey("trips.id", ondelete="CASCADE"), nullable=False
        ),
        sa.Column(
            "itinerary_item_id",
            UUID(as_uuid=True),
            sa.ForeignKey("itinerary_items.id", ondelete="SET NULL"),
        ),
        sa.Column("user_id", UUID(as_uuid=True), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("content", sa.Text, nullable=False),
        sa.Column("message_type", sa.String(40), server_default="comment"),
        sa.Column("metadata", JSONB),
        _timestamp("created_at"),
    )
    op.create_index("ix_discussions_trip_created", "discussions", ["trip_id", "created_at"])


def downgrade() -> None:
    op.drop_index("ix_discussions_trip_created")
    op.drop_table("discussions")
    op.drop_index("ix_proposal_messages_proposal_id")
    op.drop_table("proposal_messages")
    op.drop_index("idx_marketplace_proposals_business")
    op.drop_index("uq_marketplace_proposals_active_bidder")
    op.drop_table("marketplace_proposals")
    op.drop_table("trip_service_needs")
    op.drop_table("itinerary_items")
    op.drop_table("trips")
    op.drop_index("ix_businesses_user_id")
    op.drop_table("businesses")
    op.drop_table("users")
