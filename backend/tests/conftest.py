"""Pytest configuration and fixtures."""

from collections.abc import AsyncGenerator
from dataclasses import dataclass
from decimal import Decimal

import pytest
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

import tripbid.models  # noqa: F401  registers every table on Base.metadata
from tripbid.database import Base
from tripbid.models.business import Business
from tripbid.models.trip import ItineraryItem, Trip, TripServiceNeed
from tripbid.models.user import User
from tripbid.schemas.proposal import SubmitProposalRequest


# =============================================================================
# Database Fixtures
# =============================================================================
@pytest.fixture
async def engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """File-backed SQLite per test so several sessions can race on it."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'tripbid.db'}",
        connect_args={"timeout": 30},
        poolclass=NullPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


# =============================================================================
# Marketplace data
# =============================================================================
@dataclass
class Marketplace:
    owner: User
    bidder: User
    rival: User
    outsider: User
    business: Business
    rival_business: Business
    trip: Trip
    activity: ItineraryItem
    needs: list[TripServiceNeed]


def _user(email: str, name: str) -> User:
    return User(email=email, password_hash="not-a-real-hash", full_name=name)


@pytest.fixture
async def market(session_factory) -> Marketplace:
    """A marketplace trip with one activity, two open needs, and two bidding businesses."""
    async with session_factory() as session:
        owner = _user("owner@example.com", "Olive Owner")
        bidder = _user("guide@example.com", "Gus Guide")
        rival = _user("hotel@example.com", "Hana Hotel")
        outsider = _user("someone@example.com", "Sam Else")
        session.add_all([owner, bidder, rival, outsider])
        await session.flush()

        business = Business(
            user_id=bidder.id,
            business_type="guide",
            business_name="Old Town Walks",
            logo_url="https://cdn.example.com/walks.png",
            rating=Decimal("4.80"),
            review_count=12,
        )
        rival_business = Business(user_id=rival.id, business_type="hotel", business_name="Harbour Hotel")
        trip = Trip(user_id=owner.id, title="Lisbon long weekend", city="Lisbon", visibility="marketplace")
        session.add_all([business, rival_business, trip])
        await session.flush()

        activity = ItineraryItem(trip_id=trip.id, day_number=1, sequence=1, title="Alfama walking tour")
        session.add(activity)
        await session.flush()

        needs = [
            TripServiceNeed(trip_id=trip.id, activity_id=activity.id, category="guide"),
            TripServiceNeed(trip_id=trip.id, category="transport", description="Airport pickup"),
        ]
        session.add_all(needs)
        await session.commit()

        return Marketplace(owner, bidder, rival, outsider, business, rival_business, trip, activity, needs)


def make_payload(market: Marketplace | None = None, **overrides) -> SubmitProposalRequest:
    data = {
        "services_offered": [{"service_name": "Private walking tour", "quantity": 1}],
        "pricing_breakdown": [{"item": "Guide, 3 hours", "quantity": 1, "unit_price": 120.0, "total": 120.0}],
        "total_price": Decimal("120.00"),
        "currency": "eur",
        "message": "Happy to show you around Alfama.",
        "terms": {"cancellation_policy": "Free until 24h before"},
    }
    if market is not None:
        data["activity_id"] = market.activity.id
        data["service_needs_ids"] = [market.needs[0].id]
    data.update(overrides)
    return SubmitProposalRequest(**data)
