"""Tests for ProposalStore against SQLite."""

import uuid
from decimal import Decimal

import pytest
from sqlalchemy.exc import IntegrityError

from tripbid.models.proposal import MarketplaceProposal
from tripbid.services.proposal_store import ProposalStore


def _proposal(market, business=None, status="pending", **fields) -> MarketplaceProposal:
    return MarketplaceProposal(
        trip_id=market.trip.id,
        business_id=(business or market.business).id,
        services_offered=[{"service_name": "Tour"}],
        pricing_breakdown=[{"item": "Tour", "unit_price": 50.0, "total": 50.0}],
        total_price=Decimal("50.00"),
        status=status,
        **fields,
    )


@pytest.fixture
def store():
    return ProposalStore()


class TestProposalStore:
    async def test_create_and_get(self, db, market, store):
        created = await store.create(db, _proposal(market))
        await db.commit()

        loaded = await store.get_by_id(db, created.id)
        assert loaded.trip_id == market.trip.id
        assert loaded.status == "pending"
        assert loaded.currency == "USD"

    async def test_find_active_skips_terminal_rows(self, db, market, store):
        await store.create(db, _proposal(market, status="declined"))
        await store.create(db, _proposal(market, status="withdrawn"))
        await db.commit()

        assert await store.find_active_by_trip_and_business(db, market.trip.id, market.business.id) is None

        active = await store.create(db, _proposal(market, status="accepted"))
        await db.commit()

        found = await store.find_active_by_trip_and_business(db, market.trip.id, market.business.id)
        assert found.id == active.id

    async def test_partial_unique_index_rejects_second_active_row(self, db, market, store):
        await store.create(db, _proposal(market))
        await db.commit()

        with pytest.raises(IntegrityError):
            await store.create(db, _proposal(market, status="withdrawal_requested"))
        await db.rollback()

    async def test_terminal_rows_do_not_collide(self, db, market, store):
        await store.create(db, _proposal(market, status="declined"))
        await store.create(db, _proposal(market, status="expired"))
        await store.create(db, _proposal(market))
        await db.commit()

        assert len(await store.list_by_trip(db, market.trip.id)) == 3

    async def test_list_by_trip_filters_by_business(self, db, market, store):
        await store.create(db, _proposal(market))
        await store.create(db, _proposal(market, business=market.rival_business))
        await db.commit()

        assert len(await store.list_by_trip(db, market.trip.id)) == 2
        mine = await store.list_by_trip(db, market.trip.id, business_id=market.rival_business.id)
        assert [p.business_id for p in mine] == [market.rival_business.id]

    async def test_list_by_business_status_and_limit(self, db, market, store):
        await store.create(db, _proposal(market, status="declined"))
        await store.create(db, _proposal(market, status="withdrawn"))
        await store.create(db, _proposal(market))
        await db.commit()

        assert len(await store.list_by_business(db, market.business.id)) == 3
        assert len(await store.list_by_business(db, market.business.id, status="all")) == 3
        declined = await store.list_by_business(db, market.business.id, status="declined")
        assert [row.MarketplaceProposal.status for row in declined] == ["declined"]
        assert len(await store.list_by_business(db, market.business.id, limit=2)) == 2

    async def test_list_by_business_carries_trip_context(self, db, market, store):
        await store.create(db, _proposal(market, activity_id=market.activity.id))
        await store.create(db, _proposal(market, status="declined"))
        await db.commit()

        rows = await store.list_by_business(db, market.business.id)

        assert {row.trip_title for row in rows} == {"Lisbon long weekend"}
        assert {row.trip_city for row in rows} == {"Lisbon"}
        assert {row.trip_visibility for row in rows} == {"marketplace"}
        assert {row.trip_owner_name for row in rows} == {"Olive Owner"}
        titles = {row.MarketplaceProposal.status: row.activity_title for row in rows}
        assert titles == {"pending": "Alfama walking tour", "declined": None}

    async def test_update_applies_patch(self, db, market, store):
        created = await store.create(db, _proposal(market))
        await db.commit()

        updated = await store.update(db, created.id, {"status": "accepted", "response_message": "Great"})
        await db.commit()

        assert updated.status == "accepted"
        assert (await store.get_by_id(db, created.id)).response_message == "Great"

    async def test_update_missing_raises(self, db, market, store):
        with pytest.raises(LookupError):
            await store.update(db, uuid.uuid4(), {"status": "accepted"})

    async def test_delete(self, db, market, store):
        created = await store.create(db, _proposal(market))
        await db.commit()

        assert await store.delete(db, created.id) is True
        await db.commit()
        assert await store.get_by_id(db, created.id) is None
        assert await store.delete(db, created.id) is False

    async def test_message_thread(self, db, market, store):
        created = await store.create(db, _proposal(market))
        await store.add_message(db, created.id, market.bidder.id, "Hello")
        await store.add_message(db, created.id, market.owner.id, "Proposal accepted", message_type="system")
        await db.commit()

        messages = await store.list_messages(db, created.id)
        assert {m.message for m in messages} == {"Hello", "Proposal accepted"}
        assert {m.message_type for m in messages} == {"user", "system"}
