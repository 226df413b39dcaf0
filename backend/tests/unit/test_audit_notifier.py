"""Tests for how proposal events are rendered into trip discussion entries."""

import uuid
from decimal import Decimal

import pytest

from tripbid.models.proposal import MarketplaceProposal
from tripbid.services.audit_notifier import AuditNotifier
from tripbid.services.directory_service import BusinessPublicInfo

BUSINESS = BusinessPublicInfo(
    id=uuid.uuid4(),
    user_id=uuid.uuid4(),
    name="Old Town Walks",
    type="guide",
    logo_url="https://cdn.example.com/walks.png",
)


def _proposal(**fields) -> MarketplaceProposal:
    data = {
        "id": uuid.uuid4(),
        "trip_id": uuid.uuid4(),
        "business_id": BUSINESS.id,
        "activity_id": uuid.uuid4(),
        "total_price": Decimal("1250.00"),
        "currency": "EUR",
        "message": "See you there",
        "terms": {},
        "status": "pending",
    }
    data.update(fields)
    return MarketplaceProposal(**data)


@pytest.fixture
def notifier():
    return AuditNotifier()


class TestRender:
    def test_created(self, notifier):
        proposal = _proposal()
        content, meta = notifier.render("proposal_created", proposal, BUSINESS, "Alfama walking tour")

        assert content == "Old Town Walks submitted a proposal for 'Alfama walking tour': EUR 1,250.00"
        assert meta["proposal_id"] == str(proposal.id)
        assert meta["business_name"] == "Old Town Walks"
        assert meta["business_type"] == "guide"
        assert meta["total_price"] == 1250.0
        assert meta["currency"] == "EUR"
        assert meta["message"] == "See you there"
        assert "withdrawal_reason" not in meta

    def test_without_activity_names_the_trip(self, notifier):
        content, meta = notifier.render("proposal_declined", _proposal(activity_id=None), BUSINESS)

        assert content == "Proposal from Old Town Walks for the trip was declined"
        assert meta["activity_id"] is None

    def test_accept_after_withdrawal_request_reads_as_rejection(self, notifier):
        plain, _ = notifier.render("proposal_accepted", _proposal(), BUSINESS, "Tour", "pending")
        kept, meta = notifier.render("proposal_accepted", _proposal(), BUSINESS, "Tour", "withdrawal_requested")

        assert "was accepted" in plain
        assert "Withdrawal request from Old Town Walks was declined" in kept
        assert meta["previous_status"] == "withdrawal_requested"

    def test_withdrawn_by_bidder_and_approved_by_owner(self, notifier):
        by_bidder, _ = notifier.render("proposal_withdrawn", _proposal(), BUSINESS, "Tour", "pending")
        approved, _ = notifier.render("proposal_withdrawn", _proposal(), BUSINESS, "Tour", "withdrawal_requested")

        assert by_bidder == "Old Town Walks withdrew their proposal for 'Tour'"
        assert approved == "Withdrawal of Old Town Walks's proposal for 'Tour' was approved"

    def test_withdrawal_request_carries_reason(self, notifier):
        proposal = _proposal(status="withdrawal_requested", terms={"withdrawal_reason": "Guide is ill"})
        content, meta = notifier.render("proposal_withdrawal_requested", proposal, BUSINESS, "Tour", "accepted")

        assert content.endswith(": Guide is ill")
        assert meta["withdrawal_reason"] == "Guide is ill"

    def test_unknown_kind_raises(self, notifier):
        with pytest.raises(ValueError):
            notifier.render("proposal_deleted", _proposal(), BUSINESS)
