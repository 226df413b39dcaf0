from tripbid.models.user import User
from tripbid.models.business import Business
from tripbid.models.trip import ItineraryItem, Trip, TripServiceNeed
from tripbid.models.proposal import MarketplaceProposal, ProposalMessage
from tripbid.models.discussion import Discussion

__all__ = [
    "Business",
    "Discussion",
    "ItineraryItem",
    "MarketplaceProposal",
    "ProposalMessage",
    "Trip",
    "TripServiceNeed",
    "User",
]
