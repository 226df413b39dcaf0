"""Proposal guard — who may submit, transition, delete, or message on a proposal.

Everything here is pure: callers pass the identities and the proposal's
current state, and get back either a decision or a raised ProposalError.
"""

import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum

from tripbid.models.proposal import PROPOSAL_STATUSES, TERMINAL_STATUSES
from tripbid.services.errors import ErrorCode, ProposalError

ACTIVE_PROPOSAL_EXISTS = "You already have an active proposal for this trip"
WITHDRAWAL_PENDING_ON_TRIP = "You have a pending withdrawal request on this trip"
WITHDRAWAL_ALREADY_REQUESTED = "You have a pending withdrawal request for this proposal"
OWN_TRIP = "Cannot submit proposal for your own trip"
NOT_AUTHORIZED = "Not authorized"


class Actor(str, Enum):
    OWNER = "owner"
    BIDDER = "bidder"


# (current, requested) -> the only actor allowed to make that move
TRANSITIONS: dict[tuple[str, str], Actor] = {
    ("pending", "accepted"): Actor.OWNER,
    ("pending", "declined"): Actor.OWNER,
    ("pending", "withdrawn"): Actor.BIDDER,
    ("accepted", "withdrawal_requested"): Actor.BIDDER,
    ("withdrawal_requested", "accepted"): Actor.OWNER,  # owner rejects the withdrawal
    ("withdrawal_requested", "withdrawn"): Actor.OWNER,  # owner approves the withdrawal
}

EVENT_KINDS = {
    "accepted": "proposal_accepted",
    "declined": "proposal_declined",
    "withdrawn": "proposal_withdrawn",
    "withdrawal_requested": "proposal_withdrawal_requested",
}

_WRONG_ACTOR_DETAIL = {
    ("pending", "accepted"): "Only trip owner can accept or decline proposals",
    ("pending", "declined"): "Only trip owner can accept or decline proposals",
    ("pending", "withdrawn"): "Only proposal owner can withdraw",
    ("accepted", "withdrawal_requested"): "Only proposal owner can request a withdrawal",
    ("withdrawal_requested", "accepted"): "Only trip owner can approve or reject a withdrawal request",
    ("withdrawal_requested", "withdrawn"): "Only trip owner can approve or reject a withdrawal request",
}


@dataclass(frozen=True)
class TransitionDecision:
    actor: Actor
    from_status: str
    to_status: str
    event_kind: str
    records_withdrawal_reason: bool
    fulfils_needs: bool


def resolve_actor(
    user_id: uuid.UUID, trip_owner_id: uuid.UUID, business_owner_id: uuid.UUID
) -> Actor | None:
    """Map a user onto their role in a proposal, or None for a third party."""
    if user_id == trip_owner_id:
        return Actor.OWNER
    if user_id == business_owner_id:
        return Actor.BIDDER
    return None


def is_expired(status: str, expires_at: datetime | None, now: datetime | None = None) -> bool:
    """A pending proposal past its deadline counts as expired, whatever is stored."""
    if status == "expired":
        return True
    if status != "pending" or expires_at is None:
        return False
    if expires_at.tzinfo is None:
        expires_at = expires_at.replace(tzinfo=timezone.utc)
    return expires_at <= (now or datetime.now(timezone.utc))


def effective_status(status: str, expires_at: datetime | None, now: datetime | None = None) -> str:
    return "expired" if is_expired(status, expires_at, now) else status


def authorize_submission(
    bidder_user_id: uuid.UUID, trip_owner_id: uuid.UUID, existing_status: str | None
) -> None:
    if bidder_user_id == trip_owner_id:
        raise ProposalError(ErrorCode.FORBIDDEN, OWN_TRIP, "OWN_TRIP")
    if existing_status is None:
        return
    if existing_status == "withdrawal_requested":
        raise ProposalError(ErrorCode.CONFLICT, WITHDRAWAL_PENDING_ON_TRIP, "WITHDRAWAL_PENDING")
    raise ProposalError(ErrorCode.CONFLICT, ACTIVE_PROPOSAL_EXISTS, "ACTIVE_PROPOSAL_EXISTS")


def authorize_transition(
    actor: Actor | None,
    current: str,
    requested: str,
    expires_at: datetime | None = None,
    now: datetime | None = None,
) -> TransitionDecision:
    if actor is None:
        raise ProposalError(ErrorCode.FORBIDDEN, NOT_AUTHORIZED, "NOT_A_PARTY")
    if requested not in PROPOSAL_STATUSES:
        raise ProposalError(
            ErrorCode.VALIDATION, f"Invalid status '{requested}'", "INVALID_STATUS"
        )

    allowed = TRANSITIONS.get((current, requested))
    if allowed is None:
        if current == "withdrawal_requested" and requested == "withdrawal_requested":
            raise ProposalError(ErrorCode.CONFLICT, WITHDRAWAL_ALREADY_REQUESTED, "WITHDRAWAL_PENDING")
        if current in TERMINAL_STATUSES:
            detail = f"Proposal is already {current}; {actor.value} cannot move it to '{requested}'"
        else:
            detail = f"{actor.value.capitalize()} cannot move a proposal from '{current}' to '{requested}'"
        raise ProposalError(ErrorCode.CONFLICT, detail, "FORBIDDEN_TRANSITION")

    if allowed != actor:
        reason = "NOT_TRIP_OWNER" if allowed == Actor.OWNER else "NOT_BIDDER"
        raise ProposalError(ErrorCode.FORBIDDEN, _WRONG_ACTOR_DETAIL[(current, requested)], reason)

    if current == "pending" and requested in ("accepted", "declined") and is_expired(current, expires_at, now):
        raise ProposalError(ErrorCode.CONFLICT, "This proposal has expired", "PROPOSAL_EXPIRED")

    return TransitionDecision(
        actor=actor,
        from_status=current,
        to_status=requested,
        event_kind=EVENT_KINDS[requested],
        records_withdrawal_reason=requested == "withdrawal_requested",
        fulfils_needs=current == "pending" and requested == "accepted",
    )


def authorize_delete(actor: Actor | None, status: str) -> None:
    if actor != Actor.BIDDER:
        raise ProposalError(ErrorCode.FORBIDDEN, "Only proposal owner can delete it", "NOT_BIDDER")
    if status != "pending":
        raise ProposalError(
            ErrorCode.CONFLICT, f"Only pending proposals can be deleted (status is '{status}')", "NOT_PENDING"
        )


def authorize_message(actor: Actor | None) -> None:
    if actor is None:
        raise ProposalError(
            ErrorCode.FORBIDDEN, "Not authorized to message on this proposal", "NOT_A_PARTY"
        )
