"""Tests for the proposal guard: actor resolution, the transition table, and expiry."""

import uuid
from datetime import datetime, timedelta, timezone

import pytest

from tripbid.services import proposal_guard as guard
from tripbid.services.errors import ErrorCode, ProposalError

OWNER = guard.Actor.OWNER
BIDDER = guard.Actor.BIDDER
NOW = datetime(2026, 6, 1, 12, 0, tzinfo=timezone.utc)


def _rejected(code: ErrorCode, reason: str, fn, *args, **kwargs) -> ProposalError:
    with pytest.raises(ProposalError) as exc:
        fn(*args, **kwargs)
    assert exc.value.code == code
    assert exc.value.reason == reason
    return exc.value


class TestResolveActor:
    def test_owner_bidder_and_third_party(self):
        owner, bidder, other = uuid.uuid4(), uuid.uuid4(), uuid.uuid4()

        assert guard.resolve_actor(owner, owner, bidder) == OWNER
        assert guard.resolve_actor(bidder, owner, bidder) == BIDDER
        assert guard.resolve_actor(other, owner, bidder) is None


class TestTransitionTable:
    @pytest.mark.parametrize(
        "current,requested,actor,event_kind",
        [
            ("pending", "accepted", OWNER, "proposal_accepted"),
            ("pending", "declined", OWNER, "proposal_declined"),
            ("pending", "withdrawn", BIDDER, "proposal_withdrawn"),
            ("accepted", "withdrawal_requested", BIDDER, "proposal_withdrawal_requested"),
            ("withdrawal_requested", "accepted", OWNER, "proposal_accepted"),
            ("withdrawal_requested", "withdrawn", OWNER, "proposal_withdrawn"),
        ],
    )
    def test_allowed_moves(self, current, requested, actor, event_kind):
        decision = guard.authorize_transition(actor, current, requested, now=NOW)

        assert decision.from_status == current
        assert decision.to_status == requested
        assert decision.event_kind == event_kind

    @pytest.mark.parametrize(
        "current,requested,actor,reason",
        [
            ("pending", "accepted", BIDDER, "NOT_TRIP_OWNER"),
            ("pending", "declined", BIDDER, "NOT_TRIP_OWNER"),
            ("pending", "withdrawn", OWNER, "NOT_BIDDER"),
            ("accepted", "withdrawal_requested", OWNER, "NOT_BIDDER"),
            ("withdrawal_requested", "accepted", BIDDER, "NOT_TRIP_OWNER"),
            ("withdrawal_requested", "withdrawn", BIDDER, "NOT_TRIP_OWNER"),
        ],
    )
    def test_wrong_actor_is_forbidden(self, current, requested, actor, reason):
        _rejected(ErrorCode.FORBIDDEN, reason, guard.authorize_transition, actor, current, requested, now=NOW)

    def test_bidder_cannot_withdraw_accepted_directly(self):
        _rejected(
            ErrorCode.CONFLICT, "FORBIDDEN_TRANSITION",
            guard.authorize_transition, BIDDER, "accepted", "withdrawn", now=NOW,
        )

    def test_accepted_cannot_be_declined(self):
        _rejected(
            ErrorCode.CONFLICT, "FORBIDDEN_TRANSITION",
            guard.authorize_transition, OWNER, "accepted", "declined", now=NOW,
        )

    def test_withdrawal_request_cannot_be_declined(self):
        _rejected(
            ErrorCode.CONFLICT, "FORBIDDEN_TRANSITION",
            guard.authorize_transition, OWNER, "withdrawal_requested", "declined", now=NOW,
        )

    @pytest.mark.parametrize("terminal", ["declined", "withdrawn", "expired"])
    @pytest.mark.parametrize("requested", ["accepted", "pending", "withdrawal_requested"])
    def test_terminal_states_are_final(self, terminal, requested):
        for actor in (OWNER, BIDDER):
            _rejected(
                ErrorCode.CONFLICT, "FORBIDDEN_TRANSITION",
                guard.authorize_transition, actor, terminal, requested, now=NOW,
            )

    def test_repeat_withdrawal_request_reports_pending_withdrawal(self):
        err = _rejected(
            ErrorCode.CONFLICT, "WITHDRAWAL_PENDING",
            guard.authorize_transition, BIDDER, "withdrawal_requested", "withdrawal_requested", now=NOW,
        )
        assert err.detail == guard.WITHDRAWAL_ALREADY_REQUESTED

    def test_unknown_status_is_a_validation_error(self):
        _rejected(
            ErrorCode.VALIDATION, "INVALID_STATUS",
            guard.authorize_transition, OWNER, "pending", "approved", now=NOW,
        )

    def test_third_party_is_rejected_before_status_checks(self):
        _rejected(
            ErrorCode.FORBIDDEN, "NOT_A_PARTY",
            guard.authorize_transition, None, "pending", "nonsense", now=NOW,
        )

    def test_withdrawal_request_records_reason(self):
        decision = guard.authorize_transition(BIDDER, "accepted", "withdrawal_requested", now=NOW)

        assert decision.records_withdrawal_reason
        assert not decision.fulfils_needs

    def test_only_first_acceptance_fulfils_needs(self):
        first = guard.authorize_transition(OWNER, "pending", "accepted", now=NOW)
        kept = guard.authorize_transition(OWNER, "withdrawal_requested", "accepted", now=NOW)

        assert first.fulfils_needs
        assert not kept.fulfils_needs


class TestExpiry:
    def test_pending_past_deadline_is_expired(self):
        assert guard.is_expired("pending", NOW - timedelta(seconds=1), now=NOW)
        assert guard.effective_status("pending", NOW - timedelta(days=1), now=NOW) == "expired"

    def test_pending_before_deadline_or_without_one_is_live(self):
        assert not guard.is_expired("pending", NOW + timedelta(hours=1), now=NOW)
        assert not guard.is_expired("pending", None, now=NOW)

    def test_only_pending_proposals_lapse(self):
        past = NOW - timedelta(days=3)
        assert guard.effective_status("accepted", past, now=NOW) == "accepted"
        assert guard.effective_status("withdrawal_requested", past, now=NOW) == "withdrawal_requested"

    def test_naive_deadline_is_read_as_utc(self):
        naive = (NOW - timedelta(minutes=5)).replace(tzinfo=None)
        assert guard.is_expired("pending", naive, now=NOW)

    @pytest.mark.parametrize("requested", ["accepted", "declined"])
    def test_owner_cannot_act_on_expired_pending(self, requested):
        _rejected(
            ErrorCode.CONFLICT, "PROPOSAL_EXPIRED",
            guard.authorize_transition, OWNER, "pending", requested, NOW - timedelta(hours=1), now=NOW,
        )

    def test_bidder_can_still_withdraw_expired_pending(self):
        decision = guard.authorize_transition(BIDDER, "pending", "withdrawn", NOW - timedelta(hours=1), now=NOW)
        assert decision.to_status == "withdrawn"


class TestSubmission:
    def test_own_trip_is_forbidden(self):
        user = uuid.uuid4()
        _rejected(ErrorCode.FORBIDDEN, "OWN_TRIP", guard.authorize_submission, user, user, None)

    @pytest.mark.parametrize("existing", ["pending", "accepted"])
    def test_active_proposal_blocks_another(self, existing):
        err = _rejected(
            ErrorCode.CONFLICT, "ACTIVE_PROPOSAL_EXISTS",
            guard.authorize_submission, uuid.uuid4(), uuid.uuid4(), existing,
        )
        assert err.detail == guard.ACTIVE_PROPOSAL_EXISTS

    def test_pending_withdrawal_has_its_own_message(self):
        err = _rejected(
            ErrorCode.CONFLICT, "WITHDRAWAL_PENDING",
            guard.authorize_submission, uuid.uuid4(), uuid.uuid4(), "withdrawal_requested",
        )
        assert err.detail == guard.WITHDRAWAL_PENDING_ON_TRIP

    def test_no_existing_proposal_passes(self):
        guard.authorize_submission(uuid.uuid4(), uuid.uuid4(), None)


class TestDeleteAndMessage:
    def test_bidder_deletes_pending(self):
        guard.authorize_delete(BIDDER, "pending")

    def test_owner_cannot_delete(self):
        _rejected(ErrorCode.FORBIDDEN, "NOT_BIDDER", guard.authorize_delete, OWNER, "pending")

    @pytest.mark.parametrize("status", ["accepted", "declined", "withdrawal_requested"])
    def test_only_pending_can_be_deleted(self, status):
        _rejected(ErrorCode.CONFLICT, "NOT_PENDING", guard.authorize_delete, BIDDER, status)

    def test_third_party_cannot_message(self):
        guard.authorize_message(OWNER)
        guard.authorize_message(BIDDER)
        _rejected(ErrorCode.FORBIDDEN, "NOT_A_PARTY", guard.authorize_message, None)


class TestProposalError:
    def test_status_codes_and_body(self):
        err = ProposalError(ErrorCode.CONFLICT, "nope", "ACTIVE_PROPOSAL_EXISTS")

        assert err.status_code == 409
        assert err.to_dict() == {"detail": "nope", "code": "CONFLICT", "reason": "ACTIVE_PROPOSAL_EXISTS"}
        assert ProposalError(ErrorCode.UPSTREAM_FAILURE, "down").reason == "UPSTREAM_FAILURE"
