"""Proposal service — submission, lifecycle transitions, and the proposal message thread."""

import asyncio
import logging
import uuid
from collections.abc import Awaitable, Callable
from typing import TypeVar

from sqlalchemy import Row
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from tripbid.config import settings
from tripbid.models.proposal import MarketplaceProposal, ProposalMessage
from tripbid.schemas.proposal import SubmitProposalRequest
from tripbid.services import proposal_guard as guard
from tripbid.services.audit_notifier import AuditNotifier, audit_notifier
from tripbid.services.directory_service import (
    ActivityDirectory,
    BusinessDirectory,
    BusinessPublicInfo,
    activity_directory,
    business_directory,
)
from tripbid.services.errors import ErrorCode, ProposalError
from tripbid.services.proposal_store import ProposalStore, proposal_store
from tripbid.services.trip_registry import TripRegistry, trip_registry

logger = logging.getLogger(__name__)

T = TypeVar("T")

_SYSTEM_MESSAGES = {
    "accepted": "Proposal accepted",
    "declined": "Proposal declined",
    "withdrawn": "Proposal withdrawn",
    "withdrawal_requested": "Withdrawal requested",
}


class ProposalService:
    """Runs every proposal mutation in two phases.

    Phase one validates, mutates the proposal and its linked needs, and commits
    as a single transaction. Phase two writes the audit entry in a separate
    session; its failures are logged and never reach the caller.
    """

    def __init__(
        self,
        store: ProposalStore = proposal_store,
        registry: TripRegistry = trip_registry,
        businesses: BusinessDirectory = business_directory,
        activities: ActivityDirectory = activity_directory,
        notifier: AuditNotifier = audit_notifier,
        operation_timeout: float | None = None,
        notifier_timeout: float | None = None,
    ):
        self.store = store
        self.registry = registry
        self.businesses = businesses
        self.activities = activities
        self.notifier = notifier
        self.operation_timeout = operation_timeout or settings.operation_timeout_seconds
        self.notifier_timeout = notifier_timeout or settings.notifier_timeout_seconds

    # ─── Submission ───

    async def submit_proposal(
        self,
        db: AsyncSession,
        actor_user_id: uuid.UUID | None,
        trip_id: uuid.UUID,
        payload: SubmitProposalRequest,
    ) -> MarketplaceProposal:
        actor_user_id = self._require_actor(actor_user_id)
        proposal, business = await self._run(
            db, "submit proposal", lambda: self._submit(db, actor_user_id, trip_id, payload)
        )
        logger.info(
            f"Proposal {proposal.id} submitted by business {business.id} on trip {trip_id} "
            f"({proposal.currency} {proposal.total_price})"
        )
        await self._publish_event(db, proposal, "proposal_created", actor_user_id, business)
        return proposal

    async def _submit(
        self,
        db: AsyncSession,
        actor_user_id: uuid.UUID,
        trip_id: uuid.UUID,
        payload: SubmitProposalRequest,
    ) -> tuple[MarketplaceProposal, BusinessPublicInfo]:
        business = await self.businesses.get_active_business_by_user(db, actor_user_id)
        if not business:
            raise ProposalError(
                ErrorCode.FORBIDDEN,
                "You need to register as a business to submit proposals",
                "NO_ACTIVE_BUSINESS",
            )

        trip = await self.registry.get_trip(db, trip_id)
        if not trip or not self.registry.is_open_for_proposals(trip):
            raise ProposalError(
                ErrorCode.NOT_FOUND, "Trip not found or not in marketplace", "TRIP_NOT_OPEN"
            )

        existing = await self.store.find_active_by_trip_and_business(db, trip.id, business.id)
        guard.authorize_submission(actor_user_id, trip.user_id, existing.status if existing else None)

        self._validate_payload(payload)
        await self._validate_links(db, trip.id, payload)

        data = payload.model_dump(mode="json")
        terms = None
        if payload.terms:
            terms = payload.terms.model_dump(mode="json", exclude_none=True, exclude={"withdrawal_reason"})

        proposal = MarketplaceProposal(
            trip_id=trip.id,
            business_id=business.id,
            activity_id=payload.activity_id,
            service_needs_ids=data["service_needs_ids"],
            services_offered=data["services_offered"],
            pricing_breakdown=data["pricing_breakdown"],
            total_price=payload.total_price,
            currency=(payload.currency or settings.default_currency).upper(),
            message=payload.message or "",
            terms=terms or None,
            attachments=data["attachments"],
            expires_at=payload.expires_at,
            status="pending",
        )
        try:
            await self.store.create(db, proposal)
        except IntegrityError:
            # Lost the race against a concurrent submission from the same business
            await db.rollback()
            raise ProposalError(
                ErrorCode.CONFLICT, guard.ACTIVE_PROPOSAL_EXISTS, "ACTIVE_PROPOSAL_EXISTS"
            )

        if payload.service_needs_ids:
            try:
                async with db.begin_nested():
                    await self.registry.set_need_status(db, payload.service_needs_ids, "has_offers")
            except SQLAlchemyError:
                logger.warning(
                    f"Could not mark needs {payload.service_needs_ids} as has_offers "
                    f"for proposal {proposal.id}",
                    exc_info=True,
                )

        await db.commit()
        await db.refresh(proposal)
        return proposal, self._public_info(business)

    def _validate_payload(self, payload: SubmitProposalRequest) -> None:
        if not payload.services_offered or not payload.pricing_breakdown or payload.total_price is None:
            raise ProposalError(
                ErrorCode.VALIDATION,
                "Services offered, pricing breakdown, and total price are required",
                "MISSING_FIELDS",
            )

    async def _validate_links(
        self, db: AsyncSession, trip_id: uuid.UUID, payload: SubmitProposalRequest
    ) -> None:
        if payload.activity_id:
            activity = await self.activities.get_activity(db, payload.activity_id)
            if not activity or activity.trip_id != trip_id:
                raise ProposalError(
                    ErrorCode.VALIDATION, "Activity does not belong to this trip", "UNKNOWN_ACTIVITY"
                )
        if payload.service_needs_ids:
            needs = await self.registry.get_service_needs(db, payload.service_needs_ids)
            known = {n.id for n in needs if n.trip_id == trip_id}
            if known != set(payload.service_needs_ids):
                raise ProposalError(
                    ErrorCode.VALIDATION, "Service needs do not belong to this trip", "UNKNOWN_NEED"
                )

    # ─── Transitions ───

    async def transition_proposal(
        self,
        db: AsyncSession,
        actor_user_id: uuid.UUID | None,
        trip_id: uuid.UUID,
        proposal_id: uuid.UUID,
        target_status: str,
        message: str | None = None,
    ) -> MarketplaceProposal:
        actor_user_id = self._require_actor(actor_user_id)
        proposal, decision, business = await self._run(
            db,
            "transition proposal",
            lambda: self._transition(db, actor_user_id, trip_id, proposal_id, target_status, message),
        )
        logger.info(
            f"Proposal {proposal.id}: {decision.from_status} -> {decision.to_status} "
            f"by {decision.actor.value} {actor_user_id}"
        )
        await self._publish_event(
            db, proposal, decision.event_kind, actor_user_id, business, decision.from_status
        )
        return proposal

    async def _transition(
        self,
        db: AsyncSession,
        actor_user_id: uuid.UUID,
        trip_id: uuid.UUID,
        proposal_id: uuid.UUID,
        target_status: str,
        message: str | None,
    ) -> tuple[MarketplaceProposal, guard.TransitionDecision, BusinessPublicInfo]:
        proposal, actor, business = await self._load_for_actor(
            db, actor_user_id, trip_id, proposal_id, for_update=True
        )
        decision = guard.authorize_transition(actor, proposal.status, target_status, proposal.expires_at)

        patch: dict = {"status": decision.to_status}
        if decision.records_withdrawal_reason:
            if message:
                terms = dict(proposal.terms or {})
                terms["withdrawal_reason"] = message
                patch["terms"] = terms
        elif message:
            patch["response_message"] = message

        proposal = await self.store.update(db, proposal.id, patch)

        if decision.fulfils_needs and proposal.service_needs_ids:
            need_ids = [uuid.UUID(str(n)) for n in proposal.service_needs_ids]
            await self.registry.set_need_status(db, need_ids, "fulfilled")

        await self.store.add_message(
            db, proposal.id, actor_user_id, _SYSTEM_MESSAGES[decision.to_status], message_type="system"
        )

        await db.commit()
        await db.refresh(proposal)
        return proposal, decision, business

    # ─── Deletion ───

    async def delete_proposal(
        self,
        db: AsyncSession,
        actor_user_id: uuid.UUID | None,
        trip_id: uuid.UUID,
        proposal_id: uuid.UUID,
    ) -> None:
        actor_user_id = self._require_actor(actor_user_id)

        async def _delete() -> None:
            proposal, actor, _ = await self._load_for_actor(
                db, actor_user_id, trip_id, proposal_id, for_update=True
            )
            guard.authorize_delete(actor, proposal.status)
            await self.store.delete(db, proposal.id)
            await db.commit()

        await self._run(db, "delete proposal", _delete)
        logger.info(f"Proposal {proposal_id} deleted by its bidder {actor_user_id}")

    # ─── Reads ───

    async def list_proposals_for_trip(
        self,
        db: AsyncSession,
        actor_user_id: uuid.UUID | None,
        trip_id: uuid.UUID,
        for_business: bool = False,
    ) -> list[MarketplaceProposal]:
        actor_user_id = self._require_actor(actor_user_id)

        async def _list() -> list[MarketplaceProposal]:
            trip = await self.registry.get_trip(db, trip_id)
            if not trip:
                raise ProposalError(ErrorCode.NOT_FOUND, "Trip not found", "TRIP_NOT_FOUND")
            if for_business:
                business = await self._require_business(db, actor_user_id)
                return await self.store.list_by_trip(db, trip.id, business_id=business.id)
            if trip.user_id != actor_user_id:
                raise ProposalError(ErrorCode.FORBIDDEN, guard.NOT_AUTHORIZED, "NOT_TRIP_OWNER")
            return await self.store.list_by_trip(db, trip.id)

        return await self._run(db, "list trip proposals", _list)

    async def list_proposals_for_business(
        self,
        db: AsyncSession,
        actor_user_id: uuid.UUID | None,
        status: str | None = None,
        limit: int | None = None,
    ) -> list[Row]:
        """Dashboard rows for the caller's business, see ProposalStore.list_by_business."""
        actor_user_id = self._require_actor(actor_user_id)

        async def _list() -> list[Row]:
            business = await self._require_business(db, actor_user_id)
            return await self.store.list_by_business(
                db, business.id, status=status, limit=limit or settings.business_proposals_limit
            )

        return await self._run(db, "list business proposals", _list)

    async def get_proposal_detail(
        self, db: AsyncSession, actor_user_id: uuid.UUID | None, proposal_id: uuid.UUID
    ) -> tuple[MarketplaceProposal, BusinessPublicInfo, list[ProposalMessage]]:
        actor_user_id = self._require_actor(actor_user_id)

        async def _detail():
            proposal, actor, business = await self._load_for_actor(db, actor_user_id, None, proposal_id)
            guard.authorize_message(actor)
            messages = await self.store.list_messages(db, proposal.id)
            return proposal, business, messages

        return await self._run(db, "load proposal", _detail)

    # ─── Message thread ───

    async def post_message(
        self,
        db: AsyncSession,
        actor_user_id: uuid.UUID | None,
        proposal_id: uuid.UUID,
        message: str,
        attachments: list | None = None,
    ) -> ProposalMessage:
        actor_user_id = self._require_actor(actor_user_id)
        if not message or not message.strip():
            raise ProposalError(ErrorCode.VALIDATION, "Message is required", "MISSING_FIELDS")

        async def _post() -> ProposalMessage:
            proposal, actor, _ = await self._load_for_actor(db, actor_user_id, None, proposal_id)
            guard.authorize_message(actor)
            entry = await self.store.add_message(
                db, proposal.id, actor_user_id, message.strip(), attachments=attachments
            )
            await db.commit()
            await db.refresh(entry)
            return entry

        return await self._run(db, "post proposal message", _post)

    # ─── Helpers ───

    def _require_actor(self, actor_user_id: uuid.UUID | None) -> uuid.UUID:
        if actor_user_id is None:
            raise ProposalError(ErrorCode.UNAUTHENTICATED, "Unauthorized")
        return actor_user_id

    async def _require_business(self, db: AsyncSession, actor_user_id: uuid.UUID):
        business = await self.businesses.get_active_business_by_user(db, actor_user_id)
        if not business:
            raise ProposalError(ErrorCode.NOT_FOUND, "No active business found", "NO_ACTIVE_BUSINESS")
        return business

    async def _load_for_actor(
        self,
        db: AsyncSession,
        actor_user_id: uuid.UUID,
        trip_id: uuid.UUID | None,
        proposal_id: uuid.UUID,
        for_update: bool = False,
    ) -> tuple[MarketplaceProposal, guard.Actor | None, BusinessPublicInfo]:
        proposal = await self.store.get_by_id(db, proposal_id, for_update=for_update)
        if not proposal or (trip_id is not None and proposal.trip_id != trip_id):
            raise ProposalError(ErrorCode.NOT_FOUND, "Proposal not found", "PROPOSAL_NOT_FOUND")

        trip = await self.registry.get_trip(db, proposal.trip_id)
        business = await self.businesses.get_business_public_info(db, proposal.business_id)
        if not trip or not business:
            raise ProposalError(ErrorCode.NOT_FOUND, "Proposal not found", "PROPOSAL_NOT_FOUND")

        actor = guard.resolve_actor(actor_user_id, trip.user_id, business.user_id)
        return proposal, actor, business

    def _public_info(self, business) -> BusinessPublicInfo:
        return BusinessPublicInfo.from_business(business)

    async def _run(self, db: AsyncSession, operation: str, fn: Callable[[], Awaitable[T]]) -> T:
        """Run one transactional unit with a deadline, mapping store failures."""
        try:
            return await asyncio.wait_for(fn(), timeout=self.operation_timeout)
        except ProposalError:
            # Rejections happen before any write: end the transaction without expiring loaded rows
            await db.commit()
            raise
        except asyncio.TimeoutError:
            await db.rollback()
            logger.error(f"{operation} timed out after {self.operation_timeout}s")
            raise ProposalError(
                ErrorCode.UPSTREAM_FAILURE, f"Timed out trying to {operation}", "TIMEOUT"
            )
        except SQLAlchemyError as e:
            await db.rollback()
            logger.error(f"{operation} failed: {e}")
            raise ProposalError(
                ErrorCode.UPSTREAM_FAILURE, f"Failed to {operation}", "STORE_FAILURE"
            ) from e

    # ─── Audit (best effort, after commit) ───

    async def _publish_event(
        self,
        db: AsyncSession,
        proposal: MarketplaceProposal,
        event_kind: str,
        actor_user_id: uuid.UUID,
        business: BusinessPublicInfo,
        previous_status: str | None = None,
    ) -> bool:
        try:
            await asyncio.wait_for(
                self._record_event(db, proposal, event_kind, actor_user_id, business, previous_status),
                timeout=self.notifier_timeout,
            )
            return True
        except Exception:
            logger.exception(f"Audit log failed for proposal {proposal.id} ({event_kind})")
            return False

    async def _record_event(
        self,
        db: AsyncSession,
        proposal: MarketplaceProposal,
        event_kind: str,
        actor_user_id: uuid.UUID,
        business: BusinessPublicInfo,
        previous_status: str | None,
    ) -> None:
        # Own session so a failure here cannot touch the committed proposal
        async with AsyncSession(db.bind, expire_on_commit=False) as audit_db:
            activity_title = None
            if proposal.activity_id:
                activity = await self.activities.get_activity(audit_db, proposal.activity_id)
                activity_title = activity.title if activity else None

            content, metadata = self.notifier.render(
                event_kind, proposal, business, activity_title, previous_status
            )
            await self.notifier.record(
                audit_db,
                trip_id=proposal.trip_id,
                activity_id=proposal.activity_id,
                actor_user_id=actor_user_id,
                content=content,
                event_kind=event_kind,
                metadata=metadata,
            )
            await audit_db.commit()


proposal_service = ProposalService()
