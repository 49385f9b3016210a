"""
Delivery Confirmation Service.

After drop-off the vendor has a fixed window to confirm (optionally with
a rating) or contest the delivery. Deliveries still unresolved when the
window closes are confirmed automatically by the sweep.

Exactly one resolution is ever recorded per mission: every resolving
write is conditioned on the delivery still being unresolved, so a vendor
confirmation racing the sweep has a single winner. Only the winner fires
the settlement trigger.
"""

import logging
import math
from datetime import datetime
from typing import Optional

from sqlalchemy.ext.asyncio import async_sessionmaker

from parcel_handoff.app.core.clock import Clock, utcnow, as_naive_utc
from parcel_handoff.app.core.exceptions import (
    AlreadyResolvedError,
    DomainValidationError,
    InvalidStateTransitionError,
    ResourceNotFoundError,
)
from parcel_handoff.app.models.mission import Mission
from parcel_handoff.app.models.mission_enums import MissionStatus, DeliveryStatus
from parcel_handoff.app.models.notification import NotificationType
from parcel_handoff.app.models.parcel import Parcel
from parcel_handoff.app.models.parcel_enums import ParcelStatus
from parcel_handoff.app.models.review import Review
from parcel_handoff.app.repositories.delivery_store import (
    DeliveryStore,
    unresolved_delivery_conditions,
    expired_delivery_conditions,
)
from parcel_handoff.app.schemas.delivery import DeliveryStatusResponse, SweepResponse, SweepResult
from parcel_handoff.app.services.access import load_vendor_parcel, load_visible_parcel
from parcel_handoff.app.services.audit import log_event, AuditAction
from parcel_handoff.app.services.notification_service import NotificationDispatcher
from parcel_handoff.app.services.settlement_trigger import SettlementTrigger, fire_settlement

logger = logging.getLogger(__name__)

OUTCOME_AUTO_CONFIRMED = "auto_confirmed"
OUTCOME_SKIPPED = "skipped"
OUTCOME_ERROR = "error"


def resolution_of(mission: Mission) -> Optional[str]:
    if mission.client_contested_at is not None:
        return "contested"
    if mission.auto_confirmed:
        return "auto_confirmed"
    if mission.client_confirmed_delivery_at is not None:
        return "confirmed"
    return None


def derive_delivery_status(mission: Mission) -> DeliveryStatus:
    if mission.delivered_at is None:
        return DeliveryStatus.PENDING
    if mission.client_contested_at is not None:
        return DeliveryStatus.CONTESTED
    if mission.auto_confirmed:
        return DeliveryStatus.AUTO_CONFIRMED
    if mission.client_confirmed_delivery_at is not None:
        return DeliveryStatus.CONFIRMED
    return DeliveryStatus.AWAITING_CONFIRMATION


def hours_remaining(deadline: Optional[datetime], now: datetime) -> Optional[int]:
    """Whole hours left before ``deadline``, rounded up, never below zero."""
    if deadline is None:
        return None
    seconds = (as_naive_utc(deadline) - now).total_seconds()
    return max(0, math.ceil(seconds / 3600))


class DeliveryConfirmationService:

    def __init__(
        self,
        store: DeliveryStore,
        notifier: NotificationDispatcher,
        settlement_trigger: SettlementTrigger,
        session_factory: async_sessionmaker,
        clock: Clock = utcnow,
    ):
        self.store = store
        self.notifier = notifier
        self.settlement_trigger = settlement_trigger
        self.session_factory = session_factory
        self.clock = clock

    async def client_confirm_delivery(
        self,
        parcel_id: int,
        vendor_id: int,
        rating: Optional[int] = None,
        comment: Optional[str] = None,
        vendor_username: Optional[str] = None,
    ) -> Mission:
        """
        Vendor confirms the drop-off.

        Completes mission and parcel, bumps the carrier's delivery count and,
        when a rating is given, records a review and refreshes the carrier's
        average rating. Settlement fires after the commit.

        Raises:
            DomainValidationError: rating outside 1..5
            InvalidStateTransitionError: no mission, or no drop-off proof yet
            AlreadyResolvedError: delivery already confirmed, contested or auto-confirmed
        """
        if rating is not None and not 1 <= rating <= 5:
            raise DomainValidationError("Rating must be between 1 and 5", field="rating")

        now = self.clock()
        async with self.store.begin() as session:
            parcel = await load_vendor_parcel(self.store, session, parcel_id, vendor_id)
            mission = await self._awaiting_mission(session, parcel)

            resolved = await self.store.update_mission_if(
                session, mission.id,
                unresolved_delivery_conditions(),
                status=MissionStatus.DELIVERED,
                client_confirmed_delivery_at=now,
            )
            if not resolved:
                raise AlreadyResolvedError("Delivery was resolved concurrently", resolution="concurrent")

            await self._complete_parcel(session, parcel.id)
            await self.store.increment_carrier_deliveries(session, mission.carrier_id)

            average = None
            if rating is not None:
                average = await self.store.record_review(session, Review(
                    parcel_id=parcel.id,
                    mission_id=mission.id,
                    reviewer_id=vendor_id,
                    reviewee_id=mission.carrier_id,
                    rating=rating,
                    comment=comment,
                ))

            await log_event(
                db=session,
                action=AuditAction.DELIVERY_CONFIRMED,
                actor_id=vendor_id,
                actor_username=vendor_username,
                mission_id=mission.id,
                parcel_id=parcel.id,
                metadata={"rating": rating, "average_rating": average}
            )
            mission = await self.store.get_mission_with_parcel(session, mission.id)

        logger.info("Delivery of parcel %s confirmed by vendor %s", parcel_id, vendor_id)
        await fire_settlement(self.settlement_trigger, self.session_factory, mission.id)
        await self.notifier.send(
            mission.carrier_id,
            "Delivery confirmed",
            "The vendor confirmed your delivery. Payment is on its way.",
            {"type": "delivery_confirmed", "parcel_id": parcel_id, "mission_id": mission.id, "rating": rating},
            NotificationType.DELIVERY_UPDATE,
        )
        return mission

    async def client_contest_delivery(
        self,
        parcel_id: int,
        vendor_id: int,
        reason: str,
        vendor_username: Optional[str] = None,
    ) -> Mission:
        """
        Vendor disputes the drop-off. The mission stays PICKED_UP, is never
        auto-confirmed and never settled.
        """
        if not reason or not reason.strip():
            raise DomainValidationError("A contest reason is required", field="reason")

        now = self.clock()
        async with self.store.begin() as session:
            parcel = await load_vendor_parcel(self.store, session, parcel_id, vendor_id)
            mission = await self._awaiting_mission(session, parcel)

            resolved = await self.store.update_mission_if(
                session, mission.id,
                unresolved_delivery_conditions(),
                client_contested_at=now,
                contest_reason=reason.strip(),
            )
            if not resolved:
                raise AlreadyResolvedError("Delivery was resolved concurrently", resolution="concurrent")

            await log_event(
                db=session,
                action=AuditAction.DELIVERY_CONTESTED,
                actor_id=vendor_id,
                actor_username=vendor_username,
                mission_id=mission.id,
                parcel_id=parcel.id,
                metadata={"reason": reason.strip()}
            )
            mission = await self.store.get_mission_with_parcel(session, mission.id)

        logger.warning("Delivery of parcel %s contested by vendor %s", parcel_id, vendor_id)
        await self.notifier.send(
            mission.carrier_id,
            "Delivery contested",
            f"The vendor contested your delivery: {reason.strip()}",
            {"type": "delivery_contested", "parcel_id": parcel_id, "mission_id": mission.id},
            NotificationType.DELIVERY_UPDATE,
        )
        return mission

    async def get_delivery_status(self, parcel_id: int, user_id: int) -> DeliveryStatusResponse:
        now = self.clock()
        async with self.store.session() as session:
            parcel = await load_visible_parcel(self.store, session, parcel_id, user_id)
            mission = await self.store.get_current_mission_for_parcel(session, parcel.id)
        if mission is None:
            raise ResourceNotFoundError("Mission for parcel", parcel_id)

        status = derive_delivery_status(mission)
        remaining = None
        if status == DeliveryStatus.AWAITING_CONFIRMATION:
            remaining = hours_remaining(mission.delivery_confirmation_deadline, now)

        return DeliveryStatusResponse(
            parcel_id=parcel.id,
            mission_id=mission.id,
            status=status,
            proof_url=mission.delivery_proof_url,
            delivered_at=mission.delivered_at,
            confirmation_deadline=mission.delivery_confirmation_deadline,
            hours_remaining=remaining,
            confirmed_at=mission.client_confirmed_delivery_at,
            contested_at=mission.client_contested_at,
            contest_reason=mission.contest_reason,
            auto_confirmed=bool(mission.auto_confirmed),
        )

    async def auto_confirm_expired_deliveries(self) -> SweepResponse:
        """
        Sweep: confirm every unresolved delivery whose deadline has passed.

        Each mission is handled in its own transaction. A mission resolved
        between selection and write is skipped; a failing mission is
        reported and does not stop the others. Running it twice in a row
        confirms nothing the second time.
        """
        now = self.clock()
        async with self.store.session() as session:
            mission_ids = await self.store.find_expired_unresolved_missions(session, now)

        results = []
        for mission_id in mission_ids:
            try:
                outcome = await self._auto_confirm_one(mission_id, now)
                results.append(SweepResult(mission_id=mission_id, outcome=outcome))
            except Exception as exc:
                logger.exception("Auto-confirmation failed for mission %s", mission_id)
                results.append(SweepResult(mission_id=mission_id, outcome=OUTCOME_ERROR, error=str(exc)))

        report = SweepResponse(
            processed=sum(1 for r in results if r.outcome == OUTCOME_AUTO_CONFIRMED),
            skipped=sum(1 for r in results if r.outcome == OUTCOME_SKIPPED),
            failed=sum(1 for r in results if r.outcome == OUTCOME_ERROR),
            results=results,
        )
        if mission_ids:
            logger.info(
                "Auto-confirmation sweep: %s confirmed, %s skipped, %s failed",
                report.processed, report.skipped, report.failed,
            )
        return report

    async def _auto_confirm_one(self, mission_id: int, now: datetime) -> str:
        async with self.store.begin() as session:
            resolved = await self.store.update_mission_if(
                session, mission_id,
                expired_delivery_conditions(now),
                status=MissionStatus.DELIVERED,
                auto_confirmed=True,
                client_confirmed_delivery_at=now,
            )
            if not resolved:
                return OUTCOME_SKIPPED

            mission = await self.store.get_mission_with_parcel(session, mission_id)
            await self._complete_parcel(session, mission.parcel_id)
            await self.store.increment_carrier_deliveries(session, mission.carrier_id)

            await log_event(
                db=session,
                action=AuditAction.DELIVERY_AUTO_CONFIRMED,
                mission_id=mission_id,
                parcel_id=mission.parcel_id,
                metadata={"deadline": as_naive_utc(mission.delivery_confirmation_deadline).isoformat()}
            )

        await fire_settlement(self.settlement_trigger, self.session_factory, mission_id)
        payload = {"type": "delivery_auto_confirmed", "parcel_id": mission.parcel_id, "mission_id": mission_id}
        await self.notifier.send(
            mission.parcel.vendor_id,
            "Delivery confirmed automatically",
            "The confirmation window closed, so your delivery was confirmed automatically.",
            payload,
            NotificationType.DELIVERY_UPDATE,
        )
        await self.notifier.send(
            mission.carrier_id,
            "Delivery confirmed",
            "Your delivery was confirmed automatically. Payment is on its way.",
            payload,
            NotificationType.DELIVERY_UPDATE,
        )
        return OUTCOME_AUTO_CONFIRMED

    async def _awaiting_mission(self, session, parcel: Parcel) -> Mission:
        mission = await self.store.get_current_mission_for_parcel(session, parcel.id)
        if mission is None:
            raise InvalidStateTransitionError(
                "Parcel has no assigned mission", precondition="mission_assigned"
            )
        if mission.delivered_at is None:
            raise InvalidStateTransitionError(
                "The carrier has not dropped the parcel off yet",
                precondition="delivery_proof_submitted",
                current_status=mission.status.value,
            )
        resolution = resolution_of(mission)
        if resolution is not None:
            raise AlreadyResolvedError(f"Delivery was already {resolution.replace('_', '-')}", resolution=resolution)
        return mission

    async def _complete_parcel(self, session, parcel_id: int) -> None:
        written = await self.store.update_parcel_if(
            session, parcel_id,
            [Parcel.status == ParcelStatus.PICKED_UP],
            status=ParcelStatus.DELIVERED,
        )
        if not written:
            raise InvalidStateTransitionError(
                "Parcel is not in transit", precondition="parcel_picked_up"
            )
