"""
Mission Lifecycle Service.

Carrier-side state machine of a mission:

    ACCEPTED -> IN_PROGRESS -> PICKED_UP -> (proof) -> DELIVERED
        \\-> CANCELLED

Each transition is one transaction that writes the mission and its
parcel with conditional updates; either both rows change or neither does.
Notifications are sent after the commit.
"""

import logging
import math
from datetime import timedelta
from typing import List, Optional

from sqlalchemy.exc import IntegrityError

from parcel_handoff.app.core.clock import Clock, utcnow
from parcel_handoff.app.core.config import settings
from parcel_handoff.app.core.exceptions import (
    ConflictError,
    DomainValidationError,
    InsufficientPermissionsError,
    InvalidStateTransitionError,
    ResourceNotFoundError,
)
from parcel_handoff.app.models.mission import Mission
from parcel_handoff.app.models.mission_enums import MissionStatus, ACTIVE_MISSION_STATUSES, TERMINAL_MISSION_STATUSES
from parcel_handoff.app.models.notification import NotificationType
from parcel_handoff.app.models.parcel import Parcel
from parcel_handoff.app.models.parcel_enums import ParcelStatus
from parcel_handoff.app.repositories.delivery_store import DeliveryStore
from parcel_handoff.app.schemas.mission import (
    CarrierProfileResponse,
    DeliveryProofResponse,
    JourneyStartResponse,
    MissionHistoryResponse,
    MissionResponse,
)
from parcel_handoff.app.services.access import load_carrier_mission
from parcel_handoff.app.services.audit import log_event, AuditAction
from parcel_handoff.app.services.geo import haversine_distance, estimate_eta_minutes
from parcel_handoff.app.services.notification_service import NotificationDispatcher
from parcel_handoff.app.services.packaging_handshake import ensure_packaging_confirmed

logger = logging.getLogger(__name__)

_BEFORE_PICKUP = (MissionStatus.ACCEPTED, MissionStatus.IN_PROGRESS)
_PARCEL_BEFORE_PICKUP = (ParcelStatus.ACCEPTED, ParcelStatus.IN_PROGRESS)


class MissionLifecycleService:

    def __init__(
        self,
        store: DeliveryStore,
        notifier: NotificationDispatcher,
        clock: Clock = utcnow,
        confirmation_window_hours: int = settings.delivery_confirmation_window_hours,
        eta_minutes_per_km: float = settings.eta_minutes_per_km,
    ):
        self.store = store
        self.notifier = notifier
        self.clock = clock
        self.confirmation_window_hours = confirmation_window_hours
        self.eta_minutes_per_km = eta_minutes_per_km

    async def accept_mission(
        self, parcel_id: int, carrier_id: int, carrier_username: Optional[str] = None
    ) -> Mission:
        """
        Claim a pending parcel.

        The parcel claim is a conditional write on ``status = PENDING`` so two
        carriers racing for the same parcel cannot both win; the partial
        unique index on active missions backs it up.

        Raises:
            ResourceNotFoundError: parcel does not exist
            InsufficientPermissionsError: carrier is the parcel's vendor
            ConflictError: parcel already claimed
        """
        now = self.clock()
        async with self.store.begin() as session:
            parcel = await self.store.get_parcel_with_address(session, parcel_id)
            if parcel is None:
                raise ResourceNotFoundError("Parcel", parcel_id)
            if parcel.vendor_id == carrier_id:
                raise InsufficientPermissionsError(
                    "You cannot accept your own parcel",
                    details={"precondition": "carrier_is_not_vendor"},
                )
            if parcel.status != ParcelStatus.PENDING:
                raise ConflictError("Parcel is no longer available", precondition="parcel_pending")

            claimed = await self.store.update_parcel_if(
                session, parcel_id,
                [Parcel.status == ParcelStatus.PENDING],
                status=ParcelStatus.ACCEPTED,
                assigned_carrier_id=carrier_id,
            )
            if not claimed:
                raise ConflictError("Parcel is no longer available", precondition="parcel_pending")

            mission = Mission(
                parcel_id=parcel_id,
                carrier_id=carrier_id,
                status=MissionStatus.ACCEPTED,
                accepted_at=now,
            )
            try:
                await self.store.add(session, mission)
            except IntegrityError:
                raise ConflictError("Parcel already has an active mission", precondition="parcel_pending")

            await log_event(
                db=session,
                action=AuditAction.MISSION_ACCEPTED,
                actor_id=carrier_id,
                actor_username=carrier_username,
                mission_id=mission.id,
                parcel_id=parcel_id,
            )
            mission = await self.store.get_mission_with_parcel(session, mission.id)

        logger.info("Carrier %s accepted parcel %s (mission %s)", carrier_id, parcel_id, mission.id)
        await self.notifier.send(
            mission.parcel.vendor_id,
            "Carrier found",
            "A carrier accepted your parcel and will come to pick it up.",
            {"type": "mission_accepted", "parcel_id": parcel_id, "mission_id": mission.id},
            NotificationType.MISSION_UPDATE,
        )
        return mission

    async def start_journey(
        self,
        mission_id: int,
        carrier_id: int,
        latitude: float,
        longitude: float,
        carrier_username: Optional[str] = None,
    ) -> JourneyStartResponse:
        """
        Carrier leaves for the pickup point. Stores the departure position
        and an ETA from the straight-line distance to the pickup address.
        """
        now = self.clock()
        async with self.store.begin() as session:
            mission = await load_carrier_mission(self.store, session, mission_id, carrier_id)
            if mission.status != MissionStatus.ACCEPTED:
                raise InvalidStateTransitionError(
                    "Journey can only start from an accepted mission",
                    precondition="mission_accepted",
                    current_status=mission.status.value,
                )

            address = mission.parcel.pickup_address
            distance_km = haversine_distance(latitude, longitude, address.latitude, address.longitude)
            eta_minutes = estimate_eta_minutes(distance_km, self.eta_minutes_per_km)
            estimated_arrival = now + timedelta(minutes=eta_minutes)

            written = await self.store.update_mission_if(
                session, mission_id,
                [Mission.status == MissionStatus.ACCEPTED],
                status=MissionStatus.IN_PROGRESS,
                departed_at=now,
                departure_latitude=latitude,
                departure_longitude=longitude,
                estimated_arrival=estimated_arrival,
            )
            if not written:
                raise InvalidStateTransitionError(
                    "Mission changed concurrently", precondition="mission_accepted"
                )
            written = await self.store.update_parcel_if(
                session, mission.parcel_id,
                [Parcel.status == ParcelStatus.ACCEPTED],
                status=ParcelStatus.IN_PROGRESS,
            )
            if not written:
                raise InvalidStateTransitionError(
                    "Parcel is not awaiting a carrier", precondition="parcel_accepted"
                )

            await log_event(
                db=session,
                action=AuditAction.JOURNEY_STARTED,
                actor_id=carrier_id,
                actor_username=carrier_username,
                mission_id=mission_id,
                parcel_id=mission.parcel_id,
                metadata={"distance_km": round(distance_km, 2), "eta_minutes": eta_minutes}
            )
            mission = await self.store.get_mission_with_parcel(session, mission_id)

        await self.notifier.send(
            mission.parcel.vendor_id,
            "Carrier on the way",
            f"Your carrier is on the way, estimated arrival in {eta_minutes} min.",
            {
                "type": "carrier_departed",
                "parcel_id": mission.parcel_id,
                "mission_id": mission_id,
                "eta_minutes": eta_minutes,
            },
            NotificationType.MISSION_UPDATE,
        )
        return JourneyStartResponse(
            mission=MissionResponse.model_validate(mission),
            distance_km=round(distance_km, 2),
            eta_minutes=eta_minutes,
            estimated_arrival=estimated_arrival,
        )

    async def arrived_at_pickup(
        self, mission_id: int, carrier_id: int, carrier_username: Optional[str] = None
    ) -> Mission:
        """Record arrival at the pickup point. Status does not change."""
        now = self.clock()
        async with self.store.begin() as session:
            mission = await load_carrier_mission(self.store, session, mission_id, carrier_id)
            if mission.status not in _BEFORE_PICKUP:
                raise InvalidStateTransitionError(
                    "Arrival can only be signalled before pickup",
                    precondition="mission_before_pickup",
                    current_status=mission.status.value,
                )
            written = await self.store.update_mission_if(
                session, mission_id,
                [Mission.status.in_(_BEFORE_PICKUP)],
                arrived_at=now,
            )
            if not written:
                raise InvalidStateTransitionError(
                    "Mission changed concurrently", precondition="mission_before_pickup"
                )

            await log_event(
                db=session,
                action=AuditAction.ARRIVED_AT_PICKUP,
                actor_id=carrier_id,
                actor_username=carrier_username,
                mission_id=mission_id,
                parcel_id=mission.parcel_id,
            )
            mission = await self.store.get_mission_with_parcel(session, mission_id)

        await self.notifier.send(
            mission.parcel.vendor_id,
            "Carrier arrived",
            "Your carrier has arrived at the pickup point.",
            {"type": "carrier_arrived", "parcel_id": mission.parcel_id, "mission_id": mission_id},
            NotificationType.MISSION_UPDATE,
        )
        return mission

    async def pickup_mission(
        self, mission_id: int, carrier_id: int, carrier_username: Optional[str] = None
    ) -> Mission:
        """Carrier takes the parcel. Requires the packaging handshake."""
        async with self.store.begin() as session:
            mission = await load_carrier_mission(self.store, session, mission_id, carrier_id)
            await self.apply_pickup(session, mission, carrier_id, carrier_username, via="carrier")
            mission = await self.store.get_mission_with_parcel(session, mission_id)

        await self.notify_picked_up(mission)
        return mission

    async def apply_pickup(
        self,
        session,
        mission: Mission,
        actor_id: int,
        actor_username: Optional[str] = None,
        via: str = "carrier",
    ) -> None:
        """
        Move mission and parcel to PICKED_UP inside the caller's transaction.

        Shared by the carrier pickup and the vendor's pickup-code path so
        both enforce the same preconditions.
        """
        if mission.status not in _BEFORE_PICKUP:
            raise InvalidStateTransitionError(
                "Parcel can only be picked up from an accepted or in-progress mission",
                precondition="mission_before_pickup",
                current_status=mission.status.value,
            )
        ensure_packaging_confirmed(mission.parcel)

        now = self.clock()
        written = await self.store.update_mission_if(
            session, mission.id,
            [Mission.status.in_(_BEFORE_PICKUP)],
            status=MissionStatus.PICKED_UP,
            picked_up_at=now,
        )
        if not written:
            raise InvalidStateTransitionError(
                "Mission changed concurrently", precondition="mission_before_pickup"
            )
        written = await self.store.update_parcel_if(
            session, mission.parcel_id,
            [
                Parcel.status.in_(_PARCEL_BEFORE_PICKUP),
                Parcel.packaging_confirmed_at.is_not(None),
                Parcel.vendor_packaging_confirmed_at.is_not(None),
            ],
            status=ParcelStatus.PICKED_UP,
        )
        if not written:
            raise InvalidStateTransitionError(
                "Parcel is not ready for pickup", precondition="parcel_before_pickup"
            )

        await log_event(
            db=session,
            action=AuditAction.PARCEL_PICKED_UP,
            actor_id=actor_id,
            actor_username=actor_username,
            mission_id=mission.id,
            parcel_id=mission.parcel_id,
            metadata={"via": via}
        )

    async def notify_picked_up(self, mission: Mission) -> None:
        await self.notifier.send(
            mission.parcel.vendor_id,
            "Parcel picked up",
            "Your parcel has been picked up and is on its way.",
            {"type": "parcel_picked_up", "parcel_id": mission.parcel_id, "mission_id": mission.id},
            NotificationType.MISSION_UPDATE,
        )

    async def confirm_delivery(
        self,
        mission_id: int,
        carrier_id: int,
        proof_url: str,
        carrier_username: Optional[str] = None,
    ) -> DeliveryProofResponse:
        """
        Carrier drops the parcel off and submits a photo proof.

        Opens the vendor's confirmation window: the deadline is fixed once
        here and never moved. The mission stays PICKED_UP until the delivery
        is confirmed by the vendor or by the sweep.
        """
        if not proof_url or not proof_url.strip():
            raise DomainValidationError("A delivery proof photo is required", field="proof_url")

        now = self.clock()
        deadline = now + timedelta(hours=self.confirmation_window_hours)
        async with self.store.begin() as session:
            mission = await load_carrier_mission(self.store, session, mission_id, carrier_id)
            if mission.status != MissionStatus.PICKED_UP:
                raise InvalidStateTransitionError(
                    "Delivery proof requires a picked-up parcel",
                    precondition="mission_picked_up",
                    current_status=mission.status.value,
                )
            if mission.delivered_at is not None:
                raise InvalidStateTransitionError(
                    "Delivery proof was already submitted",
                    precondition="delivery_proof_not_submitted",
                )

            written = await self.store.update_mission_if(
                session, mission_id,
                [Mission.status == MissionStatus.PICKED_UP, Mission.delivered_at.is_(None)],
                delivery_proof_url=proof_url.strip(),
                delivered_at=now,
                delivery_confirmation_deadline=deadline,
            )
            if not written:
                raise InvalidStateTransitionError(
                    "Delivery proof was already submitted",
                    precondition="delivery_proof_not_submitted",
                )

            await log_event(
                db=session,
                action=AuditAction.DELIVERY_PROOF_SUBMITTED,
                actor_id=carrier_id,
                actor_username=carrier_username,
                mission_id=mission_id,
                parcel_id=mission.parcel_id,
                metadata={"proof_url": proof_url.strip(), "deadline": deadline.isoformat()}
            )
            mission = await self.store.get_mission_with_parcel(session, mission_id)

        await self.notifier.send(
            mission.parcel.vendor_id,
            "Parcel delivered",
            f"Your parcel was dropped off. Confirm delivery within {self.confirmation_window_hours} hours.",
            {
                "type": "delivery_confirmation_required",
                "parcel_id": mission.parcel_id,
                "mission_id": mission_id,
                "deadline": deadline.isoformat(),
            },
            NotificationType.DELIVERY_UPDATE,
        )
        return DeliveryProofResponse(
            mission=MissionResponse.model_validate(mission),
            confirmation_deadline=deadline,
            hours_remaining=self.confirmation_window_hours,
        )

    async def cancel_mission(
        self,
        mission_id: int,
        carrier_id: int,
        reason: Optional[str] = None,
        carrier_username: Optional[str] = None,
    ) -> Mission:
        """
        Carrier withdraws before leaving. The parcel returns to PENDING with
        no assigned carrier so another carrier can accept it.
        """
        now = self.clock()
        async with self.store.begin() as session:
            mission = await load_carrier_mission(self.store, session, mission_id, carrier_id)
            if mission.status != MissionStatus.ACCEPTED:
                raise InvalidStateTransitionError(
                    "Only an accepted mission can be cancelled",
                    precondition="mission_accepted",
                    current_status=mission.status.value,
                )

            written = await self.store.update_mission_if(
                session, mission_id,
                [Mission.status == MissionStatus.ACCEPTED],
                status=MissionStatus.CANCELLED,
                cancelled_at=now,
                cancellation_reason=reason,
            )
            if not written:
                raise InvalidStateTransitionError(
                    "Mission changed concurrently", precondition="mission_accepted"
                )
            written = await self.store.update_parcel_if(
                session, mission.parcel_id,
                [Parcel.status == ParcelStatus.ACCEPTED, Parcel.assigned_carrier_id == carrier_id],
                status=ParcelStatus.PENDING,
                assigned_carrier_id=None,
            )
            if not written:
                raise InvalidStateTransitionError(
                    "Parcel is not held by this mission", precondition="parcel_accepted"
                )

            await log_event(
                db=session,
                action=AuditAction.MISSION_CANCELLED,
                actor_id=carrier_id,
                actor_username=carrier_username,
                mission_id=mission_id,
                parcel_id=mission.parcel_id,
                metadata={"reason": reason}
            )
            mission = await self.store.get_mission_with_parcel(session, mission_id)

        await self.notifier.send(
            mission.parcel.vendor_id,
            "Carrier cancelled",
            "The carrier cancelled. Your parcel is available to other carriers again.",
            {"type": "mission_cancelled", "parcel_id": mission.parcel_id, "mission_id": mission_id},
            NotificationType.MISSION_UPDATE,
        )
        return mission

    async def get_current_missions(self, carrier_id: int) -> List[Mission]:
        async with self.store.session() as session:
            return list(await self.store.list_carrier_missions(session, carrier_id, ACTIVE_MISSION_STATUSES))

    async def get_mission_history(self, carrier_id: int, page: int = 1, limit: int = 20) -> MissionHistoryResponse:
        offset = (page - 1) * limit
        async with self.store.session() as session:
            missions = await self.store.list_carrier_missions(
                session, carrier_id, TERMINAL_MISSION_STATUSES, offset=offset, limit=limit
            )
            total = await self.store.count_carrier_missions(session, carrier_id, TERMINAL_MISSION_STATUSES)

        return MissionHistoryResponse(
            missions=[MissionResponse.model_validate(m) for m in missions],
            total=total,
            page=page,
            limit=limit,
            total_pages=math.ceil(total / limit) if total else 0,
        )

    async def get_carrier_profile(self, carrier_id: int) -> CarrierProfileResponse:
        """Delivery count and average rating; zeroed until the first confirmed delivery."""
        async with self.store.session() as session:
            profile = await self.store.get_carrier_profile(session, carrier_id)

        if profile is None:
            return CarrierProfileResponse(carrier_id=carrier_id)
        return CarrierProfileResponse(
            carrier_id=carrier_id,
            total_deliveries=profile.total_deliveries,
            average_rating=profile.average_rating,
            is_available=profile.is_available,
        )
