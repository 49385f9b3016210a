"""
Packaging Handshake Service.

Two-party confirmation that the parcel is properly packaged: the carrier
confirms first (with a photo), then the vendor confirms or rejects.
Pickup is refused until both confirmations exist.
"""

import logging
from typing import Optional

from parcel_handoff.app.core.clock import Clock, utcnow
from parcel_handoff.app.core.exceptions import InvalidStateTransitionError, DomainValidationError
from parcel_handoff.app.models.mission_enums import MissionStatus
from parcel_handoff.app.models.notification import NotificationType
from parcel_handoff.app.models.parcel import Parcel
from parcel_handoff.app.models.parcel_enums import ParcelStatus, PackagingStatus
from parcel_handoff.app.repositories.delivery_store import DeliveryStore
from parcel_handoff.app.schemas.packaging import PackagingStatusResponse
from parcel_handoff.app.services.access import load_carrier_mission, load_vendor_parcel, load_visible_parcel
from parcel_handoff.app.services.audit import log_event, AuditAction
from parcel_handoff.app.services.notification_service import NotificationDispatcher

logger = logging.getLogger(__name__)

_BEFORE_PICKUP = (MissionStatus.ACCEPTED, MissionStatus.IN_PROGRESS)
_PARCEL_BEFORE_PICKUP = (ParcelStatus.ACCEPTED, ParcelStatus.IN_PROGRESS)


def packaging_status(parcel: Parcel) -> PackagingStatus:
    if parcel.vendor_packaging_confirmed_at is not None:
        return PackagingStatus.FULLY_CONFIRMED
    if parcel.packaging_confirmed_at is not None:
        return PackagingStatus.CARRIER_CONFIRMED
    if parcel.packaging_rejected_at is not None:
        return PackagingStatus.REJECTED
    return PackagingStatus.PENDING


def ensure_packaging_confirmed(parcel: Parcel) -> None:
    """Pickup gate: both halves of the handshake must be present."""
    if parcel.packaging_confirmed_at is None:
        raise InvalidStateTransitionError(
            "Packaging has not been confirmed by the carrier",
            precondition="carrier_packaging_confirmed",
        )
    if parcel.vendor_packaging_confirmed_at is None:
        raise InvalidStateTransitionError(
            "Packaging has not been validated by the vendor",
            precondition="vendor_packaging_confirmed",
        )


class PackagingHandshakeService:

    def __init__(self, store: DeliveryStore, notifier: NotificationDispatcher, clock: Clock = utcnow):
        self.store = store
        self.notifier = notifier
        self.clock = clock

    async def carrier_confirm_packaging(
        self,
        mission_id: int,
        carrier_id: int,
        photo_url: str,
        carrier_username: Optional[str] = None,
    ) -> Parcel:
        """
        Carrier's half of the handshake.

        Allowed while the mission has not picked up the parcel and the
        vendor has not validated yet. Re-confirming after a rejection is
        how the carrier retries.

        Raises:
            DomainValidationError: photo_url is blank
            InvalidStateTransitionError: mission past pickup, or vendor already validated
        """
        if not photo_url or not photo_url.strip():
            raise DomainValidationError("A packaging photo is required", field="photo_url")

        now = self.clock()
        async with self.store.begin() as session:
            mission = await load_carrier_mission(self.store, session, mission_id, carrier_id)
            if mission.status not in _BEFORE_PICKUP:
                raise InvalidStateTransitionError(
                    "Packaging can only be confirmed before pickup",
                    precondition="mission_before_pickup",
                    current_status=mission.status.value,
                )
            parcel = mission.parcel
            if parcel.vendor_packaging_confirmed_at is not None:
                raise InvalidStateTransitionError(
                    "Packaging was already validated by the vendor",
                    precondition="vendor_packaging_unconfirmed",
                )

            written = await self.store.update_parcel_if(
                session, parcel.id,
                [
                    Parcel.assigned_carrier_id == carrier_id,
                    Parcel.status.in_(_PARCEL_BEFORE_PICKUP),
                    Parcel.vendor_packaging_confirmed_at.is_(None),
                ],
                packaging_photo_url=photo_url.strip(),
                packaging_confirmed_at=now,
            )
            if not written:
                raise InvalidStateTransitionError(
                    "Packaging state changed concurrently",
                    precondition="vendor_packaging_unconfirmed",
                )

            await log_event(
                db=session,
                action=AuditAction.PACKAGING_CARRIER_CONFIRMED,
                actor_id=carrier_id,
                actor_username=carrier_username,
                mission_id=mission.id,
                parcel_id=parcel.id,
                metadata={"photo_url": photo_url.strip()}
            )
            parcel = await self.store.get_parcel_with_address(session, parcel.id)

        await self.notifier.send(
            parcel.vendor_id,
            "Packaging to validate",
            "The carrier photographed your parcel. Please check and validate the packaging.",
            {"type": "packaging_confirmation_required", "parcel_id": parcel.id, "mission_id": mission_id},
            NotificationType.PACKAGING_UPDATE,
        )
        return parcel

    async def vendor_confirm_packaging(
        self, parcel_id: int, vendor_id: int, vendor_username: Optional[str] = None
    ) -> Parcel:
        """
        Vendor's half of the handshake, only after the carrier's.

        Raises:
            InvalidStateTransitionError: carrier has not confirmed, or vendor already did
        """
        now = self.clock()
        async with self.store.begin() as session:
            parcel = await load_vendor_parcel(self.store, session, parcel_id, vendor_id)
            self._ensure_awaiting_vendor(parcel)

            written = await self.store.update_parcel_if(
                session, parcel.id,
                [
                    Parcel.status.in_(_PARCEL_BEFORE_PICKUP),
                    Parcel.packaging_confirmed_at.is_not(None),
                    Parcel.vendor_packaging_confirmed_at.is_(None),
                ],
                vendor_packaging_confirmed_at=now,
            )
            if not written:
                raise InvalidStateTransitionError(
                    "Packaging state changed concurrently",
                    precondition="vendor_packaging_unconfirmed",
                )

            await log_event(
                db=session,
                action=AuditAction.PACKAGING_VENDOR_CONFIRMED,
                actor_id=vendor_id,
                actor_username=vendor_username,
                parcel_id=parcel.id,
            )
            parcel = await self.store.get_parcel_with_address(session, parcel.id)

        if parcel.assigned_carrier_id is not None:
            await self.notifier.send(
                parcel.assigned_carrier_id,
                "Packaging validated",
                "The vendor validated the packaging. You can pick up the parcel.",
                {"type": "packaging_validated", "parcel_id": parcel.id},
                NotificationType.PACKAGING_UPDATE,
            )
        return parcel

    async def vendor_reject_packaging(
        self, parcel_id: int, vendor_id: int, reason: str, vendor_username: Optional[str] = None
    ) -> Parcel:
        """
        Reject the carrier's packaging photo. Clears the carrier's half so
        the carrier has to confirm again.
        """
        if not reason or not reason.strip():
            raise DomainValidationError("A rejection reason is required", field="reason")

        now = self.clock()
        async with self.store.begin() as session:
            parcel = await load_vendor_parcel(self.store, session, parcel_id, vendor_id)
            self._ensure_awaiting_vendor(parcel)

            written = await self.store.update_parcel_if(
                session, parcel.id,
                [
                    Parcel.status.in_(_PARCEL_BEFORE_PICKUP),
                    Parcel.packaging_confirmed_at.is_not(None),
                    Parcel.vendor_packaging_confirmed_at.is_(None),
                ],
                packaging_confirmed_at=None,
                packaging_photo_url=None,
                packaging_rejected_at=now,
                packaging_rejection_reason=reason.strip(),
            )
            if not written:
                raise InvalidStateTransitionError(
                    "Packaging state changed concurrently",
                    precondition="vendor_packaging_unconfirmed",
                )

            await log_event(
                db=session,
                action=AuditAction.PACKAGING_REJECTED,
                actor_id=vendor_id,
                actor_username=vendor_username,
                parcel_id=parcel.id,
                metadata={"reason": reason.strip()}
            )
            parcel = await self.store.get_parcel_with_address(session, parcel.id)

        logger.info("Packaging of parcel %s rejected by vendor %s", parcel.id, vendor_id)
        if parcel.assigned_carrier_id is not None:
            await self.notifier.send(
                parcel.assigned_carrier_id,
                "Packaging rejected",
                f"The vendor rejected the packaging: {reason.strip()}",
                {"type": "packaging_rejected", "parcel_id": parcel.id},
                NotificationType.PACKAGING_UPDATE,
            )
        return parcel

    async def get_packaging_status(self, parcel_id: int, user_id: int) -> PackagingStatusResponse:
        async with self.store.session() as session:
            parcel = await load_visible_parcel(self.store, session, parcel_id, user_id)

        return PackagingStatusResponse(
            parcel_id=parcel.id,
            status=packaging_status(parcel),
            photo_url=parcel.packaging_photo_url,
            carrier_confirmed_at=parcel.packaging_confirmed_at,
            vendor_confirmed_at=parcel.vendor_packaging_confirmed_at,
            rejected_at=parcel.packaging_rejected_at,
            rejection_reason=parcel.packaging_rejection_reason,
        )

    @staticmethod
    def _ensure_awaiting_vendor(parcel: Parcel) -> None:
        if parcel.status not in _PARCEL_BEFORE_PICKUP:
            raise InvalidStateTransitionError(
                "Packaging can only be reviewed before pickup",
                precondition="parcel_before_pickup",
                current_status=parcel.status.value,
            )
        if parcel.packaging_confirmed_at is None:
            raise InvalidStateTransitionError(
                "The carrier has not confirmed the packaging yet",
                precondition="carrier_packaging_confirmed",
            )
        if parcel.vendor_packaging_confirmed_at is not None:
            raise InvalidStateTransitionError(
                "Packaging was already validated",
                precondition="vendor_packaging_unconfirmed",
            )
