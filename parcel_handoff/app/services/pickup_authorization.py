"""
Pickup Authorization.

Every parcel gets a numeric pickup code at creation. The carrier receives
it when accepting the mission and reads it out at the pickup point; the
vendor enters it to hand the parcel over. A correct code runs the same
pickup transition as the carrier-side pickup.
"""

import hmac
import logging
import secrets
from typing import Optional

from parcel_handoff.app.core.config import settings
from parcel_handoff.app.core.exceptions import InvalidStateTransitionError, DomainValidationError
from parcel_handoff.app.models.mission import Mission
from parcel_handoff.app.models.notification import NotificationType
from parcel_handoff.app.models.parcel_enums import ParcelStatus
from parcel_handoff.app.repositories.delivery_store import DeliveryStore
from parcel_handoff.app.services.access import load_vendor_parcel
from parcel_handoff.app.services.mission_lifecycle import MissionLifecycleService

logger = logging.getLogger(__name__)


def generate_pickup_code(length: int = settings.pickup_code_length) -> str:
    """Random numeric code without a leading zero (6 digits by default)."""
    low = 10 ** (length - 1)
    return str(low + secrets.randbelow(9 * low))


class PickupAuthorizationService:

    def __init__(self, store: DeliveryStore, lifecycle: MissionLifecycleService):
        self.store = store
        self.lifecycle = lifecycle

    async def confirm_pickup_by_code(
        self,
        parcel_id: int,
        vendor_id: int,
        code: str,
        vendor_username: Optional[str] = None,
    ) -> Mission:
        """
        Vendor-side pickup: exact match of the submitted code.

        Raises:
            ResourceNotFoundError: parcel does not exist
            InsufficientPermissionsError: caller is not the parcel's vendor
            InvalidStateTransitionError: parcel not ACCEPTED, no mission, or packaging incomplete
            DomainValidationError: wrong code
        """
        submitted = code or ""
        async with self.store.begin() as session:
            parcel = await load_vendor_parcel(self.store, session, parcel_id, vendor_id)
            if parcel.status != ParcelStatus.ACCEPTED:
                raise InvalidStateTransitionError(
                    "Parcel is not awaiting pickup",
                    precondition="parcel_accepted",
                    current_status=parcel.status.value,
                )
            if not hmac.compare_digest(submitted.encode(), parcel.pickup_code.encode()):
                logger.warning("Wrong pickup code submitted for parcel %s", parcel_id)
                raise DomainValidationError("Incorrect pickup code", field="code")

            mission = await self.store.get_current_mission_for_parcel(session, parcel_id)
            if mission is None:
                raise InvalidStateTransitionError(
                    "Parcel has no assigned mission", precondition="mission_assigned"
                )

            await self.lifecycle.apply_pickup(session, mission, vendor_id, vendor_username, via="pickup_code")
            mission = await self.store.get_mission_with_parcel(session, mission.id)

        await self.lifecycle.notify_picked_up(mission)
        await self.lifecycle.notifier.send(
            mission.carrier_id,
            "Pickup confirmed",
            "The vendor confirmed the hand-off with your pickup code.",
            {"type": "pickup_confirmed", "parcel_id": parcel_id, "mission_id": mission.id},
            NotificationType.MISSION_UPDATE,
        )
        return mission
