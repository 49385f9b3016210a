"""
Parcel Service.

Vendor-side parcel management and the carrier's search for available
parcels around a position.
"""

import logging
from typing import List, Optional

from parcel_handoff.app.core.exceptions import InvalidStateTransitionError
from parcel_handoff.app.models.address import Address
from parcel_handoff.app.models.parcel import Parcel
from parcel_handoff.app.models.parcel_enums import ParcelStatus
from parcel_handoff.app.repositories.delivery_store import DeliveryStore
from parcel_handoff.app.schemas.parcel import ParcelCreate, AvailableParcelResponse, ParcelResponse
from parcel_handoff.app.services.access import load_vendor_parcel
from parcel_handoff.app.services.audit import log_event, AuditAction
from parcel_handoff.app.services.geo import haversine_distance
from parcel_handoff.app.services.pickup_authorization import generate_pickup_code

logger = logging.getLogger(__name__)


class ParcelService:

    def __init__(self, store: DeliveryStore):
        self.store = store

    async def create_parcel(
        self, vendor_id: int, data: ParcelCreate, vendor_username: Optional[str] = None
    ) -> Parcel:
        async with self.store.begin() as session:
            address = Address(user_id=vendor_id, **data.pickup_address.model_dump())
            await self.store.add(session, address)

            parcel = Parcel(
                vendor_id=vendor_id,
                pickup_address_id=address.id,
                description=data.description,
                size=data.size,
                dropoff_name=data.dropoff_name,
                dropoff_address=data.dropoff_address,
                price=data.price,
                status=ParcelStatus.PENDING,
                pickup_code=generate_pickup_code(),
            )
            await self.store.add(session, parcel)

            await log_event(
                db=session,
                action=AuditAction.PARCEL_CREATED,
                actor_id=vendor_id,
                actor_username=vendor_username,
                parcel_id=parcel.id,
                metadata={"size": data.size.value, "price": data.price}
            )
            parcel = await self.store.get_parcel_with_address(session, parcel.id)

        logger.info("Parcel %s created by vendor %s", parcel.id, vendor_id)
        return parcel

    async def get_parcel(self, parcel_id: int, vendor_id: int) -> Parcel:
        async with self.store.session() as session:
            return await load_vendor_parcel(self.store, session, parcel_id, vendor_id)

    async def cancel_parcel(
        self, parcel_id: int, vendor_id: int, vendor_username: Optional[str] = None
    ) -> Parcel:
        """Withdraw a parcel nobody has accepted yet."""
        async with self.store.begin() as session:
            parcel = await load_vendor_parcel(self.store, session, parcel_id, vendor_id)
            if parcel.status != ParcelStatus.PENDING:
                raise InvalidStateTransitionError(
                    "Only a pending parcel can be cancelled",
                    precondition="parcel_pending",
                    current_status=parcel.status.value,
                )
            written = await self.store.update_parcel_if(
                session, parcel_id,
                [Parcel.status == ParcelStatus.PENDING],
                status=ParcelStatus.CANCELLED,
            )
            if not written:
                raise InvalidStateTransitionError(
                    "Parcel was accepted concurrently", precondition="parcel_pending"
                )

            await log_event(
                db=session,
                action=AuditAction.PARCEL_CANCELLED,
                actor_id=vendor_id,
                actor_username=vendor_username,
                parcel_id=parcel_id,
            )
            return await self.store.get_parcel_with_address(session, parcel_id)

    async def list_available_parcels(
        self, carrier_id: int, latitude: float, longitude: float, radius_km: float
    ) -> List[AvailableParcelResponse]:
        """Pending parcels within ``radius_km`` of the carrier, nearest first."""
        async with self.store.session() as session:
            parcels = await self.store.list_pending_parcels(session, exclude_vendor_id=carrier_id)

        available = []
        for parcel in parcels:
            address = parcel.pickup_address
            distance = haversine_distance(latitude, longitude, address.latitude, address.longitude)
            if distance <= radius_km:
                available.append(AvailableParcelResponse(
                    parcel=ParcelResponse.model_validate(parcel),
                    distance_km=round(distance, 2),
                ))
        available.sort(key=lambda item: item.distance_km)
        return available
