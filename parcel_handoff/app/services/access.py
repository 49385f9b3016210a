"""
Ownership checks shared by the lifecycle services.

A missing record is NotFound; a record that exists but belongs to someone
else is a permission error.
"""

from sqlalchemy.ext.asyncio import AsyncSession

from parcel_handoff.app.core.exceptions import ResourceNotFoundError, InsufficientPermissionsError
from parcel_handoff.app.models.mission import Mission
from parcel_handoff.app.models.parcel import Parcel
from parcel_handoff.app.repositories.delivery_store import DeliveryStore


async def load_carrier_mission(
    store: DeliveryStore, session: AsyncSession, mission_id: int, carrier_id: int
) -> Mission:
    mission = await store.get_mission_with_parcel(session, mission_id)
    if mission is None:
        raise ResourceNotFoundError("Mission", mission_id)
    if mission.carrier_id != carrier_id:
        raise InsufficientPermissionsError(
            "This mission is not assigned to you",
            details={"precondition": "assigned_carrier"},
        )
    return mission


async def load_vendor_parcel(
    store: DeliveryStore, session: AsyncSession, parcel_id: int, vendor_id: int
) -> Parcel:
    parcel = await store.get_parcel_with_address(session, parcel_id)
    if parcel is None:
        raise ResourceNotFoundError("Parcel", parcel_id)
    if parcel.vendor_id != vendor_id:
        raise InsufficientPermissionsError(
            "You do not own this parcel",
            details={"precondition": "parcel_owner"},
        )
    return parcel


async def load_visible_parcel(
    store: DeliveryStore, session: AsyncSession, parcel_id: int, user_id: int
) -> Parcel:
    """Parcel readable by its vendor or its assigned carrier."""
    parcel = await store.get_parcel_with_address(session, parcel_id)
    if parcel is None:
        raise ResourceNotFoundError("Parcel", parcel_id)
    if user_id not in (parcel.vendor_id, parcel.assigned_carrier_id):
        raise InsufficientPermissionsError(
            "You are not a party to this parcel",
            details={"precondition": "parcel_party"},
        )
    return parcel
