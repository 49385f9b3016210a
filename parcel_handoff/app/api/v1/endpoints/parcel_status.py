"""
Parcel status endpoints shared by the vendor and the assigned carrier.
"""

from fastapi import APIRouter, Depends, Path
from parcel_handoff.app.core.dependencies import get_services
from parcel_handoff.app.core.guards import require_role
from parcel_handoff.app.models.enums import UserRole
from parcel_handoff.app.schemas.delivery import DeliveryStatusResponse
from parcel_handoff.app.schemas.packaging import PackagingStatusResponse
from parcel_handoff.app.services.container import DeliveryServices

router = APIRouter(prefix="/parcels", tags=["Parcels - Status"])

require_party = require_role([UserRole.VENDOR, UserRole.CARRIER])


@router.get("/{parcel_id}/packaging-status", response_model=PackagingStatusResponse)
async def get_packaging_status(
    parcel_id: int = Path(..., description="Parcel ID"),
    current_user: dict = Depends(require_party),
    services: DeliveryServices = Depends(get_services)
):
    return await services.packaging.get_packaging_status(parcel_id, current_user["user_id"])


@router.get("/{parcel_id}/delivery-status", response_model=DeliveryStatusResponse)
async def get_delivery_status(
    parcel_id: int = Path(..., description="Parcel ID"),
    current_user: dict = Depends(require_party),
    services: DeliveryServices = Depends(get_services)
):
    """Delivery confirmation state and hours left in the window."""
    return await services.delivery.get_delivery_status(parcel_id, current_user["user_id"])
