"""
Vendor Parcel API Endpoints.

Parcel creation, the vendor's half of the packaging handshake, pickup by
code and delivery confirmation or contest.
"""

from fastapi import APIRouter, Depends, status, Path
from parcel_handoff.app.core.dependencies import get_services
from parcel_handoff.app.core.guards import require_role
from parcel_handoff.app.models.enums import UserRole
from parcel_handoff.app.schemas.delivery import ClientConfirmRequest, ClientContestRequest
from parcel_handoff.app.schemas.mission import MissionResponse
from parcel_handoff.app.schemas.packaging import PackagingRejectRequest
from parcel_handoff.app.schemas.parcel import ParcelCreate, ParcelResponse, PickupCodeConfirm
from parcel_handoff.app.services.container import DeliveryServices

router = APIRouter(prefix="/vendor/parcels", tags=["Vendor - Parcels"])

require_vendor = require_role([UserRole.VENDOR])


@router.post("", response_model=ParcelResponse, status_code=status.HTTP_201_CREATED)
async def create_parcel(
    parcel_data: ParcelCreate,
    current_user: dict = Depends(require_vendor),
    services: DeliveryServices = Depends(get_services)
):
    """Create a parcel with its geocoded pickup address."""
    parcel = await services.parcels.create_parcel(
        current_user["user_id"], parcel_data, vendor_username=current_user.get("sub")
    )
    return ParcelResponse.model_validate(parcel)


@router.get("/{parcel_id}", response_model=ParcelResponse)
async def get_parcel(
    parcel_id: int = Path(..., description="Parcel ID"),
    current_user: dict = Depends(require_vendor),
    services: DeliveryServices = Depends(get_services)
):
    parcel = await services.parcels.get_parcel(parcel_id, current_user["user_id"])
    return ParcelResponse.model_validate(parcel)


@router.post("/{parcel_id}/cancel", response_model=ParcelResponse)
async def cancel_parcel(
    parcel_id: int = Path(..., description="Parcel ID"),
    current_user: dict = Depends(require_vendor),
    services: DeliveryServices = Depends(get_services)
):
    """Withdraw a parcel that no carrier accepted yet."""
    parcel = await services.parcels.cancel_parcel(
        parcel_id, current_user["user_id"], vendor_username=current_user.get("sub")
    )
    return ParcelResponse.model_validate(parcel)


@router.post("/{parcel_id}/confirm-pickup", response_model=MissionResponse)
async def confirm_pickup_by_code(
    body: PickupCodeConfirm,
    parcel_id: int = Path(..., description="Parcel ID"),
    current_user: dict = Depends(require_vendor),
    services: DeliveryServices = Depends(get_services)
):
    """
    Hand the parcel over using the code the carrier reads out.
    
    Requires the packaging handshake to be complete.
    """
    mission = await services.pickup.confirm_pickup_by_code(
        parcel_id, current_user["user_id"], body.code, vendor_username=current_user.get("sub")
    )
    return MissionResponse.model_validate(mission)


@router.post("/{parcel_id}/packaging/confirm", response_model=ParcelResponse)
async def vendor_confirm_packaging(
    parcel_id: int = Path(..., description="Parcel ID"),
    current_user: dict = Depends(require_vendor),
    services: DeliveryServices = Depends(get_services)
):
    parcel = await services.packaging.vendor_confirm_packaging(
        parcel_id, current_user["user_id"], vendor_username=current_user.get("sub")
    )
    return ParcelResponse.model_validate(parcel)


@router.post("/{parcel_id}/packaging/reject", response_model=ParcelResponse)
async def vendor_reject_packaging(
    body: PackagingRejectRequest,
    parcel_id: int = Path(..., description="Parcel ID"),
    current_user: dict = Depends(require_vendor),
    services: DeliveryServices = Depends(get_services)
):
    parcel = await services.packaging.vendor_reject_packaging(
        parcel_id, current_user["user_id"], body.reason, vendor_username=current_user.get("sub")
    )
    return ParcelResponse.model_validate(parcel)


@router.post("/{parcel_id}/delivery/confirm", response_model=MissionResponse)
async def client_confirm_delivery(
    body: ClientConfirmRequest,
    parcel_id: int = Path(..., description="Parcel ID"),
    current_user: dict = Depends(require_vendor),
    services: DeliveryServices = Depends(get_services)
):
    """Confirm the drop-off, optionally rating the carrier (1-5)."""
    mission = await services.delivery.client_confirm_delivery(
        parcel_id,
        current_user["user_id"],
        rating=body.rating,
        comment=body.comment,
        vendor_username=current_user.get("sub"),
    )
    return MissionResponse.model_validate(mission)


@router.post("/{parcel_id}/delivery/contest", response_model=MissionResponse)
async def client_contest_delivery(
    body: ClientContestRequest,
    parcel_id: int = Path(..., description="Parcel ID"),
    current_user: dict = Depends(require_vendor),
    services: DeliveryServices = Depends(get_services)
):
    """Dispute the drop-off. The delivery is then excluded from auto-confirmation."""
    mission = await services.delivery.client_contest_delivery(
        parcel_id, current_user["user_id"], body.reason, vendor_username=current_user.get("sub")
    )
    return MissionResponse.model_validate(mission)
