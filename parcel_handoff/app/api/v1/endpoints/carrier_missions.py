"""
Carrier Mission API Endpoints.

Parcel discovery, mission acceptance and every carrier-side transition up
to the drop-off proof.
"""

from typing import List
from fastapi import APIRouter, Depends, Path, Query
from parcel_handoff.app.core.dependencies import get_services
from parcel_handoff.app.core.guards import require_role
from parcel_handoff.app.models.enums import UserRole
from parcel_handoff.app.schemas.mission import (
    CarrierProfileResponse,
    DeliveryProofRequest,
    DeliveryProofResponse,
    JourneyStartRequest,
    JourneyStartResponse,
    MissionAcceptResponse,
    MissionCancelRequest,
    MissionHistoryResponse,
    MissionResponse,
)
from parcel_handoff.app.schemas.packaging import PackagingConfirmRequest
from parcel_handoff.app.schemas.parcel import AvailableParcelResponse, ParcelResponse
from parcel_handoff.app.services.container import DeliveryServices

router = APIRouter(prefix="/carrier", tags=["Carrier - Missions"])

require_carrier = require_role([UserRole.CARRIER])


@router.get("/parcels/available", response_model=List[AvailableParcelResponse])
async def list_available_parcels(
    latitude: float = Query(..., ge=-90, le=90),
    longitude: float = Query(..., ge=-180, le=180),
    radius_km: float = Query(10.0, gt=0, le=100),
    current_user: dict = Depends(require_carrier),
    services: DeliveryServices = Depends(get_services)
):
    """Pending parcels around the carrier, nearest first."""
    return await services.parcels.list_available_parcels(
        current_user["user_id"], latitude, longitude, radius_km
    )


@router.post("/parcels/{parcel_id}/accept", response_model=MissionAcceptResponse)
async def accept_mission(
    parcel_id: int = Path(..., description="Parcel ID"),
    current_user: dict = Depends(require_carrier),
    services: DeliveryServices = Depends(get_services)
):
    """
    Accept a pending parcel.
    
    Returns the pickup code the carrier will read out to the vendor.
    409 if another carrier got there first.
    """
    mission = await services.lifecycle.accept_mission(
        parcel_id, current_user["user_id"], carrier_username=current_user.get("sub")
    )
    return MissionAcceptResponse(
        mission=MissionResponse.model_validate(mission),
        pickup_code=mission.parcel.pickup_code,
    )


@router.get("/profile", response_model=CarrierProfileResponse)
async def get_carrier_profile(
    current_user: dict = Depends(require_carrier),
    services: DeliveryServices = Depends(get_services)
):
    return await services.lifecycle.get_carrier_profile(current_user["user_id"])


@router.get("/missions/current", response_model=List[MissionResponse])
async def get_current_missions(
    current_user: dict = Depends(require_carrier),
    services: DeliveryServices = Depends(get_services)
):
    missions = await services.lifecycle.get_current_missions(current_user["user_id"])
    return [MissionResponse.model_validate(m) for m in missions]


@router.get("/missions/history", response_model=MissionHistoryResponse)
async def get_mission_history(
    page: int = Query(1, ge=1, description="Page number"),
    limit: int = Query(20, ge=1, le=100, description="Items per page"),
    current_user: dict = Depends(require_carrier),
    services: DeliveryServices = Depends(get_services)
):
    return await services.lifecycle.get_mission_history(current_user["user_id"], page, limit)


@router.post("/missions/{mission_id}/depart", response_model=JourneyStartResponse)
async def start_journey(
    body: JourneyStartRequest,
    mission_id: int = Path(..., description="Mission ID"),
    current_user: dict = Depends(require_carrier),
    services: DeliveryServices = Depends(get_services)
):
    return await services.lifecycle.start_journey(
        mission_id,
        current_user["user_id"],
        body.latitude,
        body.longitude,
        carrier_username=current_user.get("sub"),
    )


@router.post("/missions/{mission_id}/arrive", response_model=MissionResponse)
async def arrived_at_pickup(
    mission_id: int = Path(..., description="Mission ID"),
    current_user: dict = Depends(require_carrier),
    services: DeliveryServices = Depends(get_services)
):
    mission = await services.lifecycle.arrived_at_pickup(
        mission_id, current_user["user_id"], carrier_username=current_user.get("sub")
    )
    return MissionResponse.model_validate(mission)


@router.post("/missions/{mission_id}/packaging", response_model=ParcelResponse)
async def carrier_confirm_packaging(
    body: PackagingConfirmRequest,
    mission_id: int = Path(..., description="Mission ID"),
    current_user: dict = Depends(require_carrier),
    services: DeliveryServices = Depends(get_services)
):
    """Photograph the packaged parcel; the vendor then validates or rejects it."""
    parcel = await services.packaging.carrier_confirm_packaging(
        mission_id, current_user["user_id"], body.photo_url, carrier_username=current_user.get("sub")
    )
    return ParcelResponse.model_validate(parcel)


@router.post("/missions/{mission_id}/pickup", response_model=MissionResponse)
async def pickup_mission(
    mission_id: int = Path(..., description="Mission ID"),
    current_user: dict = Depends(require_carrier),
    services: DeliveryServices = Depends(get_services)
):
    mission = await services.lifecycle.pickup_mission(
        mission_id, current_user["user_id"], carrier_username=current_user.get("sub")
    )
    return MissionResponse.model_validate(mission)


@router.post("/missions/{mission_id}/cancel", response_model=MissionResponse)
async def cancel_mission(
    body: MissionCancelRequest,
    mission_id: int = Path(..., description="Mission ID"),
    current_user: dict = Depends(require_carrier),
    services: DeliveryServices = Depends(get_services)
):
    mission = await services.lifecycle.cancel_mission(
        mission_id, current_user["user_id"], reason=body.reason, carrier_username=current_user.get("sub")
    )
    return MissionResponse.model_validate(mission)


@router.post("/missions/{mission_id}/delivery-proof", response_model=DeliveryProofResponse)
async def confirm_delivery(
    body: DeliveryProofRequest,
    mission_id: int = Path(..., description="Mission ID"),
    current_user: dict = Depends(require_carrier),
    services: DeliveryServices = Depends(get_services)
):
    """Submit the drop-off photo. Opens the vendor's confirmation window."""
    return await services.lifecycle.confirm_delivery(
        mission_id, current_user["user_id"], body.proof_url, carrier_username=current_user.get("sub")
    )
