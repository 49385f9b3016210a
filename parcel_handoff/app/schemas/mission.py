"""
Mission Pydantic schemas.
"""

from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional, List
from parcel_handoff.app.models.mission_enums import MissionStatus
from parcel_handoff.app.schemas.parcel import ParcelResponse


class MissionResponse(BaseModel):
    id: int
    parcel_id: int
    carrier_id: int
    status: MissionStatus
    accepted_at: datetime
    departed_at: Optional[datetime]
    arrived_at: Optional[datetime]
    picked_up_at: Optional[datetime]
    delivered_at: Optional[datetime]
    cancelled_at: Optional[datetime]
    estimated_arrival: Optional[datetime]
    delivery_proof_url: Optional[str]
    delivery_confirmation_deadline: Optional[datetime]
    client_confirmed_delivery_at: Optional[datetime]
    client_contested_at: Optional[datetime]
    contest_reason: Optional[str]
    auto_confirmed: bool
    cancellation_reason: Optional[str]
    parcel: ParcelResponse
    
    class Config:
        from_attributes = True


class MissionAcceptResponse(BaseModel):
    """Accepted mission plus the pickup code the carrier reads out to the vendor."""
    mission: MissionResponse
    pickup_code: str


class JourneyStartRequest(BaseModel):
    """Carrier position when leaving for the pickup."""
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)


class JourneyStartResponse(BaseModel):
    mission: MissionResponse
    distance_km: float
    eta_minutes: int
    estimated_arrival: datetime


class MissionCancelRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)


class DeliveryProofRequest(BaseModel):
    proof_url: str = Field(..., min_length=1, max_length=500, description="Photo of the dropped-off parcel")


class DeliveryProofResponse(BaseModel):
    mission: MissionResponse
    confirmation_deadline: datetime
    hours_remaining: int


class CarrierProfileResponse(BaseModel):
    """Running delivery statistics of a carrier."""
    carrier_id: int
    total_deliveries: int = 0
    average_rating: Optional[float] = None
    is_available: bool = True


class MissionHistoryResponse(BaseModel):
    """Paginated finished missions (delivered or cancelled)."""
    missions: List[MissionResponse]
    total: int
    page: int
    limit: int
    total_pages: int
