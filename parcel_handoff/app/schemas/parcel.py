"""
Parcel Pydantic schemas.

Defines request and response models for vendor parcel management.
"""

from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional
from parcel_handoff.app.models.parcel_enums import ParcelStatus, ParcelSize


class AddressCreate(BaseModel):
    """Geocoded pickup address supplied with the parcel."""
    street: str = Field(..., min_length=1, max_length=255)
    city: str = Field(..., min_length=1, max_length=100)
    postal_code: str = Field(..., min_length=1, max_length=20)
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)


class AddressResponse(BaseModel):
    id: int
    street: str
    city: str
    postal_code: str
    latitude: float
    longitude: float
    
    class Config:
        from_attributes = True


class ParcelCreate(BaseModel):
    """Schema for creating a new parcel."""
    pickup_address: AddressCreate
    description: Optional[str] = Field(None, max_length=500, description="Parcel description")
    size: ParcelSize
    dropoff_name: str = Field(..., min_length=1, max_length=100, description="Recipient name")
    dropoff_address: str = Field(..., min_length=1, max_length=255, description="Drop-off address")
    price: float = Field(..., gt=0, description="Price paid to the carrier")


class ParcelResponse(BaseModel):
    """Schema for parcel response. The pickup code is never part of it."""
    id: int
    vendor_id: int
    assigned_carrier_id: Optional[int]
    description: Optional[str]
    size: ParcelSize
    dropoff_name: str
    dropoff_address: str
    price: float
    status: ParcelStatus
    pickup_address: AddressResponse
    packaging_photo_url: Optional[str]
    packaging_confirmed_at: Optional[datetime]
    vendor_packaging_confirmed_at: Optional[datetime]
    created_at: datetime
    updated_at: datetime
    
    class Config:
        from_attributes = True


class AvailableParcelResponse(BaseModel):
    """Pending parcel within the carrier's search radius."""
    parcel: ParcelResponse
    distance_km: float


class PickupCodeConfirm(BaseModel):
    """Code read out by the carrier at the pickup point."""
    code: str = Field(..., min_length=1, max_length=10)

