"""
Packaging handshake schemas.
"""

from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional
from parcel_handoff.app.models.parcel_enums import PackagingStatus


class PackagingConfirmRequest(BaseModel):
    photo_url: str = Field(..., min_length=1, max_length=500, description="Photo of the sealed parcel")


class PackagingRejectRequest(BaseModel):
    reason: str = Field(..., min_length=1, max_length=500)


class PackagingStatusResponse(BaseModel):
    parcel_id: int
    status: PackagingStatus
    photo_url: Optional[str]
    carrier_confirmed_at: Optional[datetime]
    vendor_confirmed_at: Optional[datetime]
    rejected_at: Optional[datetime]
    rejection_reason: Optional[str]
