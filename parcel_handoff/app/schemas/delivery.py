"""
Delivery confirmation schemas.
"""

from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional, List
from parcel_handoff.app.models.mission_enums import DeliveryStatus


class ClientConfirmRequest(BaseModel):
    rating: Optional[int] = Field(None, ge=1, le=5)
    comment: Optional[str] = Field(None, max_length=1000)


class ClientContestRequest(BaseModel):
    reason: str = Field(..., min_length=1, max_length=500)


class DeliveryStatusResponse(BaseModel):
    parcel_id: int
    mission_id: int
    status: DeliveryStatus
    proof_url: Optional[str]
    delivered_at: Optional[datetime]
    confirmation_deadline: Optional[datetime]
    hours_remaining: Optional[int]
    confirmed_at: Optional[datetime]
    contested_at: Optional[datetime]
    contest_reason: Optional[str]
    auto_confirmed: bool


class SweepResult(BaseModel):
    """Outcome for one mission: ``auto_confirmed``, ``skipped`` or ``error``."""
    mission_id: int
    outcome: str
    error: Optional[str] = None


class SweepResponse(BaseModel):
    processed: int
    skipped: int
    failed: int
    results: List[SweepResult]
