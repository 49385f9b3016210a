"""
API v1 Router.

Aggregates all v1 API endpoints.
"""

from fastapi import APIRouter
from parcel_handoff.app.api.v1.endpoints import (
    vendor_parcels, carrier_missions, parcel_status,
    notifications, internal
)

router = APIRouter()

# Vendor side: parcels, packaging validation, pickup code, delivery confirmation
router.include_router(vendor_parcels.router)

# Carrier side: discovery, acceptance, journey, pickup, drop-off proof
router.include_router(carrier_missions.router)

# Status views for both parties
router.include_router(parcel_status.router)

router.include_router(notifications.router)

# Infrastructure (cron-triggered sweep)
router.include_router(internal.router)
