"""
Internal endpoints called by infrastructure, not by users.
"""

from fastapi import APIRouter, Depends
from parcel_handoff.app.core.config import settings
from parcel_handoff.app.core.dependencies import get_services, verify_cron_secret
from parcel_handoff.app.core.exceptions import ConflictError
from parcel_handoff.app.core.redis_client import get_redis
from parcel_handoff.app.schemas.delivery import SweepResponse
from parcel_handoff.app.services.container import DeliveryServices
from parcel_handoff.app.services.sweep_scheduler import run_locked_sweep

router = APIRouter(prefix="/internal", tags=["Internal"], dependencies=[Depends(verify_cron_secret)])


@router.post("/delivery/auto-confirm", response_model=SweepResponse)
async def trigger_auto_confirm(
    services: DeliveryServices = Depends(get_services),
    redis=Depends(get_redis)
):
    """
    Run the auto-confirmation sweep now (``X-Cron-Secret`` required).
    
    409 while another worker is sweeping.
    """
    report = await run_locked_sweep(services.delivery, redis, settings.sweep_lock_ttl_seconds)
    if report is None:
        raise ConflictError("An auto-confirmation sweep is already running", precondition="sweep_lock_free")
    return report
