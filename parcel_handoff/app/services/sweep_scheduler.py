"""
Auto-confirmation sweep scheduling.

The sweep runs hourly from the application process and can also be
triggered through the internal endpoint. A Redis lock (``SET NX EX``)
keeps several workers from sweeping at the same time. If Redis is down
the sweep still runs: the conditional writes keep it correct, the lock
only saves duplicate work.
"""

import asyncio
import logging
import uuid
from typing import Optional

from parcel_handoff.app.schemas.delivery import SweepResponse
from parcel_handoff.app.services.delivery_confirmation import DeliveryConfirmationService

logger = logging.getLogger(__name__)

SWEEP_LOCK_KEY = "delivery:auto-confirm:lock"


async def run_locked_sweep(
    service: DeliveryConfirmationService,
    redis,
    lock_ttl_seconds: int,
) -> Optional[SweepResponse]:
    """
    Run one sweep under the Redis lock.

    Returns None when another worker holds the lock.
    """
    token = uuid.uuid4().hex
    try:
        acquired = await redis.set(SWEEP_LOCK_KEY, token, nx=True, ex=lock_ttl_seconds)
    except Exception:
        logger.warning("Redis unavailable, running auto-confirmation sweep without lock", exc_info=True)
        return await service.auto_confirm_expired_deliveries()

    if not acquired:
        logger.info("Auto-confirmation sweep already running on another worker")
        return None

    try:
        return await service.auto_confirm_expired_deliveries()
    finally:
        await _release(redis, token)


async def _release(redis, token: str) -> None:
    # Only release a lock we still own; it may have expired and been re-taken.
    try:
        current = await redis.get(SWEEP_LOCK_KEY)
        if isinstance(current, bytes):
            current = current.decode()
        if current == token:
            await redis.delete(SWEEP_LOCK_KEY)
    except Exception:
        logger.warning("Could not release auto-confirmation sweep lock", exc_info=True)


class DeliverySweepScheduler:
    """Background loop started and stopped by the application lifespan."""

    def __init__(
        self,
        service: DeliveryConfirmationService,
        redis,
        interval_seconds: int,
        lock_ttl_seconds: int,
    ):
        self.service = service
        self.redis = redis
        self.interval_seconds = interval_seconds
        self.lock_ttl_seconds = lock_ttl_seconds
        self._task: Optional[asyncio.Task] = None

    def start(self) -> None:
        if self._task is None:
            self._task = asyncio.create_task(self._run(), name="delivery-auto-confirm")
            logger.info("Auto-confirmation sweep scheduled every %ss", self.interval_seconds)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

    async def run_once(self) -> Optional[SweepResponse]:
        """One tick. Errors are logged so the loop keeps running."""
        try:
            return await run_locked_sweep(self.service, self.redis, self.lock_ttl_seconds)
        except Exception:
            logger.exception("Auto-confirmation sweep failed")
            return None

    async def _run(self) -> None:
        while True:
            await self.run_once()
            await asyncio.sleep(self.interval_seconds)
