"""
Settlement trigger.

Called exactly once per confirmed delivery (client or automatic), after
the confirming transaction committed. A failure never undoes the
confirmation: it is logged and parked in the dead letter queue for retry.
"""

import logging
from typing import Protocol

from sqlalchemy.ext.asyncio import async_sessionmaker

from parcel_handoff.app.domain.billing.billing_service import BillingService
from parcel_handoff.app.models.dlq import DeadLetterQueue, DLQStatus

logger = logging.getLogger(__name__)

SETTLEMENT_TASK = "settlement.on_delivery_confirmed"


class SettlementTrigger(Protocol):
    async def on_delivery_confirmed(self, mission_id: int) -> None:
        ...


class LedgerSettlementTrigger:
    """Default trigger: writes the settlement and ledger entries in their own transaction."""

    def __init__(self, session_factory: async_sessionmaker):
        self._session_factory = session_factory

    async def on_delivery_confirmed(self, mission_id: int) -> None:
        async with self._session_factory() as session:
            async with session.begin():
                await BillingService.settle_mission(session, mission_id)


async def fire_settlement(
    trigger: SettlementTrigger,
    session_factory: async_sessionmaker,
    mission_id: int,
) -> bool:
    """
    Invoke the trigger for a committed confirmation.

    Returns False when the trigger failed and the call was dead-lettered.
    """
    try:
        await trigger.on_delivery_confirmed(mission_id)
        return True
    except Exception as exc:
        logger.exception("Settlement trigger failed for mission %s", mission_id)
        await _dead_letter(session_factory, mission_id, exc)
        return False


async def _dead_letter(session_factory: async_sessionmaker, mission_id: int, exc: Exception) -> None:
    try:
        async with session_factory() as session:
            session.add(DeadLetterQueue(
                task_name=SETTLEMENT_TASK,
                error_message=str(exc) or exc.__class__.__name__,
                payload={"mission_id": mission_id},
                status=DLQStatus.FAILED,
            ))
            await session.commit()
    except Exception:
        logger.exception("Could not dead-letter settlement for mission %s", mission_id)
