"""
Billing Service (Domain Logic).

Turns a delivered mission into a settlement and its ledger entries.
Must be transactional and idempotent.
"""

import logging

from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from parcel_handoff.app.models.mission import Mission
from parcel_handoff.app.models.mission_enums import MissionStatus
from parcel_handoff.app.models.parcel import Parcel
from parcel_handoff.app.models.settlement import Settlement
from parcel_handoff.app.models.ledger_entry import LedgerEntry
from parcel_handoff.app.models.billing_enums import SettlementStatus, LedgerEntryType
from parcel_handoff.app.services.audit import log_event, AuditAction

logger = logging.getLogger(__name__)


class BillingService:
    
    @staticmethod
    async def settle_mission(db: AsyncSession, mission_id: int) -> Settlement:
        """
        Record the payment obligation for a delivered mission.
        
        Flow:
        1. Idempotency Check (existing Settlement for the mission)
        2. Validate Mission State (DELIVERED)
        3. Create Settlement (PENDING) for the parcel price
        4. Create Ledger Entries (vendor DEBIT, carrier CREDIT)
        
        Args:
            db: Database session (transaction managed by caller)
            mission_id: ID of the delivered mission
            
        Returns:
            The mission's Settlement, new or existing
        """
        existing = await db.execute(
            select(Settlement).where(Settlement.mission_id == mission_id)
        )
        settlement = existing.scalar_one_or_none()
        if settlement is not None:
            return settlement

        mission = await db.get(Mission, mission_id)
        if mission is None:
            raise ValueError(f"Mission {mission_id} not found")
        if mission.status != MissionStatus.DELIVERED:
            raise ValueError(f"Mission {mission_id} is not DELIVERED. Current status: {mission.status}")

        parcel = await db.get(Parcel, mission.parcel_id)
        amount = parcel.price

        settlement = Settlement(
            mission_id=mission.id,
            vendor_id=parcel.vendor_id,
            carrier_id=mission.carrier_id,
            total_amount=amount,
            status=SettlementStatus.PENDING
        )
        db.add(settlement)
        await db.flush()

        # Vendor pays, carrier earns
        db.add(LedgerEntry(
            settlement_id=settlement.id,
            entry_type=LedgerEntryType.DEBIT,
            account_owner_id=parcel.vendor_id,
            amount=amount,
            description=f"Delivery charge: mission {mission.id} (Settlement {settlement.id})"
        ))
        db.add(LedgerEntry(
            settlement_id=settlement.id,
            entry_type=LedgerEntryType.CREDIT,
            account_owner_id=mission.carrier_id,
            amount=amount,
            description=f"Delivery earnings: mission {mission.id} (Settlement {settlement.id})"
        ))
        await db.flush()

        await log_event(
            db=db,
            action=AuditAction.SETTLEMENT_CREATED,
            mission_id=mission.id,
            parcel_id=parcel.id,
            metadata={"settlement_id": settlement.id, "amount": amount}
        )

        logger.info("Settlement %s created for mission %s (%.2f)", settlement.id, mission.id, amount)
        return settlement
