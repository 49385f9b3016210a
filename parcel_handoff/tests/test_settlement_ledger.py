"""
Settlement and ledger tests.
"""

import pytest
from sqlalchemy import select

from parcel_handoff.app.domain.billing.billing_service import BillingService
from parcel_handoff.app.models.billing_enums import LedgerEntryType, SettlementStatus
from parcel_handoff.app.models.ledger_entry import LedgerEntry
from parcel_handoff.app.models.settlement import Settlement
from parcel_handoff.app.services.settlement_trigger import LedgerSettlementTrigger, fire_settlement


@pytest.mark.asyncio
async def test_settlement_writes_double_entry(flow, services, vendor, carrier, session_factory, db_session):
    parcel, mission = await flow.dropped_off()
    await services.delivery.client_confirm_delivery(parcel.id, vendor.id)

    await LedgerSettlementTrigger(session_factory).on_delivery_confirmed(mission.id)

    settlement = (await db_session.execute(
        select(Settlement).where(Settlement.mission_id == mission.id)
    )).scalar_one()
    assert settlement.status == SettlementStatus.PENDING
    assert settlement.vendor_id == vendor.id
    assert settlement.carrier_id == carrier.id
    assert settlement.total_amount == 12.5

    entries = (await db_session.execute(
        select(LedgerEntry).where(LedgerEntry.settlement_id == settlement.id)
    )).scalars().all()
    by_type = {e.entry_type: e for e in entries}
    assert by_type[LedgerEntryType.DEBIT].account_owner_id == vendor.id
    assert by_type[LedgerEntryType.CREDIT].account_owner_id == carrier.id
    assert sum(e.amount for e in entries) == 25.0


@pytest.mark.asyncio
async def test_settlement_is_idempotent(flow, services, vendor, session_factory, db_session):
    parcel, mission = await flow.dropped_off()
    await services.delivery.client_confirm_delivery(parcel.id, vendor.id)
    trigger = LedgerSettlementTrigger(session_factory)

    await trigger.on_delivery_confirmed(mission.id)
    await trigger.on_delivery_confirmed(mission.id)

    settlements = (await db_session.execute(select(Settlement))).scalars().all()
    entries = (await db_session.execute(select(LedgerEntry))).scalars().all()
    assert len(settlements) == 1
    assert len(entries) == 2


@pytest.mark.asyncio
async def test_undelivered_mission_is_not_settled(flow, db_session):
    parcel, mission = await flow.dropped_off()

    with pytest.raises(ValueError):
        await BillingService.settle_mission(db_session, mission.id)


@pytest.mark.asyncio
async def test_fire_settlement_reports_failure(flow, session_factory, mocker):
    trigger = mocker.AsyncMock()
    trigger.on_delivery_confirmed.side_effect = RuntimeError("ledger offline")

    assert await fire_settlement(trigger, session_factory, 1) is False
    trigger.on_delivery_confirmed.assert_awaited_once_with(1)
