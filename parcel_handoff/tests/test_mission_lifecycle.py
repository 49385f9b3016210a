"""
Mission lifecycle tests.

Acceptance, journey, arrival, pickup gating and cancellation.
"""

import pytest
from sqlalchemy import select

from parcel_handoff.app.core.exceptions import (
    ConflictError,
    InsufficientPermissionsError,
    InvalidStateTransitionError,
    ResourceNotFoundError,
)
from parcel_handoff.app.models.mission import Mission
from parcel_handoff.app.models.mission_enums import MissionStatus
from parcel_handoff.app.models.notification import Notification
from parcel_handoff.app.models.parcel_enums import ParcelStatus
from parcel_handoff.app.services.audit import AuditAction, get_mission_audit_trail


@pytest.mark.asyncio
async def test_accept_claims_pending_parcel(flow, services, carrier, clock):
    parcel = await flow.create_parcel()

    mission = await services.lifecycle.accept_mission(parcel.id, carrier.id)

    assert mission.status == MissionStatus.ACCEPTED
    assert mission.carrier_id == carrier.id
    assert mission.accepted_at == clock.now
    assert mission.parcel.status == ParcelStatus.ACCEPTED
    assert mission.parcel.assigned_carrier_id == carrier.id


@pytest.mark.asyncio
async def test_second_carrier_cannot_accept_claimed_parcel(flow, services, carrier, other_carrier, db_session):
    parcel = await flow.create_parcel()
    await services.lifecycle.accept_mission(parcel.id, carrier.id)

    with pytest.raises(ConflictError) as exc_info:
        await services.lifecycle.accept_mission(parcel.id, other_carrier.id)
    assert exc_info.value.details["precondition"] == "parcel_pending"

    missions = (await db_session.execute(select(Mission).where(Mission.parcel_id == parcel.id))).scalars().all()
    assert len(missions) == 1
    assert missions[0].carrier_id == carrier.id


@pytest.mark.asyncio
async def test_racing_accepts_claim_parcel_once(flow, services, carrier, other_carrier, db_session, mocker):
    parcel = await flow.create_parcel()
    original = services.store.get_parcel_with_address
    rival = {}

    async def rival_accepts_after_read(session, parcel_id):
        found = await original(session, parcel_id)
        if not rival:
            # The other carrier commits between this caller's read and its write
            rival["started"] = True
            rival["mission"] = await services.lifecycle.accept_mission(parcel_id, other_carrier.id)
        return found

    mocker.patch.object(services.store, "get_parcel_with_address", side_effect=rival_accepts_after_read)

    with pytest.raises(ConflictError) as exc_info:
        await services.lifecycle.accept_mission(parcel.id, carrier.id)
    assert exc_info.value.details["precondition"] == "parcel_pending"

    missions = (await db_session.execute(select(Mission).where(Mission.parcel_id == parcel.id))).scalars().all()
    assert len(missions) == 1
    assert missions[0].id == rival["mission"].id
    assert missions[0].carrier_id == other_carrier.id


@pytest.mark.asyncio
async def test_active_mission_index_rejects_second_claim(flow, services, carrier, other_carrier, session_factory, clock):
    parcel = await flow.create_parcel()
    # An active mission already exists while the parcel still reads PENDING
    async with session_factory() as session:
        session.add(Mission(
            parcel_id=parcel.id,
            carrier_id=carrier.id,
            status=MissionStatus.ACCEPTED,
            accepted_at=clock.now,
        ))
        await session.commit()

    with pytest.raises(ConflictError) as exc_info:
        await services.lifecycle.accept_mission(parcel.id, other_carrier.id)
    assert exc_info.value.details["precondition"] == "parcel_pending"

    async with services.store.session() as session:
        fresh = await services.store.get_parcel_with_address(session, parcel.id)
    assert fresh.status == ParcelStatus.PENDING
    assert fresh.assigned_carrier_id is None


@pytest.mark.asyncio
async def test_vendor_cannot_accept_own_parcel(flow, services, vendor):
    parcel = await flow.create_parcel()

    with pytest.raises(InsufficientPermissionsError):
        await services.lifecycle.accept_mission(parcel.id, vendor.id)


@pytest.mark.asyncio
async def test_accept_unknown_parcel_is_not_found(services, carrier):
    with pytest.raises(ResourceNotFoundError):
        await services.lifecycle.accept_mission(9999, carrier.id)


@pytest.mark.asyncio
async def test_start_journey_estimates_arrival(flow, services, carrier, clock):
    parcel, mission = await flow.accepted()

    # About 1.1 km north of the pickup point
    pickup = mission.parcel.pickup_address
    result = await services.lifecycle.start_journey(mission.id, carrier.id, pickup.latitude + 0.01, pickup.longitude)

    assert result.mission.status == MissionStatus.IN_PROGRESS
    assert result.mission.parcel.status == ParcelStatus.IN_PROGRESS
    assert 1.0 < result.distance_km < 1.2
    # ceil(1.11 km * 3 min/km)
    assert result.eta_minutes == 4
    assert result.mission.departed_at == clock.now


@pytest.mark.asyncio
async def test_start_journey_twice_is_rejected(flow, services, carrier):
    parcel, mission = await flow.accepted()
    await services.lifecycle.start_journey(mission.id, carrier.id, 45.76, 4.83)

    with pytest.raises(InvalidStateTransitionError) as exc_info:
        await services.lifecycle.start_journey(mission.id, carrier.id, 45.76, 4.83)
    assert exc_info.value.details["current_status"] == "IN_PROGRESS"


@pytest.mark.asyncio
async def test_other_carrier_cannot_drive_mission(flow, services, other_carrier):
    parcel, mission = await flow.accepted()

    with pytest.raises(InsufficientPermissionsError):
        await services.lifecycle.start_journey(mission.id, other_carrier.id, 45.76, 4.83)


@pytest.mark.asyncio
async def test_arrival_records_timestamp_without_status_change(flow, services, carrier, clock):
    parcel, mission = await flow.accepted()
    clock.advance(minutes=12)

    mission = await services.lifecycle.arrived_at_pickup(mission.id, carrier.id)

    assert mission.status == MissionStatus.ACCEPTED
    assert mission.arrived_at == clock.now


@pytest.mark.asyncio
async def test_pickup_requires_carrier_packaging_confirmation(flow, services, carrier):
    parcel, mission = await flow.accepted()

    with pytest.raises(InvalidStateTransitionError) as exc_info:
        await services.lifecycle.pickup_mission(mission.id, carrier.id)
    assert exc_info.value.details["precondition"] == "carrier_packaging_confirmed"


@pytest.mark.asyncio
async def test_pickup_requires_vendor_packaging_validation(flow, services, carrier):
    parcel, mission = await flow.accepted()
    await services.packaging.carrier_confirm_packaging(mission.id, carrier.id, "https://cdn.example.com/p.jpg")

    with pytest.raises(InvalidStateTransitionError) as exc_info:
        await services.lifecycle.pickup_mission(mission.id, carrier.id)
    assert exc_info.value.details["precondition"] == "vendor_packaging_confirmed"


@pytest.mark.asyncio
async def test_pickup_after_handshake_moves_both_records(flow, services, carrier, clock):
    parcel, mission = await flow.packaged()

    mission = await services.lifecycle.pickup_mission(mission.id, carrier.id)

    assert mission.status == MissionStatus.PICKED_UP
    assert mission.picked_up_at == clock.now
    assert mission.parcel.status == ParcelStatus.PICKED_UP


@pytest.mark.asyncio
async def test_cancel_returns_parcel_to_pool_and_allows_reaccept(flow, services, carrier, other_carrier):
    parcel, mission = await flow.accepted()

    cancelled = await services.lifecycle.cancel_mission(mission.id, carrier.id, reason="Vehicle broke down")

    assert cancelled.status == MissionStatus.CANCELLED
    assert cancelled.cancellation_reason == "Vehicle broke down"
    assert cancelled.parcel.status == ParcelStatus.PENDING
    assert cancelled.parcel.assigned_carrier_id is None

    second = await services.lifecycle.accept_mission(parcel.id, other_carrier.id)
    assert second.id != mission.id
    assert second.parcel.assigned_carrier_id == other_carrier.id


@pytest.mark.asyncio
async def test_cancel_after_departure_is_rejected(flow, services, carrier):
    parcel, mission = await flow.accepted()
    await services.lifecycle.start_journey(mission.id, carrier.id, 45.76, 4.83)

    with pytest.raises(InvalidStateTransitionError):
        await services.lifecycle.cancel_mission(mission.id, carrier.id)


@pytest.mark.asyncio
async def test_current_missions_and_history(flow, services, carrier):
    _, active = await flow.accepted()
    _, cancelled = await flow.accepted()
    await services.lifecycle.cancel_mission(cancelled.id, carrier.id)

    current = await services.lifecycle.get_current_missions(carrier.id)
    history = await services.lifecycle.get_mission_history(carrier.id, page=1, limit=10)

    assert [m.id for m in current] == [active.id]
    assert history.total == 1
    assert history.total_pages == 1
    assert history.missions[0].id == cancelled.id


@pytest.mark.asyncio
async def test_transitions_are_audited_and_notified(flow, services, vendor, db_session):
    parcel, mission = await flow.picked_up()

    trail = await get_mission_audit_trail(db_session, mission.id)
    assert [entry.action for entry in trail] == [
        AuditAction.MISSION_ACCEPTED,
        AuditAction.PACKAGING_CARRIER_CONFIRMED,
        AuditAction.PARCEL_PICKED_UP,
    ]

    events = (await db_session.execute(
        select(Notification.event_type).where(Notification.user_id == vendor.id)
    )).scalars().all()
    assert "mission_accepted" in events
    assert "parcel_picked_up" in events
