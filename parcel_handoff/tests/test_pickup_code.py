"""
Pickup authorization tests.
"""

import pytest
from sqlalchemy import select

from parcel_handoff.app.core.exceptions import (
    DomainValidationError,
    InsufficientPermissionsError,
    InvalidStateTransitionError,
)
from parcel_handoff.app.models.mission_enums import MissionStatus
from parcel_handoff.app.models.notification import Notification, NotificationType
from parcel_handoff.app.models.parcel_enums import ParcelStatus
from parcel_handoff.app.services.audit import AuditAction, get_parcel_audit_trail
from parcel_handoff.app.services.pickup_authorization import generate_pickup_code


def test_generated_codes_are_six_digits():
    codes = {generate_pickup_code() for _ in range(200)}

    assert all(len(code) == 6 and code.isdigit() for code in codes)
    assert all(not code.startswith("0") for code in codes)
    assert len(codes) > 1


@pytest.mark.asyncio
async def test_parcel_gets_code_revealed_to_carrier_on_accept(flow, services, carrier):
    parcel = await flow.create_parcel()
    assert len(parcel.pickup_code) == 6

    mission = await services.lifecycle.accept_mission(parcel.id, carrier.id)
    assert mission.parcel.pickup_code == parcel.pickup_code


@pytest.mark.asyncio
async def test_correct_code_picks_up_parcel(flow, services, vendor, db_session):
    parcel, mission = await flow.packaged()

    picked = await services.pickup.confirm_pickup_by_code(parcel.id, vendor.id, parcel.pickup_code)

    assert picked.id == mission.id
    assert picked.status == MissionStatus.PICKED_UP
    assert picked.parcel.status == ParcelStatus.PICKED_UP

    latest = (await get_parcel_audit_trail(db_session, parcel.id))[0]
    assert latest.action == AuditAction.PARCEL_PICKED_UP
    assert latest.actor_id == vendor.id
    assert latest.meta_data == {"via": "pickup_code"}


@pytest.mark.asyncio
async def test_wrong_code_is_rejected(flow, services, vendor):
    parcel, mission = await flow.packaged()
    wrong = "111111" if parcel.pickup_code != "111111" else "222222"

    with pytest.raises(DomainValidationError):
        await services.pickup.confirm_pickup_by_code(parcel.id, vendor.id, wrong)

    async with services.store.session() as session:
        fresh = await services.store.get_parcel_with_address(session, parcel.id)
    assert fresh.status == ParcelStatus.ACCEPTED


@pytest.mark.asyncio
async def test_padded_code_is_not_an_exact_match(flow, services, vendor):
    parcel, mission = await flow.packaged()

    with pytest.raises(DomainValidationError) as exc_info:
        await services.pickup.confirm_pickup_by_code(parcel.id, vendor.id, " " + parcel.pickup_code + " \n")
    assert exc_info.value.details["field"] == "code"

    async with services.store.session() as session:
        fresh = await services.store.get_parcel_with_address(session, parcel.id)
    assert fresh.status == ParcelStatus.ACCEPTED


@pytest.mark.asyncio
async def test_carrier_is_told_the_code_was_accepted(flow, services, vendor, carrier, db_session):
    parcel, mission = await flow.packaged()

    await services.pickup.confirm_pickup_by_code(parcel.id, vendor.id, parcel.pickup_code)

    kinds = (await db_session.execute(
        select(Notification.type).where(
            Notification.user_id == carrier.id,
            Notification.event_type == "pickup_confirmed",
        )
    )).scalars().all()
    assert kinds == [NotificationType.MISSION_UPDATE]


@pytest.mark.asyncio
async def test_code_does_not_bypass_packaging(flow, services, vendor):
    parcel, mission = await flow.accepted()

    with pytest.raises(InvalidStateTransitionError) as exc_info:
        await services.pickup.confirm_pickup_by_code(parcel.id, vendor.id, parcel.pickup_code)
    assert exc_info.value.details["precondition"] == "carrier_packaging_confirmed"


@pytest.mark.asyncio
async def test_code_requires_accepted_parcel(flow, services, vendor):
    parcel = await flow.create_parcel()

    with pytest.raises(InvalidStateTransitionError) as exc_info:
        await services.pickup.confirm_pickup_by_code(parcel.id, vendor.id, parcel.pickup_code)
    assert exc_info.value.details["precondition"] == "parcel_accepted"


@pytest.mark.asyncio
async def test_code_cannot_be_reused(flow, services, vendor):
    parcel, mission = await flow.packaged()
    await services.pickup.confirm_pickup_by_code(parcel.id, vendor.id, parcel.pickup_code)

    with pytest.raises(InvalidStateTransitionError):
        await services.pickup.confirm_pickup_by_code(parcel.id, vendor.id, parcel.pickup_code)


@pytest.mark.asyncio
async def test_only_vendor_submits_code(flow, services, carrier):
    parcel, mission = await flow.packaged()

    with pytest.raises(InsufficientPermissionsError):
        await services.pickup.confirm_pickup_by_code(parcel.id, carrier.id, parcel.pickup_code)
