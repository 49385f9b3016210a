"""
HTTP flow tests.

Drives the full hand-off through the API: create, accept, packaging,
pickup by code, drop-off proof, confirmation with rating.
"""

import pytest
from sqlalchemy import select

from parcel_handoff.app.core.config import settings
from parcel_handoff.app.models.carrier_profile import CarrierProfile
from parcel_handoff.app.services.sweep_scheduler import SWEEP_LOCK_KEY

PARCEL_PAYLOAD = {
    "pickup_address": {
        "street": "1 Place Bellecour",
        "city": "Lyon",
        "postal_code": "69002",
        "latitude": 45.7578,
        "longitude": 4.8320,
    },
    "description": "Vintage camera",
    "size": "MEDIUM",
    "dropoff_name": "Camille Martin",
    "dropoff_address": "20 Rue de la Republique, 69002 Lyon",
    "price": 15.0,
}


@pytest.mark.asyncio
async def test_end_to_end_hand_off(client, auth_headers, vendor, carrier, settlement_trigger, db_session, mocker):
    mocker.patch(
        "parcel_handoff.app.services.parcel_service.generate_pickup_code", return_value="482913"
    )
    vendor_headers = auth_headers(vendor)
    carrier_headers = auth_headers(carrier)

    # Vendor publishes the parcel
    response = await client.post("/v1/vendor/parcels", json=PARCEL_PAYLOAD, headers=vendor_headers)
    assert response.status_code == 201
    parcel = response.json()
    assert parcel["status"] == "PENDING"
    assert "pickup_code" not in parcel
    parcel_id = parcel["id"]

    # Carrier finds and accepts it
    response = await client.get(
        "/v1/carrier/parcels/available",
        params={"latitude": 45.76, "longitude": 4.83, "radius_km": 5},
        headers=carrier_headers,
    )
    assert [item["parcel"]["id"] for item in response.json()] == [parcel_id]

    response = await client.post(f"/v1/carrier/parcels/{parcel_id}/accept", headers=carrier_headers)
    assert response.status_code == 200
    accepted = response.json()
    assert accepted["pickup_code"] == "482913"
    assert accepted["mission"]["status"] == "ACCEPTED"
    mission_id = accepted["mission"]["id"]

    response = await client.post(
        f"/v1/carrier/missions/{mission_id}/depart",
        json={"latitude": 45.7678, "longitude": 4.8320},
        headers=carrier_headers,
    )
    assert response.status_code == 200
    assert response.json()["eta_minutes"] == 4

    response = await client.post(f"/v1/carrier/missions/{mission_id}/arrive", headers=carrier_headers)
    assert response.status_code == 200

    # Packaging handshake
    response = await client.post(
        f"/v1/carrier/missions/{mission_id}/packaging",
        json={"photo_url": "https://cdn.example.com/packaging/1.jpg"},
        headers=carrier_headers,
    )
    assert response.status_code == 200
    assert response.json()["packaging_confirmed_at"] is not None

    response = await client.post(f"/v1/vendor/parcels/{parcel_id}/packaging/confirm", headers=vendor_headers)
    assert response.status_code == 200

    response = await client.get(f"/v1/parcels/{parcel_id}/packaging-status", headers=carrier_headers)
    assert response.json()["status"] == "FULLY_CONFIRMED"

    # Hand-off with the code
    response = await client.post(
        f"/v1/vendor/parcels/{parcel_id}/confirm-pickup", json={"code": "482913"}, headers=vendor_headers
    )
    assert response.status_code == 200
    assert response.json()["status"] == "PICKED_UP"

    # Drop-off
    response = await client.post(
        f"/v1/carrier/missions/{mission_id}/delivery-proof",
        json={"proof_url": "https://cdn.example.com/proof/1.jpg"},
        headers=carrier_headers,
    )
    assert response.status_code == 200
    proof = response.json()
    assert proof["hours_remaining"] == 12
    assert proof["mission"]["status"] == "PICKED_UP"

    response = await client.get(f"/v1/parcels/{parcel_id}/delivery-status", headers=vendor_headers)
    assert response.json()["status"] == "AWAITING_CONFIRMATION"

    # Vendor confirms with a rating
    response = await client.post(
        f"/v1/vendor/parcels/{parcel_id}/delivery/confirm", json={"rating": 5}, headers=vendor_headers
    )
    assert response.status_code == 200
    confirmed = response.json()
    assert confirmed["status"] == "DELIVERED"
    assert confirmed["parcel"]["status"] == "DELIVERED"
    assert settlement_trigger.calls == [mission_id]

    profile = (await db_session.execute(
        select(CarrierProfile).where(CarrierProfile.user_id == carrier.id)
    )).scalar_one()
    assert profile.average_rating == 5.0

    response = await client.get("/v1/carrier/profile", headers=carrier_headers)
    assert response.status_code == 200
    assert response.json() == {
        "carrier_id": carrier.id,
        "total_deliveries": 1,
        "average_rating": 5.0,
        "is_available": True,
    }

    response = await client.get("/v1/carrier/missions/history", headers=carrier_headers)
    assert response.json()["total"] == 1


@pytest.mark.asyncio
async def test_errors_carry_precondition(client, auth_headers, flow, vendor, other_carrier):
    parcel, mission = await flow.accepted()

    response = await client.post(f"/v1/carrier/parcels/{parcel.id}/accept", headers=auth_headers(other_carrier))

    assert response.status_code == 409
    body = response.json()
    assert body["error_code"] == "ERR_CONFLICT_001"
    assert body["details"]["precondition"] == "parcel_pending"


@pytest.mark.asyncio
async def test_wrong_pickup_code_returns_validation_error(client, auth_headers, flow, vendor):
    parcel, mission = await flow.packaged()
    wrong = "111111" if parcel.pickup_code != "111111" else "222222"

    response = await client.post(
        f"/v1/vendor/parcels/{parcel.id}/confirm-pickup", json={"code": wrong}, headers=auth_headers(vendor)
    )

    assert response.status_code == 422
    assert response.json()["error_code"] == "ERR_VALIDATION_001"


@pytest.mark.asyncio
async def test_already_resolved_delivery_returns_409(client, auth_headers, flow, vendor):
    parcel, mission = await flow.dropped_off()
    headers = auth_headers(vendor)
    await client.post(f"/v1/vendor/parcels/{parcel.id}/delivery/contest", json={"reason": "Damaged"}, headers=headers)

    response = await client.post(f"/v1/vendor/parcels/{parcel.id}/delivery/confirm", json={}, headers=headers)

    assert response.status_code == 409
    assert response.json()["error_code"] == "ERR_RESOLVED_001"


@pytest.mark.asyncio
async def test_rating_is_validated_by_schema(client, auth_headers, flow, vendor):
    parcel, mission = await flow.dropped_off()

    response = await client.post(
        f"/v1/vendor/parcels/{parcel.id}/delivery/confirm", json={"rating": 9}, headers=auth_headers(vendor)
    )

    assert response.status_code == 422
    assert response.json()["error_code"] == "ERR_VALIDATION"


@pytest.mark.asyncio
async def test_routes_require_authentication_and_role(client, auth_headers, vendor):
    response = await client.post("/v1/vendor/parcels", json=PARCEL_PAYLOAD)
    assert response.status_code in (401, 403)

    response = await client.get("/v1/carrier/missions/current", headers=auth_headers(vendor))
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_foreign_parcel_is_forbidden(client, auth_headers, flow, carrier):
    parcel = await flow.create_parcel()

    response = await client.get(f"/v1/parcels/{parcel.id}/delivery-status", headers=auth_headers(carrier))

    assert response.status_code == 403
    assert response.json()["error_code"] == "ERR_PERM_001"


@pytest.mark.asyncio
async def test_internal_sweep_requires_cron_secret(client):
    response = await client.post("/v1/internal/delivery/auto-confirm")
    assert response.status_code == 401

    response = await client.post(
        "/v1/internal/delivery/auto-confirm", headers={"X-Cron-Secret": "wrong"}
    )
    assert response.status_code == 401
    assert response.json()["error_code"] == "ERR_AUTH_001"

    response = await client.post(
        "/v1/internal/delivery/auto-confirm", headers={"X-Cron-Secret": "clé-secrète".encode("utf-8")}
    )
    assert response.status_code == 401
    assert response.json()["error_code"] == "ERR_AUTH_001"


@pytest.mark.asyncio
async def test_internal_sweep_confirms_expired(client, flow, clock, settlement_trigger):
    parcel, mission = await flow.dropped_off()
    clock.advance(hours=13)

    response = await client.post(
        "/v1/internal/delivery/auto-confirm", headers={"X-Cron-Secret": settings.cron_secret}
    )

    assert response.status_code == 200
    body = response.json()
    assert body["processed"] == 1
    assert body["results"] == [{"mission_id": mission.id, "outcome": "auto_confirmed", "error": None}]
    assert settlement_trigger.calls == [mission.id]


@pytest.mark.asyncio
async def test_internal_sweep_conflicts_while_locked(client, redis_mock):
    await redis_mock.set(SWEEP_LOCK_KEY, "other-worker")

    response = await client.post(
        "/v1/internal/delivery/auto-confirm", headers={"X-Cron-Secret": settings.cron_secret}
    )

    assert response.status_code == 409


@pytest.mark.asyncio
async def test_notifications_can_be_listed_and_read(client, auth_headers, flow, vendor):
    await flow.accepted()
    headers = auth_headers(vendor)

    response = await client.get("/v1/notifications", headers=headers)
    notifications = response.json()
    assert [n["event_type"] for n in notifications] == ["mission_accepted"]

    response = await client.patch(f"/v1/notifications/{notifications[0]['id']}/read", headers=headers)
    assert response.status_code == 200

    response = await client.get("/v1/notifications", params={"unread_only": True}, headers=headers)
    assert response.json() == []


@pytest.mark.asyncio
async def test_health(client):
    response = await client.get("/health")

    assert response.status_code == 200
    assert response.json()["redis"] == "up"
