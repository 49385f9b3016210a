"""
Notification dispatch and circuit breaker tests.
"""

import pytest
from sqlalchemy import select

from parcel_handoff.app.core.reliability import CircuitBreaker, CircuitOpenError
from parcel_handoff.app.models.notification import Notification, NotificationType
from parcel_handoff.app.models.user import User
from parcel_handoff.app.services.geo import estimate_eta_minutes, haversine_distance
from parcel_handoff.app.services.notification_service import NotificationDispatcher


class FailingTransport:
    def __init__(self):
        self.calls = 0

    async def push(self, device_token, title, body, data):
        self.calls += 1
        raise ConnectionError("gateway timeout")


@pytest.mark.asyncio
async def test_circuit_breaker_activates():
    """Circuit opens after threshold failures."""
    cb = CircuitBreaker(failure_threshold=2, reset_timeout=60)
    
    async def failing_func():
        raise ValueError("Boom")
        
    for _ in range(2):
        with pytest.raises(ValueError):
            await cb.call(failing_func)
        
    with pytest.raises(CircuitOpenError):
        await cb.call(failing_func)


@pytest.mark.asyncio
async def test_circuit_breaker_resets_after_success():
    cb = CircuitBreaker(failure_threshold=3, reset_timeout=60)

    async def failing_func():
        raise ValueError("Boom")

    async def ok_func():
        return "ok"

    with pytest.raises(ValueError):
        await cb.call(failing_func)
    assert await cb.call(ok_func) == "ok"
    assert cb.failures == 0
    assert cb.state == "CLOSED"


@pytest.mark.asyncio
async def test_dispatcher_persists_notification_when_push_fails(session_factory, vendor, db_session):
    async with session_factory() as session:
        user = await session.get(User, vendor.id)
        user.fcm_token = "device-token-0123456789"
        await session.commit()

    transport = FailingTransport()
    dispatcher = NotificationDispatcher(
        session_factory, transport=transport, circuit_breaker=CircuitBreaker(failure_threshold=1)
    )

    await dispatcher.send(vendor.id, "Hello", "First", {"type": "carrier_arrived"}, NotificationType.MISSION_UPDATE)
    await dispatcher.send(vendor.id, "Hello", "Second", {"type": "carrier_arrived"})

    # Second push short-circuited by the open breaker
    assert transport.calls == 1
    rows = (await db_session.execute(select(Notification).order_by(Notification.id))).scalars().all()
    assert [r.message for r in rows] == ["First", "Second"]
    assert all(r.pushed is False for r in rows)
    assert rows[0].event_type == "carrier_arrived"
    assert rows[0].type == NotificationType.MISSION_UPDATE


@pytest.mark.asyncio
async def test_dispatcher_never_raises(session_factory):
    dispatcher = NotificationDispatcher(session_factory)

    # Unknown recipient violates the foreign key; the failure is only logged
    await dispatcher.send(424242, "Hello", "Nobody home", {"type": "info"})


def test_eta_rounds_up_whole_minutes():
    distance = haversine_distance(45.7578, 4.8320, 45.7640, 4.8357)

    assert 0.7 < distance < 0.8
    assert estimate_eta_minutes(distance, 3.0) == 3
    assert estimate_eta_minutes(0.0, 3.0) == 0
