"""
Service wiring.

Builds the delivery services around one session factory. The application
lifespan stores the result on ``app.state.services``; tests build their
own against an in-memory database.
"""

from dataclasses import dataclass
from typing import Optional

from sqlalchemy.ext.asyncio import async_sessionmaker

from parcel_handoff.app.core.clock import Clock, utcnow
from parcel_handoff.app.core.config import settings
from parcel_handoff.app.repositories.delivery_store import DeliveryStore
from parcel_handoff.app.services.delivery_confirmation import DeliveryConfirmationService
from parcel_handoff.app.services.mission_lifecycle import MissionLifecycleService
from parcel_handoff.app.services.notification_service import NotificationDispatcher
from parcel_handoff.app.services.packaging_handshake import PackagingHandshakeService
from parcel_handoff.app.services.parcel_service import ParcelService
from parcel_handoff.app.services.pickup_authorization import PickupAuthorizationService
from parcel_handoff.app.services.settlement_trigger import LedgerSettlementTrigger, SettlementTrigger


@dataclass
class DeliveryServices:
    store: DeliveryStore
    notifier: NotificationDispatcher
    settlement_trigger: SettlementTrigger
    parcels: ParcelService
    lifecycle: MissionLifecycleService
    packaging: PackagingHandshakeService
    pickup: PickupAuthorizationService
    delivery: DeliveryConfirmationService


def build_services(
    session_factory: async_sessionmaker,
    clock: Clock = utcnow,
    notifier: Optional[NotificationDispatcher] = None,
    settlement_trigger: Optional[SettlementTrigger] = None,
) -> DeliveryServices:
    store = DeliveryStore(session_factory)
    notifier = notifier or NotificationDispatcher(session_factory)
    settlement_trigger = settlement_trigger or LedgerSettlementTrigger(session_factory)

    lifecycle = MissionLifecycleService(
        store,
        notifier,
        clock=clock,
        confirmation_window_hours=settings.delivery_confirmation_window_hours,
        eta_minutes_per_km=settings.eta_minutes_per_km,
    )
    return DeliveryServices(
        store=store,
        notifier=notifier,
        settlement_trigger=settlement_trigger,
        parcels=ParcelService(store),
        lifecycle=lifecycle,
        packaging=PackagingHandshakeService(store, notifier, clock=clock),
        pickup=PickupAuthorizationService(store, lifecycle),
        delivery=DeliveryConfirmationService(
            store, notifier, settlement_trigger, session_factory, clock=clock
        ),
    )
