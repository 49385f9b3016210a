"""
Notification Service.

``NotificationDispatcher`` is the fire-and-forget collaborator the
lifecycle services call after a transition commits: it stores an in-app
copy and pushes to the recipient's device through a circuit breaker.
Nothing it does can fail the operation that triggered it.
"""

import logging
from typing import Optional, Dict, Any

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy import update

from parcel_handoff.app.core.clock import utcnow
from parcel_handoff.app.core.reliability import CircuitBreaker, CircuitOpenError, build_push_circuit_breaker
from parcel_handoff.app.models.notification import Notification, NotificationType
from parcel_handoff.app.models.user import User

logger = logging.getLogger(__name__)


class LoggingPushTransport:
    """
    Push gateway used until a provider is configured.

    A real transport exposes the same ``push`` coroutine and raises on
    delivery failure so the circuit breaker can count it.
    """

    async def push(self, device_token: str, title: str, body: str, data: Dict[str, Any]) -> None:
        logger.info("Push to device %s...: %s (%s)", device_token[:12], title, data.get("type"))


class NotificationDispatcher:

    def __init__(
        self,
        session_factory: async_sessionmaker,
        transport=None,
        circuit_breaker: Optional[CircuitBreaker] = None,
    ):
        self._session_factory = session_factory
        self._transport = transport or LoggingPushTransport()
        self._breaker = circuit_breaker or build_push_circuit_breaker()

    async def send(
        self,
        recipient_id: int,
        title: str,
        body: str,
        payload: Dict[str, Any],
        category: NotificationType = NotificationType.INFO,
    ) -> None:
        """
        Notify one user. ``payload["type"]`` is the event key clients route on.

        Failures are logged and swallowed.
        """
        event_type = payload.get("type", "info")
        try:
            async with self._session_factory() as session:
                user = await session.get(User, recipient_id)
                pushed = False
                if user is not None and user.fcm_token:
                    pushed = await self._push(user.fcm_token, title, body, payload)

                session.add(Notification(
                    user_id=recipient_id,
                    type=category,
                    event_type=event_type,
                    title=title,
                    message=body,
                    metadata_payload=payload,
                    pushed=pushed,
                ))
                await session.commit()
        except Exception:
            logger.exception("Failed to dispatch %s notification to user %s", event_type, recipient_id)

    async def _push(self, device_token: str, title: str, body: str, payload: Dict[str, Any]) -> bool:
        try:
            await self._breaker.call(self._transport.push, device_token, title, body, payload)
            return True
        except CircuitOpenError:
            logger.warning("Push circuit open, skipping push for %s", payload.get("type"))
        except Exception:
            logger.warning("Push delivery failed for %s", payload.get("type"), exc_info=True)
        return False


class NotificationService:
    
    @staticmethod
    async def mark_read(db: AsyncSession, notification_id: int, user_id: int) -> bool:
        """Mark a notification as read."""
        stmt = update(Notification).where(
            Notification.id == notification_id,
            Notification.user_id == user_id
        ).values(
            is_read=True,
            read_at=utcnow()
        )
        result = await db.execute(stmt)
        return result.rowcount > 0

    @staticmethod
    async def mark_all_read(db: AsyncSession, user_id: int) -> int:
        """Mark all notifications for user as read."""
        stmt = update(Notification).where(
            Notification.user_id == user_id,
            Notification.is_read == False
        ).values(
            is_read=True,
            read_at=utcnow()
        )
        result = await db.execute(stmt)
        return result.rowcount
