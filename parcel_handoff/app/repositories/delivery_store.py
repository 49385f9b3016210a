"""
Delivery Record Store.

Narrow repository over the Parcel/Mission pair. Services open one
transaction per lifecycle operation with ``begin()`` and express every
state change as a conditional write: ``UPDATE ... WHERE <preconditions>``.
A write that matches no row lost a race (or its precondition no longer
holds) and the caller decides how to report it.
"""

from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncIterator, Iterable, List, Optional, Sequence

from sqlalchemy import select, update, func
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

from parcel_handoff.app.models.carrier_profile import CarrierProfile
from parcel_handoff.app.models.mission import Mission
from parcel_handoff.app.models.mission_enums import MissionStatus
from parcel_handoff.app.models.parcel import Parcel
from parcel_handoff.app.models.parcel_enums import ParcelStatus
from parcel_handoff.app.models.review import Review


def unresolved_delivery_conditions() -> list:
    """Predicate shared by confirm, contest and the sweep: proof submitted, nothing resolved yet."""
    return [
        Mission.status == MissionStatus.PICKED_UP,
        Mission.delivered_at.is_not(None),
        Mission.client_confirmed_delivery_at.is_(None),
        Mission.client_contested_at.is_(None),
        Mission.auto_confirmed == False,  # noqa: E712
    ]


def expired_delivery_conditions(now: datetime) -> list:
    """Sweep selection: unresolved deliveries whose confirmation deadline has passed."""
    return unresolved_delivery_conditions() + [
        Mission.delivery_confirmation_deadline.is_not(None),
        Mission.delivery_confirmation_deadline < now,
    ]


class DeliveryStore:
    """Record Store for parcels and missions."""

    def __init__(self, session_factory: async_sessionmaker):
        self._session_factory = session_factory

    @asynccontextmanager
    async def begin(self) -> AsyncIterator[AsyncSession]:
        """One atomic unit: commits on exit, rolls back if the block raises."""
        async with self._session_factory() as session:
            async with session.begin():
                yield session

    @asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        """Read-only session."""
        async with self._session_factory() as session:
            yield session

    # ------------------------------------------------------------------
    # Read shapes
    # ------------------------------------------------------------------

    async def get_mission_with_parcel(self, session: AsyncSession, mission_id: int) -> Optional[Mission]:
        result = await session.execute(
            select(Mission)
            .options(selectinload(Mission.parcel).selectinload(Parcel.pickup_address))
            .where(Mission.id == mission_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_parcel_with_address(self, session: AsyncSession, parcel_id: int) -> Optional[Parcel]:
        result = await session.execute(
            select(Parcel)
            .options(selectinload(Parcel.pickup_address))
            .where(Parcel.id == parcel_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_current_mission_for_parcel(self, session: AsyncSession, parcel_id: int) -> Optional[Mission]:
        """Latest mission of the parcel that was not cancelled."""
        result = await session.execute(
            select(Mission)
            .options(selectinload(Mission.parcel).selectinload(Parcel.pickup_address))
            .where(Mission.parcel_id == parcel_id, Mission.status != MissionStatus.CANCELLED)
            .order_by(Mission.id.desc())
            .limit(1)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def list_pending_parcels(self, session: AsyncSession, exclude_vendor_id: int) -> Sequence[Parcel]:
        result = await session.execute(
            select(Parcel)
            .options(selectinload(Parcel.pickup_address))
            .where(Parcel.status == ParcelStatus.PENDING, Parcel.vendor_id != exclude_vendor_id)
        )
        return result.scalars().all()

    async def list_carrier_missions(
        self,
        session: AsyncSession,
        carrier_id: int,
        statuses: Iterable[MissionStatus],
        offset: int = 0,
        limit: Optional[int] = None,
    ) -> Sequence[Mission]:
        query = (
            select(Mission)
            .options(selectinload(Mission.parcel).selectinload(Parcel.pickup_address))
            .where(Mission.carrier_id == carrier_id, Mission.status.in_(list(statuses)))
            .order_by(Mission.accepted_at.desc(), Mission.id.desc())
            .offset(offset)
        )
        if limit is not None:
            query = query.limit(limit)
        result = await session.execute(query)
        return result.scalars().all()

    async def count_carrier_missions(
        self, session: AsyncSession, carrier_id: int, statuses: Iterable[MissionStatus]
    ) -> int:
        result = await session.execute(
            select(func.count(Mission.id)).where(
                Mission.carrier_id == carrier_id, Mission.status.in_(list(statuses))
            )
        )
        return result.scalar() or 0

    async def find_expired_unresolved_missions(self, session: AsyncSession, now: datetime) -> List[int]:
        """IDs of missions the sweep must auto-confirm, oldest deadline first."""
        result = await session.execute(
            select(Mission.id)
            .where(*expired_delivery_conditions(now))
            .order_by(Mission.delivery_confirmation_deadline.asc())
        )
        return list(result.scalars().all())

    # ------------------------------------------------------------------
    # Conditional writes
    # ------------------------------------------------------------------

    async def update_mission_if(self, session: AsyncSession, mission_id: int, conditions: list, **values) -> bool:
        """Apply ``values`` only if every condition still holds. Returns False when no row matched."""
        result = await session.execute(
            update(Mission)
            .where(Mission.id == mission_id, *conditions)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def update_parcel_if(self, session: AsyncSession, parcel_id: int, conditions: list, **values) -> bool:
        """Apply ``values`` only if every condition still holds. Returns False when no row matched."""
        result = await session.execute(
            update(Parcel)
            .where(Parcel.id == parcel_id, *conditions)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def add(self, session: AsyncSession, instance) -> None:
        session.add(instance)
        await session.flush()

    # ------------------------------------------------------------------
    # Carrier statistics
    # ------------------------------------------------------------------

    async def get_carrier_profile(self, session: AsyncSession, carrier_id: int) -> Optional[CarrierProfile]:
        result = await session.execute(select(CarrierProfile).where(CarrierProfile.user_id == carrier_id))
        return result.scalar_one_or_none()

    async def increment_carrier_deliveries(self, session: AsyncSession, carrier_id: int) -> None:
        result = await session.execute(
            update(CarrierProfile)
            .where(CarrierProfile.user_id == carrier_id)
            .values(total_deliveries=CarrierProfile.total_deliveries + 1)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            session.add(CarrierProfile(user_id=carrier_id, total_deliveries=1))
            await session.flush()

    async def record_review(self, session: AsyncSession, review: Review) -> Optional[float]:
        """
        Store a review unless the reviewer already rated this mission, then
        recompute the carrier's running average from all of its reviews.

        Returns the new average, or None when the review was a duplicate.
        """
        existing = await session.execute(
            select(Review.id).where(
                Review.mission_id == review.mission_id,
                Review.reviewer_id == review.reviewer_id,
            )
        )
        if existing.scalar_one_or_none() is not None:
            return None

        session.add(review)
        await session.flush()

        average = (await session.execute(
            select(func.avg(Review.rating)).where(Review.reviewee_id == review.reviewee_id)
        )).scalar()
        await session.execute(
            update(CarrierProfile)
            .where(CarrierProfile.user_id == review.reviewee_id)
            .values(average_rating=average)
            .execution_options(synchronize_session=False)
        )
        return float(average) if average is not None else None
