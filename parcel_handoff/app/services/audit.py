"""
Audit logging service for mission and parcel transitions.

Entries are added to the caller's session so they commit (or roll back)
together with the transition they describe.
"""

from typing import Optional, Dict, Any, List
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, desc
from parcel_handoff.app.models.audit_log import AuditLog


class AuditAction:
    """Standardized audit action constants."""
    # Parcels
    PARCEL_CREATED = "PARCEL_CREATED"
    PARCEL_CANCELLED = "PARCEL_CANCELLED"

    # Mission lifecycle
    MISSION_ACCEPTED = "MISSION_ACCEPTED"
    JOURNEY_STARTED = "JOURNEY_STARTED"
    ARRIVED_AT_PICKUP = "ARRIVED_AT_PICKUP"
    PARCEL_PICKED_UP = "PARCEL_PICKED_UP"
    DELIVERY_PROOF_SUBMITTED = "DELIVERY_PROOF_SUBMITTED"
    MISSION_CANCELLED = "MISSION_CANCELLED"

    # Packaging handshake
    PACKAGING_CARRIER_CONFIRMED = "PACKAGING_CARRIER_CONFIRMED"
    PACKAGING_VENDOR_CONFIRMED = "PACKAGING_VENDOR_CONFIRMED"
    PACKAGING_REJECTED = "PACKAGING_REJECTED"

    # Delivery resolution
    DELIVERY_CONFIRMED = "DELIVERY_CONFIRMED"
    DELIVERY_CONTESTED = "DELIVERY_CONTESTED"
    DELIVERY_AUTO_CONFIRMED = "DELIVERY_AUTO_CONFIRMED"

    # Billing
    SETTLEMENT_CREATED = "SETTLEMENT_CREATED"


async def log_event(
    db: AsyncSession,
    action: str,
    actor_id: Optional[int] = None,
    actor_username: Optional[str] = None,
    mission_id: Optional[int] = None,
    parcel_id: Optional[int] = None,
    metadata: Optional[Dict[str, Any]] = None
) -> AuditLog:
    """
    Record a transition in the audit log.
    
    Args:
        db: Session of the transaction performing the transition
        action: Action being performed (use AuditAction constants)
        actor_id: ID of user performing the action (None for the sweep)
        actor_username: Username of actor
        mission_id: Mission affected
        parcel_id: Parcel affected
        metadata: Additional context as JSON
        
    Returns:
        Created AuditLog instance (flushed, not committed)
    """
    audit_log = AuditLog(
        actor_id=actor_id,
        actor_username=actor_username,
        action=action,
        mission_id=mission_id,
        parcel_id=parcel_id,
        meta_data=metadata,
    )
    
    db.add(audit_log)
    await db.flush()
    
    return audit_log


async def get_mission_audit_trail(
    db: AsyncSession,
    mission_id: int,
    limit: int = 100
) -> List[AuditLog]:
    """
    Retrieve the audit trail of one mission, oldest first.
    
    Args:
        db: Database session
        mission_id: Mission to inspect
        limit: Maximum number of records to return
    """
    query = (
        select(AuditLog)
        .where(AuditLog.mission_id == mission_id)
        .order_by(AuditLog.timestamp, AuditLog.id)
        .limit(limit)
    )
    result = await db.execute(query)
    return list(result.scalars().all())


async def get_parcel_audit_trail(
    db: AsyncSession,
    parcel_id: int,
    limit: int = 100
) -> List[AuditLog]:
    """Audit trail of a parcel across all of its missions, most recent first."""
    query = (
        select(AuditLog)
        .where(AuditLog.parcel_id == parcel_id)
        .order_by(desc(AuditLog.timestamp), desc(AuditLog.id))
        .limit(limit)
    )
    result = await db.execute(query)
    return list(result.scalars().all())
