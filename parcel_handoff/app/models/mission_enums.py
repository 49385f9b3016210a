"""
Mission enumerations.
"""

import enum


class MissionStatus(str, enum.Enum):
    """
    Mission status enumeration.
    
    Status flow:
        ACCEPTED → IN_PROGRESS → PICKED_UP → DELIVERED
        ACCEPTED → CANCELLED
    Drop-off proof does not move the mission: it stays PICKED_UP until the
    delivery is confirmed by the vendor or by the sweep.
    """
    ACCEPTED = "ACCEPTED"  # Carrier took the job
    IN_PROGRESS = "IN_PROGRESS"  # Carrier heading to pickup
    PICKED_UP = "PICKED_UP"  # Carrier has the parcel
    DELIVERED = "DELIVERED"  # Delivery confirmed (explicitly or automatically)
    CANCELLED = "CANCELLED"  # Carrier withdrew before pickup


ACTIVE_MISSION_STATUSES = (
    MissionStatus.ACCEPTED,
    MissionStatus.IN_PROGRESS,
    MissionStatus.PICKED_UP,
)

TERMINAL_MISSION_STATUSES = (
    MissionStatus.DELIVERED,
    MissionStatus.CANCELLED,
)


class DeliveryStatus(str, enum.Enum):
    """Delivery confirmation state reported to vendor and carrier."""
    PENDING = "PENDING"  # No drop-off proof yet
    AWAITING_CONFIRMATION = "AWAITING_CONFIRMATION"  # Proof submitted, window open or elapsed
    CONFIRMED = "CONFIRMED"  # Vendor confirmed
    CONTESTED = "CONTESTED"  # Vendor contested, routed to mediation
    AUTO_CONFIRMED = "AUTO_CONFIRMED"  # Resolved by the sweep
