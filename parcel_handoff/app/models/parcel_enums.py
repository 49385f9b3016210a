"""
Parcel enumerations.
"""

import enum


class ParcelStatus(str, enum.Enum):
    """
    Parcel status enumeration.
    
    Mirrors the status of the parcel's active mission:
        PENDING → ACCEPTED → IN_PROGRESS → PICKED_UP → DELIVERED
    A cancelled mission puts the parcel back to PENDING.
    CANCELLED is only reached when the vendor withdraws a PENDING parcel.
    """
    PENDING = "PENDING"
    ACCEPTED = "ACCEPTED"
    IN_PROGRESS = "IN_PROGRESS"
    PICKED_UP = "PICKED_UP"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"


class ParcelSize(str, enum.Enum):
    """Parcel size class."""
    SMALL = "SMALL"
    MEDIUM = "MEDIUM"
    LARGE = "LARGE"
    XLARGE = "XLARGE"


class PackagingStatus(str, enum.Enum):
    """Derived state of the packaging handshake."""
    PENDING = "PENDING"  # Nothing confirmed yet
    CARRIER_CONFIRMED = "CARRIER_CONFIRMED"  # Photo taken, vendor must confirm
    FULLY_CONFIRMED = "FULLY_CONFIRMED"  # Both parties confirmed, pickup unlocked
    REJECTED = "REJECTED"  # Vendor rejected the photo, carrier must redo it
