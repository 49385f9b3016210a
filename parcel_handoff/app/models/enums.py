"""
User roles enumeration.

Defines the actor types of the parcel hand-off platform.
"""

import enum


class UserRole(str, enum.Enum):
    """
    User role enumeration.
    
    Roles:
        VENDOR: Owns parcels and confirms packaging, pickup and delivery
        CARRIER: Accepts missions and moves parcels
        ADMIN: Operations staff
    """
    VENDOR = "VENDOR"
    CARRIER = "CARRIER"
    ADMIN = "ADMIN"
