"""
Parcel database model.

A parcel is the shippable item a vendor hands to a carrier. Its status
mirrors the active mission; the packaging handshake lives here because it
describes the physical item, whichever carrier ends up moving it.
"""

from sqlalchemy import Column, Integer, String, Float, DateTime, ForeignKey, Enum
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from parcel_handoff.app.db.session import Base
from parcel_handoff.app.models.parcel_enums import ParcelStatus, ParcelSize


class Parcel(Base):
    """
    Parcel model.
    
    Invariant: ``assigned_carrier_id`` is set if and only if the parcel has an
    active (ACCEPTED / IN_PROGRESS / PICKED_UP) mission or was delivered by it.
    """
    __tablename__ = "parcels"
    
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    
    # Ownership
    vendor_id = Column(Integer, ForeignKey('users.id'), nullable=False, index=True)
    assigned_carrier_id = Column(Integer, ForeignKey('users.id'), nullable=True, index=True)
    pickup_address_id = Column(Integer, ForeignKey('addresses.id'), nullable=False)
    
    # Item and drop-off
    description = Column(String(500), nullable=True)
    size = Column(Enum(ParcelSize), nullable=False)
    dropoff_name = Column(String(100), nullable=False)
    dropoff_address = Column(String(255), nullable=False)
    price = Column(Float, nullable=False)
    
    # Status
    status = Column(Enum(ParcelStatus), default=ParcelStatus.PENDING, nullable=False, index=True)
    
    # Pickup authorization (single-use code exchanged in person)
    pickup_code = Column(String(10), nullable=False)
    
    # Packaging handshake (carrier first, then vendor)
    packaging_photo_url = Column(String(500), nullable=True)
    packaging_confirmed_at = Column(DateTime(timezone=True), nullable=True)
    vendor_packaging_confirmed_at = Column(DateTime(timezone=True), nullable=True)
    packaging_rejected_at = Column(DateTime(timezone=True), nullable=True)
    packaging_rejection_reason = Column(String(500), nullable=True)
    
    # Timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
    
    pickup_address = relationship("Address", lazy="selectin")
    
    def __repr__(self):
        return f"<Parcel(id={self.id}, vendor_id={self.vendor_id}, status='{self.status.value}')>"
