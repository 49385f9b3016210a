"""
Mission database model.

One carrier's assignment to one parcel, from acceptance to settlement.
"""

from sqlalchemy import (
    Column, Integer, String, Float, Boolean, DateTime, ForeignKey, Enum,
    Index, CheckConstraint, text
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from parcel_handoff.app.db.session import Base
from parcel_handoff.app.models.mission_enums import MissionStatus

_ACTIVE_MISSION_PREDICATE = text("status IN ('ACCEPTED', 'IN_PROGRESS', 'PICKED_UP')")


class Mission(Base):
    """
    Mission model.
    
    Resolution markers (client_confirmed_delivery_at, client_contested_at,
    auto_confirmed) are written once. An auto-confirmation also stamps
    client_confirmed_delivery_at with the sweep time; a contested mission
    never carries a confirmation.
    """
    __tablename__ = "missions"
    
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    
    parcel_id = Column(Integer, ForeignKey('parcels.id'), nullable=False, index=True)
    carrier_id = Column(Integer, ForeignKey('users.id'), nullable=False, index=True)
    
    status = Column(Enum(MissionStatus), default=MissionStatus.ACCEPTED, nullable=False, index=True)
    
    # Transition timestamps
    accepted_at = Column(DateTime(timezone=True), nullable=False)
    departed_at = Column(DateTime(timezone=True), nullable=True)
    arrived_at = Column(DateTime(timezone=True), nullable=True)
    picked_up_at = Column(DateTime(timezone=True), nullable=True)
    delivered_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    
    # Journey to pickup
    departure_latitude = Column(Float, nullable=True)
    departure_longitude = Column(Float, nullable=True)
    estimated_arrival = Column(DateTime(timezone=True), nullable=True)
    
    # Drop-off proof and confirmation window
    delivery_proof_url = Column(String(500), nullable=True)
    delivery_confirmation_deadline = Column(DateTime(timezone=True), nullable=True, index=True)
    
    # Resolution
    client_confirmed_delivery_at = Column(DateTime(timezone=True), nullable=True)
    client_contested_at = Column(DateTime(timezone=True), nullable=True)
    contest_reason = Column(String(500), nullable=True)
    auto_confirmed = Column(Boolean, default=False, nullable=False)
    
    cancellation_reason = Column(String(500), nullable=True)
    
    # Timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
    
    parcel = relationship("Parcel", lazy="selectin")
    
    __table_args__ = (
        # Only one active mission per parcel
        Index('ix_missions_active_parcel', 'parcel_id', unique=True,
              postgresql_where=_ACTIVE_MISSION_PREDICATE,
              sqlite_where=_ACTIVE_MISSION_PREDICATE),
        CheckConstraint(
            "client_contested_at IS NULL OR "
            "(client_confirmed_delivery_at IS NULL AND auto_confirmed = false)",
            name="ck_missions_contest_excludes_confirm",
        ),
        CheckConstraint(
            "auto_confirmed = false OR client_confirmed_delivery_at IS NOT NULL",
            name="ck_missions_auto_confirm_stamped",
        ),
    )
    
    def __repr__(self):
        return f"<Mission(id={self.id}, parcel_id={self.parcel_id}, status='{self.status.value}')>"
