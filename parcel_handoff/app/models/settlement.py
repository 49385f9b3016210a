"""
Settlement database model.

Payment obligation recorded once per confirmed mission.
"""

from sqlalchemy import Column, Integer, Float, ForeignKey, DateTime, Enum
from sqlalchemy.sql import func
from parcel_handoff.app.db.session import Base
from parcel_handoff.app.models.billing_enums import SettlementStatus


class Settlement(Base):
    """
    Settlement model.
    
    One row per delivered mission (unique ``mission_id``), vendor pays carrier.
    The payout itself is performed by the payment provider, which moves the
    row to PAID.
    """
    __tablename__ = "settlements"
    
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    
    mission_id = Column(Integer, ForeignKey('missions.id'), unique=True, nullable=False, index=True)
    
    # Parties
    vendor_id = Column(Integer, ForeignKey('users.id'), nullable=False, index=True)  # Payer
    carrier_id = Column(Integer, ForeignKey('users.id'), nullable=False, index=True)  # Payee
    
    # Financials
    total_amount = Column(Float, nullable=False)
    
    # Status
    status = Column(Enum(SettlementStatus), default=SettlementStatus.PENDING, nullable=False, index=True)
    paid_at = Column(DateTime(timezone=True), nullable=True)
    
    # Timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
    
    def __repr__(self):
        return f"<Settlement(id={self.id}, mission_id={self.mission_id}, status='{self.status.value}', amount={self.total_amount})>"
