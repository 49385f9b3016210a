"""
Carrier profile database model.

Running delivery statistics, updated in the same transaction that
confirms a delivery.
"""

from sqlalchemy import Column, Integer, Float, Boolean, DateTime, ForeignKey
from sqlalchemy.sql import func
from parcel_handoff.app.db.session import Base


class CarrierProfile(Base):
    __tablename__ = "carrier_profiles"
    
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey('users.id'), unique=True, nullable=False, index=True)
    
    total_deliveries = Column(Integer, default=0, nullable=False)
    average_rating = Column(Float, nullable=True)
    is_available = Column(Boolean, default=True, nullable=False)
    
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
    
    def __repr__(self):
        return f"<CarrierProfile(user_id={self.user_id}, deliveries={self.total_deliveries}, rating={self.average_rating})>"
