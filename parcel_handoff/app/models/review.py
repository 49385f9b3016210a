"""
Review database model.

Optional rating left by the vendor when confirming a delivery.
"""

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.sql import func
from parcel_handoff.app.db.session import Base


class Review(Base):
    __tablename__ = "reviews"
    
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    
    parcel_id = Column(Integer, ForeignKey('parcels.id'), nullable=False, index=True)
    mission_id = Column(Integer, ForeignKey('missions.id'), nullable=False)
    reviewer_id = Column(Integer, ForeignKey('users.id'), nullable=False)
    reviewee_id = Column(Integer, ForeignKey('users.id'), nullable=False, index=True)
    
    rating = Column(Integer, nullable=False)
    comment = Column(String(1000), nullable=True)
    
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    
    __table_args__ = (
        UniqueConstraint('mission_id', 'reviewer_id', name='uq_reviews_mission_reviewer'),
    )
    
    def __repr__(self):
        return f"<Review(id={self.id}, reviewee={self.reviewee_id}, rating={self.rating})>"
