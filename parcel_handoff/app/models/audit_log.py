"""
Audit Log Database Model.

Trail of every mission/parcel transition, written in the same transaction
as the transition itself.
"""

from sqlalchemy import Column, Integer, String, DateTime, JSON
from sqlalchemy.sql import func
from parcel_handoff.app.db.session import Base


class AuditLog(Base):
    """
    Audit log model.
    
    ``actor_id`` is None for system actions (the auto-confirmation sweep).
    """
    __tablename__ = "audit_logs"
    
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    
    actor_id = Column(Integer, index=True, nullable=True)
    actor_username = Column(String(100), nullable=True)
    
    action = Column(String(100), nullable=False, index=True)
    
    # Subject of the transition
    mission_id = Column(Integer, index=True, nullable=True)
    parcel_id = Column(Integer, index=True, nullable=True)
    
    meta_data = Column(JSON, nullable=True)
    
    timestamp = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)
    
    def __repr__(self):
        return f"<AuditLog(id={self.id}, action='{self.action}', actor={self.actor_username}, mission={self.mission_id})>"
