"""
Notification database model.

In-app copy of every alert sent by the notification dispatcher.
"""

from sqlalchemy import Column, Integer, String, Text, Boolean, DateTime, ForeignKey, JSON, Enum
from sqlalchemy.sql import func
from parcel_handoff.app.db.session import Base
import enum


class NotificationType(str, enum.Enum):
    INFO = "INFO"
    MISSION_UPDATE = "MISSION_UPDATE"
    PACKAGING_UPDATE = "PACKAGING_UPDATE"
    DELIVERY_UPDATE = "DELIVERY_UPDATE"


class Notification(Base):
    """
    In-App Notification.

    ``event_type`` is the machine key clients route on
    (e.g. ``carrier_departed``, ``delivery_auto_confirmed``).
    """
    __tablename__ = "notifications"
    
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    
    # Recipient
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    
    # Content
    type = Column(Enum(NotificationType), default=NotificationType.INFO, nullable=False)
    event_type = Column(String(50), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    metadata_payload = Column(JSON, nullable=True)
    
    # Push delivery outcome
    pushed = Column(Boolean, default=False, nullable=False)
    
    # State
    is_read = Column(Boolean, default=False, nullable=False, index=True)
    read_at = Column(DateTime(timezone=True), nullable=True)
    
    # Timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    
    def __repr__(self):
        return f"<Notification(id={self.id}, user={self.user_id}, event='{self.event_type}')>"
