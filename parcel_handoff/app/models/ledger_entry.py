"""
Ledger Entry database model.

Immutable double-entry accounting records.
"""

from sqlalchemy import Column, Integer, Float, ForeignKey, DateTime, Enum, String
from sqlalchemy.sql import func
from parcel_handoff.app.db.session import Base
from parcel_handoff.app.models.billing_enums import LedgerEntryType


class LedgerEntry(Base):
    """
    Ledger Entry model.
    
    Every settlement writes two entries: DEBIT the vendor, CREDIT the carrier.
    NO updates or deletions allowed.
    """
    __tablename__ = "ledger_entries"
    
    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    
    settlement_id = Column(Integer, ForeignKey('settlements.id'), nullable=False, index=True)
    
    entry_type = Column(Enum(LedgerEntryType), nullable=False)
    account_owner_id = Column(Integer, ForeignKey('users.id'), nullable=False, index=True)
    
    amount = Column(Float, nullable=False)
    description = Column(String(255), nullable=True)
    
    # Immutable - no updated_at
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    
    def __repr__(self):
        return f"<LedgerEntry(id={self.id}, type='{self.entry_type.value}', amount={self.amount})>"
