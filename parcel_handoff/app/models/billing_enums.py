"""
Settlement enumerations.
"""

import enum


class SettlementStatus(str, enum.Enum):
    """Settlement status enumeration."""
    PENDING = "PENDING"  # Recorded on delivery confirmation, waiting for payout
    PAID = "PAID"  # Payout completed by the payment provider


class LedgerEntryType(str, enum.Enum):
    """Ledger entry type enumeration."""
    DEBIT = "DEBIT"  # Money leaving the account
    CREDIT = "CREDIT"  # Money entering the account
