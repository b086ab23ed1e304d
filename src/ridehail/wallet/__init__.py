from .ledger import EarningsSummary, LedgerEntry, LedgerEntryStatus, LedgerEntryType, WalletLedger

__all__ = [
    "EarningsSummary",
    "LedgerEntry",
    "LedgerEntryStatus",
    "LedgerEntryType",
    "WalletLedger",
]
