"""
Asset ledger for the IntentFlow SDK.

Tracks Glitch NFTs locally, enforces single ownership and monotonic
levels, and persists through a pluggable ``LedgerStore``.
"""
from .catalog import ASSET_TYPES
from .manager import AssetLedger, new_asset_id
from .store import FileLedgerStore, LedgerStore, MemoryLedgerStore, LEDGER_KEY

__all__ = [
    "ASSET_TYPES",
    "AssetLedger",
    "FileLedgerStore",
    "LedgerStore",
    "MemoryLedgerStore",
    "LEDGER_KEY",
    "new_asset_id",
]
