"""
IntentFlow SDK - turn user intents into signed, tracked chain transactions.
"""
from .client import IntentClient
from .connection import ConnectionManager
from .exceptions import (
    ErrorCode, IntentFlowError, NotConnectedError, ConnectionProbeError,
    InsufficientBalanceError, ResourceEstimateTooHighError, InvalidIntentError,
    UnknownIntentKindError, NotOwnerError, UnknownAssetTypeError,
    BroadcastRejectedError, NoHashReturnedError, TransactionFailedError,
    WalletNotFoundError, WalletNotConnectedError, SignerRejectedError,
    DuplicateHashError, UnknownTransactionError, IntentNotFoundError,
    InvalidTransitionError
)
from .ledger import AssetLedger, FileLedgerStore, MemoryLedgerStore, ASSET_TYPES
from .models import (
    Asset, AssetRarity, ConnectionState, ConnectionStatus, Intent, IntentKind,
    IntentStatus, SignedIntent, TransactionRecord, TxStatus, TxStatusResult
)
from .processor import IntentLifecycleProcessor
from .tracker import TransactionTracker
from .version import __version__

__all__ = [
    "IntentClient",
    "ConnectionManager",
    "TransactionTracker",
    "IntentLifecycleProcessor",
    "AssetLedger",
    "FileLedgerStore",
    "MemoryLedgerStore",
    "ASSET_TYPES",
    "Asset",
    "AssetRarity",
    "ConnectionState",
    "ConnectionStatus",
    "Intent",
    "IntentKind",
    "IntentStatus",
    "SignedIntent",
    "TransactionRecord",
    "TxStatus",
    "TxStatusResult",
    "ErrorCode",
    "IntentFlowError",
    "NotConnectedError",
    "ConnectionProbeError",
    "InsufficientBalanceError",
    "ResourceEstimateTooHighError",
    "InvalidIntentError",
    "UnknownIntentKindError",
    "NotOwnerError",
    "UnknownAssetTypeError",
    "BroadcastRejectedError",
    "NoHashReturnedError",
    "TransactionFailedError",
    "WalletNotFoundError",
    "WalletNotConnectedError",
    "SignerRejectedError",
    "DuplicateHashError",
    "UnknownTransactionError",
    "IntentNotFoundError",
    "InvalidTransitionError",
    "__version__",
]
