"""
Exceptions for the IntentFlow SDK.
"""
from enum import Enum
from typing import Optional


class ErrorCode(str, Enum):
    """
    Error codes recorded on failed intents.

    The value is what ends up in ``Intent.error_code``.
    """
    WALLET_NOT_CONNECTED = "WalletNotConnected"
    WALLET_NOT_FOUND = "WalletNotFound"
    SIGNER_REJECTED = "SignerRejected"
    INSUFFICIENT_BALANCE = "InsufficientBalance"
    RESOURCE_ESTIMATE_TOO_HIGH = "ResourceEstimateTooHigh"
    INVALID_INTENT = "InvalidIntent"
    NOT_OWNER = "NotOwner"
    UNKNOWN_ASSET_TYPE = "UnknownAssetType"
    NOT_CONNECTED = "NotConnected"
    CONNECTION_PROBE_FAILED = "ConnectionProbeFailed"
    BROADCAST_REJECTED = "BroadcastRejected"
    NO_HASH_RETURNED = "NoHashReturned"
    TRANSACTION_FAILED = "TransactionFailed"
    UNKNOWN_INTENT_KIND = "UnknownIntentKind"
    DUPLICATE_HASH = "DuplicateHash"
    UNKNOWN_TRANSACTION = "UnknownTransaction"
    INTENT_NOT_FOUND = "IntentNotFound"
    INVALID_TRANSITION = "InvalidTransition"
    UNEXPECTED = "Unexpected"


class IntentFlowError(Exception):
    """Base exception for all IntentFlow errors."""
    code: ErrorCode = ErrorCode.UNEXPECTED

    def __init__(self, message: str, code: Optional[ErrorCode] = None):
        super().__init__(message)
        if code is not None:
            self.code = code

    @property
    def message(self) -> str:
        return str(self)


# Connectivity

class NotConnectedError(IntentFlowError):
    """Raised when an operation needs a live connection to the chain endpoint."""
    code = ErrorCode.NOT_CONNECTED

    def __init__(self, message: str = "Not connected to Anoma network"):
        super().__init__(message)


class ConnectionProbeError(IntentFlowError):
    """Raised when the status probe fails or times out."""
    code = ErrorCode.CONNECTION_PROBE_FAILED


# Validation

class InsufficientBalanceError(IntentFlowError):
    """Raised when the account balance does not cover the transaction value."""
    code = ErrorCode.INSUFFICIENT_BALANCE


class ResourceEstimateTooHighError(IntentFlowError):
    """Raised when the gas estimate exceeds the configured ceiling."""
    code = ErrorCode.RESOURCE_ESTIMATE_TOO_HIGH


class InvalidIntentError(IntentFlowError):
    """Raised when an intent is missing required fields or carries bad values."""
    code = ErrorCode.INVALID_INTENT


class UnknownIntentKindError(IntentFlowError):
    """Raised when an intent kind has no handler."""
    code = ErrorCode.UNKNOWN_INTENT_KIND


# Ownership

class NotOwnerError(IntentFlowError):
    """Raised when the acting address does not own the referenced asset."""
    code = ErrorCode.NOT_OWNER


class UnknownAssetTypeError(IntentFlowError):
    """Raised when an asset type identifier is not in the catalog."""
    code = ErrorCode.UNKNOWN_ASSET_TYPE


# Broadcast

class BroadcastRejectedError(IntentFlowError):
    """Raised when the endpoint refuses a broadcast or the request fails."""
    code = ErrorCode.BROADCAST_REJECTED

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class NoHashReturnedError(BroadcastRejectedError):
    """Raised when a broadcast reply carries no transaction hash."""
    code = ErrorCode.NO_HASH_RETURNED

    def __init__(self, message: str = "No transaction hash returned from broadcast"):
        super().__init__(message)


class TransactionFailedError(IntentFlowError):
    """Raised when a transaction was included but reported as failed."""
    code = ErrorCode.TRANSACTION_FAILED


# Capability

class WalletNotFoundError(IntentFlowError):
    """Raised when no wallet capability is available."""
    code = ErrorCode.WALLET_NOT_FOUND

    def __init__(self, message: str = "No wallet available"):
        super().__init__(message)


class WalletNotConnectedError(IntentFlowError):
    """Raised when a signer is required but none has been connected."""
    code = ErrorCode.WALLET_NOT_CONNECTED

    def __init__(self, message: str = "Wallet not connected"):
        super().__init__(message)


class SignerRejectedError(IntentFlowError):
    """Raised when the signer refuses or fails to sign."""
    code = ErrorCode.SIGNER_REJECTED


# Bookkeeping

class DuplicateHashError(IntentFlowError):
    """Raised when a transaction hash is recorded twice."""
    code = ErrorCode.DUPLICATE_HASH


class UnknownTransactionError(IntentFlowError):
    """Raised when updating a hash the tracker has never seen."""
    code = ErrorCode.UNKNOWN_TRANSACTION


class IntentNotFoundError(IntentFlowError):
    """Raised when an intent id is not known to the client."""
    code = ErrorCode.INTENT_NOT_FOUND


class InvalidTransitionError(IntentFlowError):
    """Raised when an intent status change would break the lifecycle order."""
    code = ErrorCode.INVALID_TRANSITION
