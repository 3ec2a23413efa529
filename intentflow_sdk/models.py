"""
Data models for the IntentFlow SDK.
"""
import itertools
import time
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Any, Optional, List

from pydantic import BaseModel, ConfigDict, Field

from .exceptions import ErrorCode, InvalidTransitionError


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def now_ms() -> int:
    return int(time.time() * 1000)


class IntentKind(str, Enum):
    SWAP = "swap"
    BRIDGE = "bridge"
    STAKE = "stake"
    YIELD = "yield"
    TRADE = "trade"


class IntentStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


# Allowed forward moves; terminal states have none
_INTENT_TRANSITIONS = {
    IntentStatus.PENDING: {IntentStatus.PROCESSING},
    IntentStatus.PROCESSING: {IntentStatus.COMPLETED, IntentStatus.FAILED},
    IntentStatus.COMPLETED: set(),
    IntentStatus.FAILED: set(),
}

_intent_sequence = itertools.count(1)


def new_intent_id() -> str:
    """Create an intent id that sorts by creation order within a process."""
    return f"intent-{now_ms()}-{next(_intent_sequence):06d}"


class Intent(BaseModel):
    """A user-declared goal that is turned into one signed transaction."""
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_intent_id)
    kind: IntentKind
    status: IntentStatus = IntentStatus.PENDING
    chains: List[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utc_now)
    description: Optional[str] = None
    amount: Optional[str] = None
    from_token: Optional[str] = None
    to_token: Optional[str] = None
    from_chain: Optional[str] = None
    to_chain: Optional[str] = None
    give_asset_id: Optional[str] = None
    receive_asset_type: Optional[str] = None
    owner: Optional[str] = None
    tx_hash: Optional[str] = None
    error: Optional[str] = None
    error_code: Optional[ErrorCode] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in (IntentStatus.COMPLETED, IntentStatus.FAILED)

    def transition(self, status: IntentStatus, **updates: Any) -> "Intent":
        """
        Return a copy of this intent moved to ``status``.

        Args:
            status: Target status
            **updates: Extra fields to set on the copy

        Returns:
            New Intent instance

        Raises:
            InvalidTransitionError: If the move is not pending -> processing
                or processing -> completed/failed
        """
        if status not in _INTENT_TRANSITIONS[self.status]:
            raise InvalidTransitionError(
                f"Intent {self.id} cannot move from {self.status.value} to {status.value}"
            )
        return self.model_copy(update={"status": status, **updates})


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    ERROR = "error"


class ConnectionStatus(BaseModel):
    """Reachability of the remote chain endpoint"""
    model_config = ConfigDict(frozen=True)

    state: ConnectionState = ConnectionState.DISCONNECTED
    block_height: Optional[int] = None
    chain_id: Optional[str] = None
    error: Optional[str] = None


class TxStatus(str, Enum):
    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"


class TxStatusResult(BaseModel):
    """Result of a single ``/tx`` status query"""
    model_config = ConfigDict(frozen=True)

    hash: str
    status: TxStatus = TxStatus.PENDING
    block_height: Optional[int] = None
    error: Optional[str] = None
    timestamp: int = Field(default_factory=now_ms)


class TransactionRecord(BaseModel):
    """A broadcast transaction tracked until it resolves"""
    model_config = ConfigDict(frozen=True)

    hash: str
    status: TxStatus = TxStatus.PENDING
    block_height: Optional[int] = None
    error: Optional[str] = None
    timestamp: int = Field(default_factory=now_ms)

    @property
    def is_terminal(self) -> bool:
        return self.status is not TxStatus.PENDING

    @classmethod
    def from_status(cls, result: TxStatusResult) -> "TransactionRecord":
        return cls(
            hash=result.hash,
            status=result.status,
            block_height=result.block_height,
            error=result.error,
            timestamp=result.timestamp,
        )


class SignedIntent(BaseModel):
    """Body posted to ``/broadcast_tx_async``"""
    intent: Dict[str, Any]
    signature: str
    public_key: str
    address: str

    def to_broadcast_body(self) -> Dict[str, Any]:
        return {
            "tx": self.intent,
            "signature": self.signature,
            "public_key": self.public_key,
            "address": self.address,
        }


class AssetAbility(str, Enum):
    SWAP = "swap"
    BRIDGE = "bridge"
    STAKE = "stake"
    YIELD = "yield"
    FUSION = "fusion"
    EVOLUTION = "evolution"


class AssetRarity(str, Enum):
    COMMON = "common"
    RARE = "rare"
    EPIC = "epic"
    LEGENDARY = "legendary"
    MYTHIC = "mythic"

    @property
    def rank(self) -> int:
        return _RARITY_ORDER.index(self)


_RARITY_ORDER = [
    AssetRarity.COMMON,
    AssetRarity.RARE,
    AssetRarity.EPIC,
    AssetRarity.LEGENDARY,
    AssetRarity.MYTHIC,
]


class AssetAttributes(BaseModel):
    model_config = ConfigDict(frozen=True)

    power: int
    speed: int
    intelligence: int
    luck: int


class AssetType(BaseModel):
    """Catalog entry describing a mintable Glitch type"""
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    description: str
    base_ability: AssetAbility
    rarity: AssetRarity
    image: str
    attributes: AssetAttributes


class Asset(BaseModel):
    """
    A locally tracked, non-fungible Glitch.

    Instances are immutable; the ledger swaps in updated copies.
    """
    model_config = ConfigDict(frozen=True)

    id: str
    type_id: Optional[str] = None
    name: str
    description: str = ""
    image: str = "/glitches/default.png"
    ability: str = "unknown"
    rarity: AssetRarity = AssetRarity.COMMON
    level: int = Field(default=1, ge=1)
    owner: str
    minted_at: datetime = Field(default_factory=utc_now)
    token_uri: Optional[str] = None

    @classmethod
    def from_chain_record(cls, record: Dict[str, Any], default_owner: str) -> "Asset":
        """
        Build an Asset from one entry of the chain's NFT balance response.

        Fields may sit at the top level or under ``metadata``; missing
        values fall back to the same defaults the chain UI shows.

        Args:
            record: Raw JSON object from the endpoint
            default_owner: Owner to use when the record has none

        Returns:
            Asset instance

        Raises:
            ValueError: If the record has no usable id
        """
        if not isinstance(record, dict):
            raise ValueError(f"Asset record must be an object, got {type(record).__name__}")
        metadata = record.get("metadata") or {}

        def pick(key: str, default: Any = None) -> Any:
            value = record.get(key)
            if value in (None, ""):
                value = metadata.get(key)
            return default if value in (None, "") else value

        asset_id = record.get("id") or record.get("token_id")
        if not asset_id:
            raise ValueError("Asset record has no id or token_id")

        rarity = pick("rarity", AssetRarity.COMMON.value)
        try:
            rarity = AssetRarity(str(rarity).lower())
        except ValueError:
            rarity = AssetRarity.COMMON

        return cls(
            id=str(asset_id),
            type_id=pick("type_id"),
            name=pick("name", "Unknown Glitch"),
            description=pick("description", ""),
            image=pick("image", "/glitches/default.png"),
            ability=str(pick("ability", "unknown")),
            rarity=rarity,
            level=int(pick("level", 1)),
            owner=record.get("owner") or default_owner,
            minted_at=record.get("minted_at") or record.get("created_at") or utc_now(),
            token_uri=record.get("token_uri") or metadata.get("token_uri"),
        )
