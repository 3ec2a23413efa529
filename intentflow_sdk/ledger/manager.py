"""
AssetLedger - local record of Glitches and who owns them.
"""
import logging
import random
import string
import threading
from typing import Dict, Optional, List, Iterable, Tuple

from ..exceptions import NotConnectedError, UnknownAssetTypeError
from ..models import Asset, AssetType, now_ms, utc_now
from ..signer import WalletSigner, sign_intent_document
from .catalog import ASSET_TYPES
from .store import LedgerStore, MemoryLedgerStore

_ID_ALPHABET = string.ascii_lowercase + string.digits
_random = random.SystemRandom()


def new_asset_id() -> str:
    suffix = "".join(_random.choice(_ID_ALPHABET) for _ in range(9))
    return f"glitch-{now_ms()}-{suffix}"


class AssetLedger:
    """
    Keyed store of assets, persisted after every mutation.

    Assets are immutable; every mutation swaps in a new copy under the
    ledger lock, and the new map is written to the store before it
    becomes visible.
    """

    def __init__(
        self,
        store: Optional[LedgerStore] = None,
        asset_types: Optional[Dict[str, AssetType]] = None,
        logger: Optional[logging.Logger] = None
    ):
        self.store = store if store is not None else MemoryLedgerStore()
        self.asset_types = dict(asset_types if asset_types is not None else ASSET_TYPES)
        self.logger = logger or logging.getLogger(__name__)
        self._lock = threading.RLock()
        self._assets: Dict[str, Asset] = self.store.load()
        self.logger.debug(f"Loaded {len(self._assets)} assets from ledger store")

    def _commit(self, assets: Dict[str, Asset]) -> None:
        self.store.save(assets)
        self._assets = assets

    def get_type(self, type_id: str) -> AssetType:
        """
        Raises:
            UnknownAssetTypeError: If ``type_id`` is not in the catalog
        """
        asset_type = self.asset_types.get(type_id)
        if asset_type is None:
            raise UnknownAssetTypeError(f"Unknown glitch type: {type_id}")
        return asset_type

    def is_known_type(self, type_id: str) -> bool:
        return type_id in self.asset_types

    # --- Mutations ---

    def mint(self, type_id: str, owner: str) -> Asset:
        """
        Mint a level-1 Glitch locally.

        Args:
            type_id: Catalog type identifier
            owner: Owner identity

        Returns:
            The new Asset

        Raises:
            UnknownAssetTypeError: If the type is unknown
        """
        asset_type = self.get_type(type_id)
        asset = Asset(
            id=new_asset_id(),
            type_id=asset_type.id,
            name=asset_type.name,
            description=asset_type.description,
            image=asset_type.image,
            ability=asset_type.base_ability.value,
            rarity=asset_type.rarity,
            level=1,
            owner=owner,
            minted_at=utc_now(),
            token_uri=f"ipfs://glitch-{type_id}-{now_ms()}",
        )
        with self._lock:
            assets = dict(self._assets)
            assets[asset.id] = asset
            self._commit(assets)
        self.logger.info(f"Minted Glitch {asset.id} ({type_id}) for {owner}")
        return asset

    def mint_on_chain(
        self,
        type_id: str,
        owner: str,
        connection,
        wallet: Optional[WalletSigner],
        chain_id: str
    ) -> Tuple[Asset, str]:
        """
        Mint on chain, then record the local echo.

        Nothing is stored unless signing and broadcast both succeed;
        their errors propagate unchanged.

        Args:
            type_id: Catalog type identifier
            owner: Owner identity
            connection: ConnectionManager used for the broadcast
            wallet: Chain wallet that signs the mint
            chain_id: Chain the mint is signed for

        Returns:
            Tuple of (new Asset, transaction hash)

        Raises:
            UnknownAssetTypeError: If the type is unknown
            NotConnectedError: If the connection is down
            WalletNotFoundError: If no wallet is available
            SignerRejectedError: If signing fails
            BroadcastRejectedError: If the endpoint refuses the mint
        """
        self.get_type(type_id)
        if not connection.is_connected:
            raise NotConnectedError()

        signed = sign_intent_document(
            wallet,
            chain_id,
            [{"type": "nft/MintGlitch", "value": {"glitch_type": type_id, "owner": owner}}],
            memo=f"mint {type_id}",
        )
        tx_hash = connection.broadcast(signed)
        asset = self.mint(type_id, owner)
        return asset, tx_hash

    def transfer(self, asset_id: str, from_owner: str, to_owner: str) -> bool:
        with self._lock:
            asset = self._assets.get(asset_id)
            if asset is None or asset.owner != from_owner:
                return False
            assets = dict(self._assets)
            assets[asset_id] = asset.model_copy(update={"owner": to_owner})
            self._commit(assets)
        self.logger.info(f"Transferred Glitch {asset_id} from {from_owner} to {to_owner}")
        return True

    def upgrade(self, asset_id: str, owner: str) -> bool:
        with self._lock:
            asset = self._assets.get(asset_id)
            if asset is None or asset.owner != owner:
                return False
            assets = dict(self._assets)
            assets[asset_id] = asset.model_copy(update={"level": asset.level + 1})
            self._commit(assets)
        self.logger.info(f"Upgraded Glitch {asset_id} to level {asset.level + 1}")
        return True

    def sync_owner(self, owner: str, chain_assets: Iterable[Asset]) -> int:
        """
        Merge assets reported by the chain for ``owner``.

        The chain is authoritative for ownership; levels never go down.

        Returns:
            Number of entries added or changed
        """
        changed = 0
        with self._lock:
            assets = dict(self._assets)
            for incoming in chain_assets:
                current = assets.get(incoming.id)
                if current is not None:
                    incoming = incoming.model_copy(update={
                        "level": max(current.level, incoming.level),
                        "type_id": incoming.type_id or current.type_id,
                        "minted_at": current.minted_at,
                    })
                if current != incoming:
                    assets[incoming.id] = incoming
                    changed += 1
            if changed:
                self._commit(assets)
        self.logger.debug(f"Synced {changed} assets for {owner}")
        return changed

    def reset(self) -> None:
        with self._lock:
            self._commit({})
        self.logger.info("Asset ledger reset")

    # --- Reads ---

    def get_by_id(self, asset_id: str) -> Optional[Asset]:
        return self._assets.get(asset_id)

    def list_by_owner(self, owner: str) -> List[Asset]:
        return [a for a in self._assets.values() if a.owner == owner]

    def list_all(self) -> List[Asset]:
        return list(self._assets.values())

    def __len__(self) -> int:
        return len(self._assets)
