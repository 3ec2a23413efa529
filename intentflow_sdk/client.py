"""
IntentClient - main entry point of the IntentFlow SDK.
"""
import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from decimal import Decimal, InvalidOperation
from typing import Dict, Any, Optional, List, Union

from eth_account import Account
from web3 import Web3

from .config import NetworkConfig
from .connection import ConnectionManager
from .exceptions import (
    IntentFlowError, IntentNotFoundError, InvalidIntentError, SignerRejectedError,
    UnknownIntentKindError, WalletNotConnectedError, WalletNotFoundError
)
from .ledger import AssetLedger, LedgerStore
from .models import Asset, ConnectionStatus, Intent, IntentKind, IntentStatus, TransactionRecord
from .processor import IntentLifecycleProcessor
from .signer import Signer, WalletKey, WalletSigner
from .tracker import TransactionTracker

# Fields a caller may set when creating an intent
INTENT_FIELDS = frozenset({
    "description", "amount", "from_token", "to_token", "from_chain", "to_chain",
    "give_asset_id", "receive_asset_type", "owner",
})


class IntentClient:
    """
    Session context that owns one instance of every component.

    This client handles:
    1. Intent creation, listing and processing
    2. Connection and wallet state
    3. The local asset ledger, refreshed after successful transactions

    It is the only writer of intent state; components are passed to each
    other explicitly, there is no module-level singleton.
    """

    def __init__(
        self,
        rpc_url: Optional[str] = None,
        wallet: Optional[WalletSigner] = None,
        evm_signer: Optional[Signer] = None,
        priv_key: Optional[str] = None,
        w3: Optional[Web3] = None,
        evm_chain_id: int = 1,
        chain_id: Optional[str] = None,
        ledger_store: Optional[LedgerStore] = None,
        connection: Optional[ConnectionManager] = None,
        tracker: Optional[TransactionTracker] = None,
        ledger: Optional[AssetLedger] = None,
        processor: Optional[IntentLifecycleProcessor] = None,
        max_workers: int = 4,
        logger: Optional[logging.Logger] = None,
        **processor_options: Any
    ):
        """
        Initialize the IntentClient

        Args:
            rpc_url: Anoma RPC endpoint (defaults to configured testnet)
            wallet: Chain wallet used for trades and on-chain mints
            evm_signer: Signer for EVM intents (optional if priv_key provided)
            priv_key: EVM private key used to build a signer
            w3: Web3 instance; built from ``evm_chain_id`` when a signer exists
            evm_chain_id: EVM chain whose RPC is used when ``w3`` is omitted
            chain_id: Chain id for amino sign documents
            ledger_store: Storage adapter for the asset ledger
            connection: Preconfigured ConnectionManager
            tracker: Preconfigured TransactionTracker; its ``on_success``
                hook is set to the asset refresh when left empty
            ledger: Preconfigured AssetLedger
            processor: Preconfigured IntentLifecycleProcessor
            max_workers: Worker threads for ``process_intent_async``
            logger: Optional logger instance
            **processor_options: Passed to IntentLifecycleProcessor when
                ``processor`` is omitted (``max_gas_estimate``,
                ``confirmation_timeout``, ...)
        """
        self.logger = logger or logging.getLogger(__name__)

        if evm_signer is None and priv_key:
            evm_signer = Account.from_key(priv_key)
        if w3 is None and evm_signer is not None:
            w3 = Web3(Web3.HTTPProvider(NetworkConfig.get_evm_rpc_url(evm_chain_id)))

        self.wallet = wallet
        self.evm_signer = evm_signer
        self.w3 = w3
        self.chain_id = chain_id or NetworkConfig.get_chain_id()

        if connection is None:
            connection = ConnectionManager(rpc_url=rpc_url, logger=self.logger)
        self.connection = connection
        if tracker is None:
            tracker = TransactionTracker(self.connection, logger=self.logger)
        if tracker.on_success is None:
            tracker.on_success = self._on_transaction_success
        self.tracker = tracker
        # An empty AssetLedger is falsy
        if ledger is None:
            ledger = AssetLedger(store=ledger_store, logger=self.logger)
        self.ledger = ledger
        if processor is None:
            processor = IntentLifecycleProcessor(
                connection=self.connection,
                tracker=self.tracker,
                ledger=self.ledger,
                wallet=wallet,
                evm_signer=evm_signer,
                w3=w3,
                chain_id=self.chain_id,
                logger=self.logger,
                **processor_options
            )
        self.processor = processor

        self._lock = threading.RLock()
        self._evm_clients: Dict[int, Web3] = {}
        self._intents: Dict[str, Intent] = {}
        self._in_flight = 0
        self._wallet_key: Optional[WalletKey] = None
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="intentflow")

    def __enter__(self) -> "IntentClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def close(self) -> None:
        self._executor.shutdown(wait=True)
        self.connection.close()

    # --- Connection ---

    def connect(self) -> ConnectionStatus:
        return self.connection.connect()

    def disconnect(self) -> None:
        self.connection.disconnect()

    def get_status(self) -> ConnectionStatus:
        return self.connection.get_status()

    # --- Wallet ---

    def connect_wallet(self) -> WalletKey:
        """
        Enable the chain wallet and remember its key.

        Returns:
            The wallet key; ``bech32_address`` becomes the owner identity

        Raises:
            WalletNotFoundError: If no wallet was configured
            SignerRejectedError: If the wallet refuses to connect
        """
        if self.wallet is None:
            raise WalletNotFoundError()
        try:
            self.wallet.enable(self.chain_id)
            key = self.wallet.get_key(self.chain_id)
        except IntentFlowError:
            raise
        except Exception as e:
            self.logger.error(f"Failed to connect wallet: {e}")
            raise SignerRejectedError(f"Failed to connect wallet: {e}") from e

        with self._lock:
            self._wallet_key = key
        self.logger.info(f"Wallet connected: {key.bech32_address}")
        return key

    def disconnect_wallet(self) -> None:
        with self._lock:
            self._wallet_key = None

    @property
    def owner(self) -> Optional[str]:
        key = self._wallet_key
        return key.bech32_address if key else None

    def _require_owner(self, owner: Optional[str]) -> str:
        owner = owner or self.owner
        if not owner:
            raise WalletNotConnectedError()
        return owner

    def get_balance(self, evm_chain_id: Optional[int] = None) -> str:
        """
        EVM balance of the signer, in ether.

        Args:
            evm_chain_id: Query this chain instead of the configured ``w3``

        Raises:
            WalletNotConnectedError: If no EVM signer is configured
            ValueError: If no RPC URL is configured for ``evm_chain_id``
        """
        if self.evm_signer is None:
            raise WalletNotConnectedError()
        w3 = self.w3 if evm_chain_id is None else self._evm_web3(evm_chain_id)
        if w3 is None:
            raise WalletNotConnectedError()
        balance = w3.eth.get_balance(self.evm_signer.address)
        return str(Web3.from_wei(balance, "ether"))

    def _evm_web3(self, evm_chain_id: int) -> Web3:
        with self._lock:
            w3 = self._evm_clients.get(evm_chain_id)
            if w3 is None:
                rpc_url = NetworkConfig.get_evm_rpc_url(evm_chain_id)
                self.logger.debug(f"Switching balance queries to chain {evm_chain_id} ({rpc_url})")
                w3 = Web3(Web3.HTTPProvider(rpc_url))
                self._evm_clients[evm_chain_id] = w3
            return w3

    # --- Intents ---

    def create_intent(
        self,
        kind: Union[IntentKind, str],
        chains: Optional[List[str]] = None,
        **fields: Any
    ) -> Intent:
        """
        Create a pending intent.

        Args:
            kind: Intent kind (swap, bridge, stake, yield, trade)
            chains: Chains involved; defaults to from_chain/to_chain
            **fields: Optional intent fields (amount, from_token, ...)

        Returns:
            The stored pending Intent

        Raises:
            UnknownIntentKindError: If ``kind`` is not supported
            InvalidIntentError: If fields are unknown or the amount is not positive
        """
        try:
            kind = IntentKind(kind)
        except ValueError:
            raise UnknownIntentKindError(f"Unknown intent type: {kind}") from None

        unknown = set(fields) - INTENT_FIELDS
        if unknown:
            raise InvalidIntentError(f"Unknown intent fields: {', '.join(sorted(unknown))}")

        amount = fields.get("amount")
        if amount is not None:
            try:
                valid = Decimal(str(amount)) > 0
            except InvalidOperation:
                valid = False
            if not valid:
                raise InvalidIntentError(f"Please enter a valid amount (got {amount!r})")
            fields["amount"] = str(amount)

        if chains is None:
            chains = [c for c in (fields.get("from_chain"), fields.get("to_chain")) if c]

        intent = Intent(kind=kind, chains=list(chains), **fields)
        with self._lock:
            self._intents[intent.id] = intent
        self.logger.debug(f"Created {kind.value} intent {intent.id}")
        return intent

    def get_intent(self, intent_id: str) -> Intent:
        with self._lock:
            intent = self._intents.get(intent_id)
        if intent is None:
            raise IntentNotFoundError(f"Intent {intent_id} not found")
        return intent

    def list_intents(self) -> List[Intent]:
        """Intents, newest first."""
        with self._lock:
            return list(reversed(list(self._intents.values())))

    def clear_intents(self) -> None:
        with self._lock:
            self._intents.clear()

    @property
    def is_processing(self) -> bool:
        return self._in_flight > 0

    def process_intent(self, intent_id: str) -> Intent:
        """
        Process an intent to completion.

        Calling this for an intent that is already processing or terminal
        returns its current value without doing anything.

        Raises:
            IntentNotFoundError: If the id is unknown
        """
        with self._lock:
            intent = self.get_intent(intent_id)
            if intent.status is not IntentStatus.PENDING:
                return intent
            processing = self.processor.begin(intent)
            self._intents[intent_id] = processing
            self._in_flight += 1

        try:
            result = self.processor.run(processing)
        finally:
            with self._lock:
                self._in_flight -= 1

        with self._lock:
            # Skip the write-back if the caller cleared intents meanwhile
            if intent_id in self._intents:
                self._intents[intent_id] = result
        return result

    def process_intent_async(self, intent_id: str) -> "Future[Intent]":
        return self._executor.submit(self.process_intent, intent_id)

    # --- Assets ---

    def refresh_assets(self, owner: Optional[str] = None) -> List[Asset]:
        """
        Pull the owner's Glitches from the chain into the ledger.

        Raises:
            WalletNotConnectedError: If no owner is given or connected
            NotConnectedError: If the endpoint is not connected
        """
        owner = self._require_owner(owner)
        chain_assets = self.connection.query_owned_assets(owner)
        self.ledger.sync_owner(owner, chain_assets)
        return self.ledger.list_by_owner(owner)

    def _on_transaction_success(self, record: TransactionRecord) -> None:
        owner = self.owner
        if not owner:
            self.logger.debug(f"No wallet connected; skipping asset refresh after {record.hash}")
            return
        try:
            self.refresh_assets(owner)
        except IntentFlowError as e:
            self.logger.warning(f"Asset refresh after {record.hash} failed: {e}")
        except Exception as e:
            # The transaction is confirmed either way; storage errors stay local
            self.logger.error(f"Asset refresh after {record.hash} failed unexpectedly: {e}")

    def mint_asset(self, type_id: str, owner: Optional[str] = None, on_chain: bool = False) -> Asset:
        """
        Mint a Glitch, optionally through an on-chain transaction.

        Raises:
            UnknownAssetTypeError: If the type is unknown
            WalletNotConnectedError: If no owner is given or connected
            IntentFlowError: Network and signer errors of the on-chain leg
        """
        owner = self._require_owner(owner)
        if not on_chain:
            return self.ledger.mint(type_id, owner)

        asset, tx_hash = self.ledger.mint_on_chain(
            type_id, owner, self.connection, self.wallet, self.chain_id
        )
        self.tracker.record(tx_hash)
        return asset

    def transfer_asset(self, asset_id: str, to_owner: str, from_owner: Optional[str] = None) -> bool:
        return self.ledger.transfer(asset_id, self._require_owner(from_owner), to_owner)

    def upgrade_asset(self, asset_id: str, owner: Optional[str] = None) -> bool:
        return self.ledger.upgrade(asset_id, self._require_owner(owner))

    def list_assets(self, owner: Optional[str] = None) -> List[Asset]:
        owner = owner or self.owner
        return self.ledger.list_by_owner(owner) if owner else self.ledger.list_all()

    # --- Transactions ---

    def transaction_history(self) -> List[TransactionRecord]:
        return self.tracker.history()

    def refresh_transaction(self, tx_hash: str) -> TransactionRecord:
        return self.tracker.poll(tx_hash)

    def clear_transactions(self) -> None:
        self.tracker.clear()
