"""
IntentLifecycleProcessor - drives an intent from pending to a terminal state.
"""
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, Any, Optional, Callable

import requests
from web3 import Web3
from web3.exceptions import TimeExhausted, Web3Exception

from .config import DEFAULT_CHAIN_ID
from .connection import ConnectionManager
from .exceptions import (
    BroadcastRejectedError, ErrorCode, InsufficientBalanceError, IntentFlowError,
    InvalidIntentError, NotConnectedError, NotOwnerError, ResourceEstimateTooHighError,
    SignerRejectedError, UnknownAssetTypeError, UnknownIntentKindError,
    WalletNotConnectedError, WalletNotFoundError
)
from .ledger import AssetLedger
from .models import Intent, IntentKind, IntentStatus, TransactionRecord, TxStatus
from .signer import Signer, WalletSigner, sign_intent_document
from .tracker import TransactionTracker

DEFAULT_MAX_GAS_ESTIMATE = 500000
DEFAULT_NOMINAL_VALUE_WEI = Web3.to_wei(Decimal("0.001"), "ether")
DEFAULT_CONFIRMATION_TIMEOUT = 60.0
DEFAULT_RECEIPT_TIMEOUT = 120.0
DEFAULT_POLL_INTERVAL = 2.0


@dataclass(frozen=True)
class TransferProfile:
    """Destination contract and gas ceiling for one EVM intent kind"""
    to: str
    gas_limit: int


TRANSFER_PROFILES: Dict[IntentKind, TransferProfile] = {
    IntentKind.SWAP: TransferProfile(
        Web3.to_checksum_address("0x742d35cc6634c0532925a3b8d4c9db96c4b4d8b6"), 21000),
    IntentKind.BRIDGE: TransferProfile(
        Web3.to_checksum_address("0x3d9819210a31b4961b30ef54be2aed79b9c9cd3b"), 100000),
    IntentKind.STAKE: TransferProfile(
        Web3.to_checksum_address("0x7a250d5630b4cf539739df2c5dacb4c659f2488d"), 150000),
    IntentKind.YIELD: TransferProfile(
        Web3.to_checksum_address("0x5c69bee701ef814a2b6a3edd4b1652cb9cc5aa6f"), 200000),
}


class _AfterBroadcastError(Exception):
    """Wraps a failure that happened once a transaction hash existed"""

    def __init__(self, tx_hash: str):
        super().__init__(tx_hash)
        self.tx_hash = tx_hash


class IntentLifecycleProcessor:
    """
    State machine for a single intent.

    ``process`` is a no-op for anything that is not pending, and never
    raises: every failure ends as a ``failed`` intent carrying the error
    message and its ``ErrorCode``.
    """

    def __init__(
        self,
        connection: ConnectionManager,
        tracker: TransactionTracker,
        ledger: AssetLedger,
        wallet: Optional[WalletSigner] = None,
        evm_signer: Optional[Signer] = None,
        w3: Optional[Web3] = None,
        chain_id: str = DEFAULT_CHAIN_ID,
        max_gas_estimate: int = DEFAULT_MAX_GAS_ESTIMATE,
        nominal_value_wei: int = DEFAULT_NOMINAL_VALUE_WEI,
        confirmation_timeout: float = DEFAULT_CONFIRMATION_TIMEOUT,
        receipt_timeout: float = DEFAULT_RECEIPT_TIMEOUT,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        logger: Optional[logging.Logger] = None
    ):
        """
        Initialize the processor

        Args:
            connection: Chain endpoint used for trade broadcasts
            tracker: Transaction history
            ledger: Asset ledger consulted for trade ownership
            wallet: Chain wallet that signs trade intents
            evm_signer: Signer for swap/bridge/stake/yield transactions
            w3: Web3 instance for the EVM pathway
            chain_id: Chain id used in amino sign documents
            max_gas_estimate: Gas ceiling enforced before submission
            nominal_value_wei: Value sent by EVM intents
            confirmation_timeout: Seconds to poll a trade before giving up
            receipt_timeout: Seconds to wait for an EVM receipt
            poll_interval: Seconds between status polls
            logger: Optional logger instance
        """
        self.connection = connection
        self.tracker = tracker
        self.ledger = ledger
        self.wallet = wallet
        self.evm_signer = evm_signer
        self.w3 = w3
        self.chain_id = chain_id
        self.max_gas_estimate = max_gas_estimate
        self.nominal_value_wei = nominal_value_wei
        self.confirmation_timeout = confirmation_timeout
        self.receipt_timeout = receipt_timeout
        self.poll_interval = poll_interval
        self.logger = logger or logging.getLogger(__name__)

        self._handlers: Dict[IntentKind, Callable[[Intent], Intent]] = {
            IntentKind.SWAP: self._process_transfer,
            IntentKind.BRIDGE: self._process_transfer,
            IntentKind.STAKE: self._process_transfer,
            IntentKind.YIELD: self._process_transfer,
            IntentKind.TRADE: self._process_trade,
        }

    # --- Lifecycle ---

    def process(self, intent: Intent) -> Intent:
        """
        Take a pending intent to a terminal state.

        Returns:
            The terminal intent, or ``intent`` unchanged if it was not pending
        """
        if intent.status is not IntentStatus.PENDING:
            return intent
        return self.run(self.begin(intent))

    def begin(self, intent: Intent) -> Intent:
        return intent.transition(IntentStatus.PROCESSING, error=None, error_code=None)

    def run(self, intent: Intent) -> Intent:
        """
        Execute a processing intent and map the outcome to a terminal state.
        """
        handler = self._handlers.get(intent.kind)
        try:
            if handler is None:
                raise UnknownIntentKindError(f"Unknown intent type: {intent.kind}")
            result = handler(intent)
        except _AfterBroadcastError as e:
            return self._fail_with(intent, e.__cause__, tx_hash=e.tx_hash)
        except Exception as e:
            return self._fail_with(intent, e)

        if result.status is IntentStatus.COMPLETED:
            self.logger.info(f"Intent {intent.id} completed: {result.tx_hash}")
        return result

    def _fail_with(self, intent: Intent, error: Exception, **updates: Any) -> Intent:
        if isinstance(error, IntentFlowError):
            self.logger.warning(f"Intent {intent.id} ({intent.kind.value}) failed: [{error.code.value}] {error}")
            return self._fail(intent, str(error), error.code, **updates)
        if isinstance(error, (requests.ConnectionError, requests.Timeout)):
            self.logger.error(f"Network error while processing intent {intent.id}: {error}")
            return self._fail(intent, f"Network error: {error}", ErrorCode.NOT_CONNECTED, **updates)
        self.logger.error(f"Unexpected error while processing intent {intent.id}: {error!r}", exc_info=error)
        return self._fail(intent, str(error) or type(error).__name__, ErrorCode.UNEXPECTED, **updates)

    def _fail(self, intent: Intent, message: str, code: ErrorCode, **updates: Any) -> Intent:
        return intent.transition(IntentStatus.FAILED, error=message, error_code=code, **updates)

    # --- EVM pathway ---

    def validate_transaction(self, tx: Dict[str, Any]) -> None:
        """
        Check balance and gas before anything is signed.

        Raises:
            InsufficientBalanceError: If the balance is below ``tx["value"]``
            ResourceEstimateTooHighError: If the estimate exceeds the ceiling
        """
        balance = self.w3.eth.get_balance(tx["from"])
        if balance < tx["value"]:
            raise InsufficientBalanceError("Insufficient balance")

        gas_estimate = self.w3.eth.estimate_gas({
            "from": tx["from"],
            "to": tx["to"],
            "value": tx["value"],
        })
        self.logger.debug(f"Estimated gas: {gas_estimate}")
        if gas_estimate > self.max_gas_estimate:
            raise ResourceEstimateTooHighError("Gas estimate too high")

    def _process_transfer(self, intent: Intent) -> Intent:
        if self.evm_signer is None or self.w3 is None:
            raise WalletNotConnectedError()

        profile = TRANSFER_PROFILES[intent.kind]
        from_address = self.evm_signer.address
        tx = {
            "from": from_address,
            "to": profile.to,
            "value": self.nominal_value_wei,
            "gas": profile.gas_limit,
        }
        self.validate_transaction(tx)

        tx["nonce"] = self.w3.eth.get_transaction_count(from_address)
        tx["gasPrice"] = self.w3.eth.gas_price
        tx["chainId"] = self.w3.eth.chain_id

        try:
            signed_tx = self.evm_signer.sign_transaction(tx)
        except Exception as e:
            self.logger.error(f"Transaction signing failed: {e}")
            raise SignerRejectedError(f"Failed to sign transaction: {e}") from e

        try:
            raw_hash = self.w3.eth.send_raw_transaction(signed_tx.raw_transaction)
        except (Web3Exception, ValueError, requests.RequestException) as e:
            self.logger.error(f"Failed to send transaction: {e}")
            raise BroadcastRejectedError(f"Failed to send transaction: {e}") from e

        tx_hash = Web3.to_hex(raw_hash)
        self.logger.info(f"Transaction sent: {tx_hash}")
        try:
            return self._confirm_transfer(intent, raw_hash, tx_hash)
        except Exception as e:
            raise _AfterBroadcastError(tx_hash) from e

    def _confirm_transfer(self, intent: Intent, raw_hash: bytes, tx_hash: str) -> Intent:
        self.tracker.record(tx_hash)
        try:
            receipt = self.w3.eth.wait_for_transaction_receipt(
                raw_hash,
                timeout=self.receipt_timeout,
                poll_latency=self.poll_interval,
            )
        except TimeExhausted:
            self.logger.warning(f"No receipt for {tx_hash} after {self.receipt_timeout:.0f}s; leaving it pending")
            return intent.transition(IntentStatus.COMPLETED, tx_hash=tx_hash)

        block_number = receipt.get("blockNumber")
        if receipt.get("status") == 1:
            self.tracker.update_status(tx_hash, TransactionRecord(
                hash=tx_hash, status=TxStatus.SUCCESS, block_height=block_number))
            return intent.transition(IntentStatus.COMPLETED, tx_hash=tx_hash)

        self.tracker.update_status(tx_hash, TransactionRecord(
            hash=tx_hash, status=TxStatus.FAILED, block_height=block_number,
            error="Transaction reverted"))
        return self._fail(intent, "Transaction failed", ErrorCode.TRANSACTION_FAILED, tx_hash=tx_hash)

    # --- Trade pathway ---

    def _wallet_address(self) -> str:
        if self.wallet is None:
            raise WalletNotFoundError()
        try:
            self.wallet.enable(self.chain_id)
            return self.wallet.get_key(self.chain_id).bech32_address
        except IntentFlowError:
            raise
        except Exception as e:
            raise SignerRejectedError(f"Wallet refused to expose its key: {e}") from e

    def _process_trade(self, intent: Intent) -> Intent:
        if not intent.give_asset_id or not intent.receive_asset_type:
            raise InvalidIntentError("Trade intent requires give_asset_id and receive_asset_type")
        acting_address = intent.owner or self._wallet_address()

        give_asset = self.ledger.get_by_id(intent.give_asset_id)
        if give_asset is None or give_asset.owner != acting_address:
            raise NotOwnerError(f"{acting_address} does not own glitch {intent.give_asset_id}")
        if not self.ledger.is_known_type(intent.receive_asset_type):
            raise UnknownAssetTypeError(f"Unknown glitch type: {intent.receive_asset_type}")
        if not self.connection.is_connected:
            raise NotConnectedError()

        signed = sign_intent_document(
            self.wallet,
            self.chain_id,
            [{
                "type": "nft/TradeIntent",
                "value": {
                    "owner": acting_address,
                    "give_glitch_id": intent.give_asset_id,
                    "receive_glitch_type": intent.receive_asset_type,
                    "intent_id": intent.id,
                },
            }],
            memo=f"intent {intent.id}",
        )
        if signed.address != acting_address:
            raise SignerRejectedError(f"Wallet key {signed.address} cannot act for {acting_address}")

        tx_hash = self.connection.broadcast(signed)
        try:
            self.tracker.record(tx_hash)
            return self._resolve(intent, tx_hash)
        except Exception as e:
            raise _AfterBroadcastError(tx_hash) from e

    def _resolve(self, intent: Intent, tx_hash: str) -> Intent:
        record = self.tracker.wait_for_resolution(
            tx_hash,
            timeout=self.confirmation_timeout,
            poll_interval=self.poll_interval,
        )
        if record.status is TxStatus.SUCCESS:
            return intent.transition(IntentStatus.COMPLETED, tx_hash=tx_hash)
        if record.status is TxStatus.FAILED:
            return self._fail(
                intent, record.error or "Transaction failed", ErrorCode.TRANSACTION_FAILED, tx_hash=tx_hash
            )

        # Accepted by the endpoint but not yet indexed; the record stays pending
        self.logger.warning(f"Transaction {tx_hash} unresolved after {self.confirmation_timeout:.0f}s")
        return intent.transition(IntentStatus.COMPLETED, tx_hash=tx_hash)
