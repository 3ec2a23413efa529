"""
ConnectionManager - the single logical connection to an Anoma RPC endpoint.
"""
import json
import logging
import threading
import urllib.parse
from typing import Dict, Any, Optional, List, Callable

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from ._rate_limited_log import rate_limited_log
from .config import NetworkConfig, DEFAULT_CHAIN_ID
from .exceptions import (
    BroadcastRejectedError, ConnectionProbeError, NoHashReturnedError, NotConnectedError
)
from .models import (
    Asset, ConnectionState, ConnectionStatus, SignedIntent, TxStatus, TxStatusResult
)

STATUS_TIMEOUT = 10.0
BROADCAST_TIMEOUT = 30.0
QUERY_TIMEOUT = 10.0
ASSET_QUERY_TIMEOUT = 15.0
DEFAULT_MAX_RECONNECT_ATTEMPTS = 3
DEFAULT_RECONNECT_DELAY = 5.0

TimerFactory = Callable[[float, Callable[[], None]], Any]


def _validate_endpoint(rpc_url: str) -> None:
    parsed = urllib.parse.urlparse(rpc_url)
    host = parsed.hostname or ""
    is_local = host in ("localhost", "127.0.0.1")
    if parsed.scheme != "https" and not is_local:
        raise ValueError(f"rpc_url must use https:// for security (got: {parsed.scheme}://)")


def _http_error_message(response: requests.Response) -> str:
    return f"HTTP {response.status_code}: {response.reason}"


class ConnectionManager:
    """
    Owns the connection status of one chain endpoint.

    The cached status is advisory: every network call re-checks the
    connected flag instead of trusting a stale view, and a failed probe
    schedules bounded automatic reconnects (attempt ``n`` after
    ``reconnect_delay * n`` seconds).
    """

    def __init__(
        self,
        rpc_url: Optional[str] = None,
        max_reconnect_attempts: int = DEFAULT_MAX_RECONNECT_ATTEMPTS,
        reconnect_delay: float = DEFAULT_RECONNECT_DELAY,
        retry_count: int = 2,
        session: Optional[requests.Session] = None,
        timer_factory: Optional[TimerFactory] = None,
        logger: Optional[logging.Logger] = None
    ):
        """
        Initialize the ConnectionManager

        Args:
            rpc_url: Endpoint base URL; defaults to the configured testnet
            max_reconnect_attempts: Automatic retries after a failed connect
            reconnect_delay: Base delay in seconds for the linear backoff
            retry_count: HTTP-level retries for idempotent GETs
            session: Optional preconfigured requests session
            timer_factory: Callable ``(delay, fn) -> timer`` with
                ``start()``/``cancel()``; defaults to ``threading.Timer``
            logger: Optional logger instance

        Raises:
            ValueError: If the URL is not https (unless localhost/127.0.0.1)
        """
        rpc_url = (rpc_url or NetworkConfig.get_rpc_url()).rstrip("/")
        _validate_endpoint(rpc_url)

        self.rpc_url = rpc_url
        self.max_reconnect_attempts = max_reconnect_attempts
        self.reconnect_delay = reconnect_delay
        self.logger = logger or logging.getLogger(__name__)
        self._timer_factory = timer_factory or threading.Timer

        self._lock = threading.RLock()
        self._connected = False
        self._status = ConnectionStatus()
        self._reconnect_attempts = 0
        self._reconnect_timer = None
        # Bumped on disconnect so a timer that already fired does nothing
        self._generation = 0

        if session is None:
            session = requests.Session()
            # Broadcast is one-shot, so only GETs are retried
            retries = Retry(
                total=retry_count,
                connect=retry_count,
                read=retry_count,
                backoff_factor=0.5,
                allowed_methods=["GET"],
                status_forcelist=[],
                raise_on_status=False,
            )
            session.mount("http://", HTTPAdapter(max_retries=retries))
            session.mount("https://", HTTPAdapter(max_retries=retries))
        self.session = session

    # --- Status ---

    def get_status(self) -> ConnectionStatus:
        return self._status

    @property
    def is_connected(self) -> bool:
        return self._connected and self._status.state is ConnectionState.CONNECTED

    @property
    def reconnect_attempts(self) -> int:
        return self._reconnect_attempts

    @property
    def reconnect_pending(self) -> bool:
        return self._reconnect_timer is not None

    def connect(self) -> ConnectionStatus:
        """
        Probe the endpoint and mark the connection as connected.

        Idempotent while connected. A manual call cancels any scheduled
        reconnect and restarts the attempt budget.

        Returns:
            The resulting ConnectionStatus (never raises on probe failure)
        """
        with self._lock:
            if self.is_connected:
                return self._status
            self._cancel_reconnect()
            self._reconnect_attempts = 0
            generation = self._generation
        return self._attempt_connect(generation)

    def disconnect(self) -> None:
        with self._lock:
            self._generation += 1
            self._cancel_reconnect()
            self._reconnect_attempts = 0
            self._connected = False
            self._status = ConnectionStatus(state=ConnectionState.DISCONNECTED)
        self.logger.info(f"Disconnected from {self.rpc_url}")

    def close(self) -> None:
        self.disconnect()
        self.session.close()

    def _attempt_connect(self, generation: int) -> ConnectionStatus:
        with self._lock:
            if generation != self._generation:
                return self._status
            self._status = ConnectionStatus(state=ConnectionState.CONNECTING)

        try:
            block_height, chain_id = self._probe()
        except ConnectionProbeError as e:
            return self._on_connect_failed(generation, str(e))

        with self._lock:
            if generation != self._generation:
                return self._status
            self._connected = True
            self._reconnect_attempts = 0
            self._status = ConnectionStatus(
                state=ConnectionState.CONNECTED,
                block_height=block_height,
                chain_id=chain_id,
            )
        self.logger.info(f"Connected to {self.rpc_url} (chain={chain_id}, height={block_height})")
        return self._status

    def _on_connect_failed(self, generation: int, message: str) -> ConnectionStatus:
        with self._lock:
            if generation != self._generation:
                return self._status
            self._connected = False
            self._status = ConnectionStatus(state=ConnectionState.ERROR, error=message)
            self.logger.error(f"Failed to connect to {self.rpc_url}: {message}")

            if self._reconnect_attempts < self.max_reconnect_attempts:
                self._reconnect_attempts += 1
                delay = self.reconnect_delay * self._reconnect_attempts
                self.logger.info(
                    f"Reconnection attempt {self._reconnect_attempts}/"
                    f"{self.max_reconnect_attempts} in {delay:.1f}s"
                )
                self._schedule_reconnect(delay, generation)
            return self._status

    def _schedule_reconnect(self, delay: float, generation: int) -> None:
        def fire() -> None:
            with self._lock:
                if generation != self._generation or self._reconnect_timer is not timer:
                    return
                self._reconnect_timer = None
            self._attempt_connect(generation)

        timer = self._timer_factory(delay, fire)
        if hasattr(timer, "daemon"):
            timer.daemon = True
        self._reconnect_timer = timer
        timer.start()

    def _cancel_reconnect(self) -> None:
        if self._reconnect_timer is not None:
            self._reconnect_timer.cancel()
            self._reconnect_timer = None

    def _probe(self):
        try:
            response = self.session.get(
                f"{self.rpc_url}/status",
                headers={"Content-Type": "application/json"},
                timeout=STATUS_TIMEOUT,
            )
        except requests.Timeout as e:
            raise ConnectionProbeError(f"Status probe timed out after {STATUS_TIMEOUT:.0f}s") from e
        except requests.RequestException as e:
            raise ConnectionProbeError(f"Status probe failed: {e}") from e

        if not response.ok:
            raise ConnectionProbeError(_http_error_message(response))

        try:
            data = response.json()
        except ValueError as e:
            raise ConnectionProbeError(f"Invalid JSON from status endpoint: {e}") from e
        if not isinstance(data, dict):
            raise ConnectionProbeError("Unexpected status response shape")

        # Tendermint wraps the payload in "result"; some gateways do not
        status = data.get("result", data) if isinstance(data.get("result"), dict) else data
        sync_info = status.get("sync_info") or {}
        node_info = status.get("node_info") or {}

        block_height = sync_info.get("latest_block_height")
        try:
            block_height = int(block_height) if block_height is not None else None
        except (TypeError, ValueError):
            block_height = None
        chain_id = node_info.get("network") or DEFAULT_CHAIN_ID
        return block_height, chain_id

    # --- Calls ---

    def _require_connected(self) -> None:
        if not self.is_connected:
            raise NotConnectedError()

    def broadcast(self, signed: SignedIntent) -> str:
        """
        Broadcast a signed intent.

        Args:
            signed: Signed intent document

        Returns:
            Transaction hash assigned by the endpoint

        Raises:
            NotConnectedError: If the connection is not established
            BroadcastRejectedError: If the request fails or is refused
            NoHashReturnedError: If the reply carries no hash
        """
        self._require_connected()
        self.logger.debug(f"Broadcasting intent: {self._sanitize_payload(signed.to_broadcast_body())}")

        try:
            response = self.session.post(
                f"{self.rpc_url}/broadcast_tx_async",
                json=signed.to_broadcast_body(),
                headers={"Content-Type": "application/json"},
                timeout=BROADCAST_TIMEOUT,
            )
        except requests.RequestException as e:
            self.logger.error(f"Failed to broadcast intent: {e}")
            raise BroadcastRejectedError(f"Broadcast failed: {e}") from e

        try:
            result = response.json()
        except ValueError:
            result = {}
        if not isinstance(result, dict):
            result = {}

        if not response.ok:
            message = result.get("error") or _http_error_message(response)
            if isinstance(message, dict):
                message = message.get("message") or json.dumps(message)
            self.logger.error(f"Broadcast rejected: {message}")
            raise BroadcastRejectedError(str(message), status_code=response.status_code)

        inner = result.get("result") if isinstance(result.get("result"), dict) else {}
        tx_hash = result.get("hash") or result.get("tx_hash") or inner.get("hash")
        if not tx_hash:
            self.logger.error(f"Broadcast reply without hash: {result}")
            raise NoHashReturnedError()

        self.logger.info(f"Intent broadcast successful: {tx_hash}")
        return str(tx_hash)

    def query_status(self, tx_hash: str) -> TxStatusResult:
        """
        Query the inclusion status of a transaction.

        Not-found replies and transport failures are reported as pending;
        only an explicit non-zero result code is a failure.

        Raises:
            NotConnectedError: If the connection is not established
        """
        self._require_connected()
        bare_hash = tx_hash[2:] if tx_hash.startswith("0x") else tx_hash

        try:
            response = self.session.get(
                f"{self.rpc_url}/tx",
                params={"hash": f"0x{bare_hash}"},
                headers={"Content-Type": "application/json"},
                timeout=QUERY_TIMEOUT,
            )
            if response.status_code == 404:
                return TxStatusResult(hash=tx_hash, status=TxStatus.PENDING)
            if not response.ok:
                raise requests.HTTPError(_http_error_message(response), response=response)
            data = response.json()
        except (requests.RequestException, ValueError) as e:
            rate_limited_log(
                f"Failed to query transaction status for {tx_hash}: {e}",
                key=f"tx-status:{tx_hash}",
                logger_instance=self.logger,
            )
            return TxStatusResult(hash=tx_hash, status=TxStatus.PENDING)

        if isinstance(data, dict) and isinstance(data.get("result"), dict):
            data = data["result"]
        if not isinstance(data, dict):
            return TxStatusResult(hash=tx_hash, status=TxStatus.PENDING)

        tx_result = data.get("tx_result") or {}
        code = tx_result.get("code")
        status = TxStatus.PENDING
        error = None
        if code == 0:
            status = TxStatus.SUCCESS
        elif code:
            status = TxStatus.FAILED
            error = tx_result.get("log") or f"Transaction failed with code {code}"

        height = data.get("height")
        try:
            height = int(height) if height is not None else None
        except (TypeError, ValueError):
            height = None

        self.logger.debug(f"Transaction {tx_hash} status: {status.value}")
        return TxStatusResult(hash=tx_hash, status=status, block_height=height, error=error)

    def query_owned_assets(self, owner: str) -> List[Asset]:
        """
        Query the Glitches the chain reports for ``owner``.

        Best effort: request and parse failures return an empty list.

        Raises:
            NotConnectedError: If the connection is not established
        """
        self._require_connected()

        try:
            response = self.session.get(
                f"{self.rpc_url}/abci_query",
                params={"path": f'"/custom/nft/balance/{owner}"'},
                headers={"Content-Type": "application/json"},
                timeout=ASSET_QUERY_TIMEOUT,
            )
            if not response.ok:
                raise requests.HTTPError(_http_error_message(response), response=response)
            data = response.json()
        except (requests.RequestException, ValueError) as e:
            self.logger.error(f"Failed to query NFT balance for {owner}: {e}")
            return []

        try:
            raw_value = ((data.get("result") or {}).get("response") or {}).get("value") or "[]"
            records = json.loads(raw_value)
            if not isinstance(records, list):
                raise ValueError(f"expected a list, got {type(records).__name__}")
            assets = [Asset.from_chain_record(record, owner) for record in records]
        except (AttributeError, TypeError, ValueError) as e:
            self.logger.warning(f"Failed to parse NFT data, returning empty list: {e}")
            return []

        self.logger.info(f"Found {len(assets)} Glitch NFTs for address {owner}")
        return assets

    def _sanitize_payload(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """
        Remove signature material from a broadcast body for logging
        """
        result = dict(payload)
        if "signature" in result:
            result["signature"] = f"[REDACTED - {len(str(result['signature']))} chars]"
        return result
