"""
Pytest fixtures for the IntentFlow SDK tests.
"""
import json
import time
from unittest.mock import MagicMock

import pytest
from eth_account import Account

from intentflow_sdk._rate_limited_log import reset_rate_limits
from intentflow_sdk.config import NetworkConfig
from intentflow_sdk.connection import ConnectionManager
from intentflow_sdk.ledger import AssetLedger, MemoryLedgerStore
from intentflow_sdk.signer.local import LocalWallet

# Constants for testing
TEST_RPC_URL = "https://rpc.example.com"
TEST_CHAIN_ID = "anoma-test.anoma"
TEST_PRIV_KEY = "0x0123456789abcdef0123456789abcdef0123456789abcdef0123456789abcdef"
TEST_OWNER = "anoma1owner"
OTHER_OWNER = "anoma1someoneelse"
TEST_TX_HASH = "ABCDEF0123456789ABCDEF0123456789ABCDEF0123456789ABCDEF01234567"

STATUS_RESPONSE = {
    "result": {
        "node_info": {"network": TEST_CHAIN_ID},
        "sync_info": {"latest_block_height": "4242"},
    }
}


# 1) Make time.sleep instantaneous so polling loops don't slow the suite down
@pytest.fixture(autouse=True)
def _fast_sleep(monkeypatch):
    monkeypatch.setattr(time, "sleep", lambda *_a, **_kw: None)


@pytest.fixture(autouse=True)
def _reset_shared_state():
    reset_rate_limits()
    NetworkConfig._networks_cache = None
    yield
    NetworkConfig._networks_cache = None


class FakeTimer:
    """Stand-in for threading.Timer that only fires when told to"""

    def __init__(self, delay, fn):
        self.delay = delay
        self.fn = fn
        self.daemon = False
        self.started = False
        self.cancelled = False

    def start(self):
        self.started = True

    def cancel(self):
        self.cancelled = True

    def fire(self):
        self.fn()


class TimerRecorder:
    def __init__(self):
        self.timers = []

    def factory(self, delay, fn):
        timer = FakeTimer(delay, fn)
        self.timers.append(timer)
        return timer

    @property
    def delays(self):
        return [t.delay for t in self.timers]


@pytest.fixture
def timers():
    return TimerRecorder()


@pytest.fixture
def connection(timers):
    """Disconnected manager against the test endpoint"""
    return ConnectionManager(rpc_url=TEST_RPC_URL, timer_factory=timers.factory, retry_count=0)


@pytest.fixture
def status_ok(requests_mock):
    return requests_mock.get(f"{TEST_RPC_URL}/status", json=STATUS_RESPONSE)


@pytest.fixture
def connected(connection, status_ok):
    """Manager that has completed a successful probe"""
    connection.connect()
    assert connection.is_connected
    return connection


@pytest.fixture
def memory_store():
    return MemoryLedgerStore()


@pytest.fixture
def ledger(memory_store):
    return AssetLedger(store=memory_store)


@pytest.fixture
def wallet():
    return LocalWallet(TEST_PRIV_KEY, bech32_address=TEST_OWNER)


@pytest.fixture
def evm_account():
    return Account.from_key(TEST_PRIV_KEY)


@pytest.fixture
def mock_w3():
    """Web3 double with a funded account and a successful receipt"""
    w3 = MagicMock()
    w3.eth.get_balance.return_value = 10 ** 18
    w3.eth.estimate_gas.return_value = 21000
    w3.eth.get_transaction_count.return_value = 7
    w3.eth.gas_price = 10 ** 9
    w3.eth.chain_id = 1
    w3.eth.send_raw_transaction.return_value = bytes.fromhex("ab" * 32)
    w3.eth.wait_for_transaction_receipt.return_value = {"status": 1, "blockNumber": 123}
    return w3


def tx_response(code=0, log=None, height="77"):
    """Body of a /tx reply carrying ``code``"""
    tx_result = {"code": code}
    if log is not None:
        tx_result["log"] = log
    return {"result": {"height": height, "tx_result": tx_result}}


def balance_response(records):
    """Body of an /abci_query NFT balance reply"""
    return {"result": {"response": {"value": json.dumps(records)}}}
