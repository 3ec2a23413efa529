"""
Tests for the IntentClient session facade.
"""
import os
import threading
from unittest.mock import MagicMock, patch

import pytest
from eth_account import Account

from intentflow_sdk import IntentClient
from intentflow_sdk.exceptions import (
    ErrorCode, IntentNotFoundError, InvalidIntentError, SignerRejectedError,
    UnknownAssetTypeError, UnknownIntentKindError, WalletNotConnectedError, WalletNotFoundError
)
from intentflow_sdk.models import ConnectionState, IntentKind, IntentStatus, TxStatus
from intentflow_sdk.tracker import TransactionTracker

from conftest import (
    OTHER_OWNER, TEST_CHAIN_ID, TEST_OWNER, TEST_PRIV_KEY, TEST_RPC_URL, TEST_TX_HASH,
    balance_response, tx_response
)

BROADCAST_URL = f"{TEST_RPC_URL}/broadcast_tx_async"
TX_URL = f"{TEST_RPC_URL}/tx"
ABCI_URL = f"{TEST_RPC_URL}/abci_query"


@pytest.fixture
def client(connected, ledger, wallet, evm_account, mock_w3):
    client = IntentClient(
        connection=connected,
        ledger=ledger,
        wallet=wallet,
        evm_signer=evm_account,
        w3=mock_w3,
        chain_id=TEST_CHAIN_ID,
        confirmation_timeout=5,
        poll_interval=0,
    )
    yield client
    client.close()


class TestIntents:

    def test_create_intent(self, client):
        intent = client.create_intent("bridge", amount=2, from_chain="ethereum", to_chain="polygon")

        assert intent.kind is IntentKind.BRIDGE
        assert intent.status is IntentStatus.PENDING
        assert intent.amount == "2"
        assert intent.chains == ["ethereum", "polygon"]
        assert client.get_intent(intent.id) == intent

    def test_explicit_chains(self, client):
        intent = client.create_intent(IntentKind.STAKE, chains=["anoma"])
        assert intent.chains == ["anoma"]

    def test_unknown_kind(self, client):
        with pytest.raises(UnknownIntentKindError):
            client.create_intent("teleport")
        assert client.list_intents() == []

    @pytest.mark.parametrize("amount", ["0", "-1", "abc", 0])
    def test_invalid_amount(self, client, amount):
        with pytest.raises(InvalidIntentError, match="valid amount"):
            client.create_intent("swap", amount=amount)

    def test_unknown_field(self, client):
        with pytest.raises(InvalidIntentError, match="colour"):
            client.create_intent("swap", colour="red")

    def test_list_newest_first_and_clear(self, client):
        first = client.create_intent("swap")
        second = client.create_intent("stake")

        assert [i.id for i in client.list_intents()] == [second.id, first.id]

        client.clear_intents()
        assert client.list_intents() == []

    def test_unknown_intent(self, client):
        with pytest.raises(IntentNotFoundError):
            client.get_intent("intent-0-000000")
        with pytest.raises(IntentNotFoundError):
            client.process_intent("intent-0-000000")


class TestProcessing:

    def test_process_swap(self, client, mock_w3):
        intent = client.create_intent("swap", amount="1")

        result = client.process_intent(intent.id)

        assert result.status is IntentStatus.COMPLETED
        assert client.get_intent(intent.id) == result
        assert [r.hash for r in client.transaction_history()] == [result.tx_hash]
        assert not client.is_processing

    def test_process_twice_is_a_no_op(self, client, mock_w3):
        intent = client.create_intent("swap")

        first = client.process_intent(intent.id)
        second = client.process_intent(intent.id)

        assert first == second
        mock_w3.eth.send_raw_transaction.assert_called_once()

    def test_failure_is_stored(self, client, mock_w3):
        mock_w3.eth.get_balance.return_value = 0
        intent = client.create_intent("yield")

        result = client.process_intent(intent.id)

        assert client.get_intent(intent.id).status is IntentStatus.FAILED
        assert result.error_code is ErrorCode.INSUFFICIENT_BALANCE

    def test_clear_during_processing_drops_result(self, client):
        intent = client.create_intent("swap")

        def run(processing):
            client.clear_intents()
            return processing.transition(IntentStatus.COMPLETED, tx_hash="0x01")

        client.processor.run = run
        result = client.process_intent(intent.id)

        assert result.status is IntentStatus.COMPLETED
        assert client.list_intents() == []

    def test_out_of_order_resolution(self, client, ledger, requests_mock):
        """
        Trade A is broadcast first but resolves after trade B; both end up
        completed and the history keeps broadcast order (newest first).
        """
        asset_a = ledger.mint("swap-master", TEST_OWNER)
        asset_b = ledger.mint("stake-sentinel", TEST_OWNER)
        intent_a = client.create_intent("trade", give_asset_id=asset_a.id,
                                        receive_asset_type="bridge-guardian", owner=TEST_OWNER)
        intent_b = client.create_intent("trade", give_asset_id=asset_b.id,
                                        receive_asset_type="yield-harvester", owner=TEST_OWNER)
        hashes = {intent_a.id: "A" * 64, intent_b.id: "B" * 64}
        a_broadcast = threading.Event()
        b_resolved = threading.Event()

        def broadcast(request, context):
            intent_id = request.json()["tx"]["msgs"][0]["value"]["intent_id"]
            if intent_id == intent_a.id:
                a_broadcast.set()
            return {"hash": hashes[intent_id]}

        def tx_status(request, context):
            if request.qs["hash"][0] == "0x" + ("a" * 64):
                b_resolved.wait(timeout=5)
            else:
                b_resolved.set()
            return tx_response(code=0)

        post = requests_mock.post(BROADCAST_URL, json=broadcast)
        requests_mock.get(TX_URL, json=tx_status)

        future_a = client.process_intent_async(intent_a.id)
        assert a_broadcast.wait(timeout=5)

        # A is in flight: a second call neither waits nor rebroadcasts
        assert client.is_processing
        assert client.process_intent(intent_a.id).status is IntentStatus.PROCESSING

        result_b = client.process_intent(intent_b.id)
        result_a = future_a.result(timeout=10)

        assert result_a.status is IntentStatus.COMPLETED
        assert result_b.status is IntentStatus.COMPLETED
        assert result_a.tx_hash == "A" * 64
        assert post.call_count == 2
        history = client.transaction_history()
        assert [r.hash for r in history] == ["B" * 64, "A" * 64]
        assert all(r.status is TxStatus.SUCCESS for r in history)
        assert not client.is_processing


class TestWallet:

    def test_connect_wallet(self, client):
        assert client.owner is None

        key = client.connect_wallet()

        assert key.bech32_address == TEST_OWNER
        assert client.owner == TEST_OWNER

        client.disconnect_wallet()
        assert client.owner is None

    def test_no_wallet(self, connected, ledger):
        client = IntentClient(connection=connected, ledger=ledger, chain_id=TEST_CHAIN_ID)

        with pytest.raises(WalletNotFoundError):
            client.connect_wallet()

    def test_wallet_refuses(self, connected, ledger):
        wallet = MagicMock()
        wallet.enable.side_effect = RuntimeError("user dismissed")
        client = IntentClient(connection=connected, ledger=ledger, wallet=wallet, chain_id=TEST_CHAIN_ID)

        with pytest.raises(SignerRejectedError, match="user dismissed"):
            client.connect_wallet()
        assert client.owner is None

    def test_get_balance(self, client, mock_w3, evm_account):
        assert client.get_balance() == "1"
        mock_w3.eth.get_balance.assert_called_with(evm_account.address)

    def test_get_balance_on_other_chain(self, client, mock_w3):
        polygon = MagicMock()
        polygon.eth.get_balance.return_value = 2 * 10**18

        with patch.object(client, "_evm_web3", return_value=polygon) as switch:
            assert client.get_balance(evm_chain_id=137) == "2"

        switch.assert_called_once_with(137)
        mock_w3.eth.get_balance.assert_not_called()

    def test_chain_clients_are_cached(self, client):
        with patch.dict(os.environ, {"INTENTFLOW_POLYGON_RPC": "https://polygon.example.com"}), \
                patch("intentflow_sdk.client.Web3") as web3_cls:
            first = client._evm_web3(137)
            second = client._evm_web3(137)

        assert first is second
        web3_cls.HTTPProvider.assert_called_once_with("https://polygon.example.com")

    def test_get_balance_unknown_chain(self, client):
        with pytest.raises(ValueError, match="chain ID 999999"):
            client.get_balance(evm_chain_id=999999)

    def test_get_balance_without_signer(self, connected, ledger):
        client = IntentClient(connection=connected, ledger=ledger, chain_id=TEST_CHAIN_ID)

        with pytest.raises(WalletNotConnectedError):
            client.get_balance()

    def test_priv_key_builds_signer(self, connected, ledger):
        with patch.dict(os.environ, {"INTENTFLOW_POLYGON_RPC": "https://polygon.example.com"}):
            client = IntentClient(connection=connected, ledger=ledger, priv_key=TEST_PRIV_KEY,
                                  evm_chain_id=137, chain_id=TEST_CHAIN_ID)

        assert client.evm_signer.address == Account.from_key(TEST_PRIV_KEY).address
        assert client.w3 is not None
        assert client.processor.evm_signer is client.evm_signer


class TestAssets:

    def test_mint_requires_owner(self, client):
        with pytest.raises(WalletNotConnectedError):
            client.mint_asset("swap-master")

    def test_mint_for_connected_wallet(self, client):
        client.connect_wallet()

        asset = client.mint_asset("swap-master")

        assert asset.owner == TEST_OWNER
        assert client.list_assets() == [asset]

    def test_mint_unknown_type(self, client):
        with pytest.raises(UnknownAssetTypeError):
            client.mint_asset("dragon", owner=TEST_OWNER)

    def test_mint_on_chain_tracks_transaction(self, client, requests_mock):
        requests_mock.post(BROADCAST_URL, json={"hash": TEST_TX_HASH})

        asset = client.mint_asset("fusion-catalyst", owner=TEST_OWNER, on_chain=True)

        assert client.ledger.get_by_id(asset.id) == asset
        assert client.transaction_history()[0].hash == TEST_TX_HASH

    def test_transfer_and_upgrade(self, client):
        asset = client.mint_asset("stake-sentinel", owner=TEST_OWNER)

        assert client.upgrade_asset(asset.id, owner=TEST_OWNER)
        assert client.transfer_asset(asset.id, OTHER_OWNER, from_owner=TEST_OWNER)
        assert not client.transfer_asset(asset.id, TEST_OWNER, from_owner=TEST_OWNER)

        assert client.list_assets(OTHER_OWNER)[0].level == 2
        assert client.list_assets(TEST_OWNER) == []

    def test_list_all_without_owner(self, client):
        client.mint_asset("swap-master", owner=TEST_OWNER)
        client.mint_asset("swap-master", owner=OTHER_OWNER)

        assert len(client.list_assets()) == 2

    def test_refresh_assets(self, client, requests_mock):
        requests_mock.get(ABCI_URL, json=balance_response([
            {"id": "chain-7", "type_id": "yield-harvester", "name": "Yield Harvester", "level": 4},
        ]))

        assets = client.refresh_assets(TEST_OWNER)

        assert [a.id for a in assets] == ["chain-7"]
        assert client.ledger.get_by_id("chain-7").level == 4

    def test_refresh_after_successful_trade(self, client, ledger, requests_mock):
        """A successful transaction pulls the owner's Glitches from the chain"""
        client.connect_wallet()
        asset = ledger.mint("swap-master", TEST_OWNER)
        requests_mock.post(BROADCAST_URL, json={"hash": TEST_TX_HASH})
        requests_mock.get(TX_URL, json=tx_response(code=0))
        balance = requests_mock.get(ABCI_URL, json=balance_response([
            {"id": "chain-new", "type_id": "bridge-guardian", "name": "Bridge Guardian", "rarity": "epic"},
        ]))
        intent = client.create_intent("trade", give_asset_id=asset.id, receive_asset_type="bridge-guardian")

        result = client.process_intent(intent.id)

        assert result.status is IntentStatus.COMPLETED
        assert balance.call_count == 1
        assert client.ledger.get_by_id("chain-new").owner == TEST_OWNER

    def test_refresh_failure_does_not_fail_intent(self, client, ledger, requests_mock):
        client.connect_wallet()
        asset = ledger.mint("swap-master", TEST_OWNER)
        requests_mock.post(BROADCAST_URL, json={"hash": TEST_TX_HASH})
        requests_mock.get(TX_URL, json=tx_response(code=0))
        requests_mock.get(ABCI_URL, status_code=500)
        intent = client.create_intent("trade", give_asset_id=asset.id, receive_asset_type="bridge-guardian")

        assert client.process_intent(intent.id).status is IntentStatus.COMPLETED
        assert [a.id for a in client.list_assets()] == [asset.id]


    def test_ledger_save_failure_does_not_fail_confirmed_trade(self, client, ledger, memory_store, requests_mock):
        client.connect_wallet()
        asset = ledger.mint("swap-master", TEST_OWNER)
        requests_mock.post(BROADCAST_URL, json={"hash": TEST_TX_HASH})
        requests_mock.get(TX_URL, json=tx_response(code=0))
        requests_mock.get(ABCI_URL, json=balance_response([
            {"id": "chain-new", "type_id": "bridge-guardian", "name": "Bridge Guardian"},
        ]))
        intent = client.create_intent("trade", give_asset_id=asset.id, receive_asset_type="bridge-guardian")

        with patch.object(memory_store, "save", side_effect=OSError("disk full")):
            result = client.process_intent(intent.id)

        assert result.status is IntentStatus.COMPLETED
        assert result.tx_hash == TEST_TX_HASH
        assert client.tracker.get(TEST_TX_HASH).status is TxStatus.SUCCESS

class TestSession:

    def test_connection_passthrough(self, client):
        assert client.connect().state is ConnectionState.CONNECTED
        assert client.get_status().state is ConnectionState.CONNECTED

        client.disconnect()
        assert client.get_status().state is ConnectionState.DISCONNECTED

    def test_refresh_and_clear_transactions(self, client, requests_mock):
        requests_mock.get(TX_URL, json=tx_response(code=0))
        client.tracker.record(TEST_TX_HASH)

        assert client.refresh_transaction(TEST_TX_HASH).status is TxStatus.SUCCESS

        client.clear_transactions()
        assert client.transaction_history() == []

    def test_injected_collaborators(self, connected, ledger):
        tracker = TransactionTracker(connected)
        processor = MagicMock()

        client = IntentClient(connection=connected, ledger=ledger, tracker=tracker,
                              processor=processor, chain_id=TEST_CHAIN_ID)

        assert client.tracker is tracker
        assert tracker.on_success == client._on_transaction_success
        assert client.processor is processor
        client.close()

    def test_empty_injected_ledger_is_used(self, connected, ledger):
        assert len(ledger) == 0

        client = IntentClient(connection=connected, ledger=ledger, chain_id=TEST_CHAIN_ID)

        assert client.ledger is ledger
        assert client.processor.ledger is ledger
        assert client.connection is connected
        client.close()

    def test_context_manager_closes_connection(self, connected, ledger):
        with IntentClient(connection=connected, ledger=ledger, chain_id=TEST_CHAIN_ID) as client:
            assert client.get_status().state is ConnectionState.CONNECTED

        assert connected.get_status().state is ConnectionState.DISCONNECTED
