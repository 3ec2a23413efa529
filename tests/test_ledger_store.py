"""
Tests for the ledger storage adapters.
"""
import json
import os
from unittest.mock import patch

from intentflow_sdk.config import LEDGER_PATH_ENV
from intentflow_sdk.ledger import AssetLedger, FileLedgerStore, LEDGER_KEY, MemoryLedgerStore

from conftest import TEST_OWNER


class TestMemoryLedgerStore:

    def test_empty(self):
        assert MemoryLedgerStore().load() == {}

    def test_counts_writes(self):
        store = MemoryLedgerStore()
        ledger = AssetLedger(store=store)
        ledger.mint("swap-master", TEST_OWNER)
        ledger.mint("swap-master", TEST_OWNER)

        assert store.writes == 2
        assert len(json.loads(store.data)[LEDGER_KEY]) == 2

    def test_wrong_shape(self):
        assert MemoryLedgerStore(initial='["a", "b"]').load() == {}
        assert MemoryLedgerStore(initial='{"glitches": []}').load() == {}


class TestFileLedgerStore:

    def test_missing_file(self, tmp_path):
        store = FileLedgerStore(str(tmp_path / "ledger.json"))
        assert store.load() == {}

    def test_persistence_across_instances(self, tmp_path):
        path = tmp_path / "nested" / "ledger.json"
        ledger = AssetLedger(store=FileLedgerStore(str(path)))
        asset = ledger.mint("bridge-guardian", TEST_OWNER)
        ledger.upgrade(asset.id, TEST_OWNER)

        reloaded = AssetLedger(store=FileLedgerStore(str(path)))

        assert reloaded.get_by_id(asset.id).level == 2
        document = json.loads(path.read_text())
        assert list(document) == [LEDGER_KEY]
        assert document[LEDGER_KEY][asset.id]["type_id"] == "bridge-guardian"
        assert not path.with_suffix(".json.tmp").exists()

    def test_corrupt_file(self, tmp_path):
        path = tmp_path / "ledger.json"
        path.write_text("{definitely not json")

        assert FileLedgerStore(str(path)).load() == {}

    def test_unexpected_shape(self, tmp_path):
        path = tmp_path / "ledger.json"
        path.write_text("[1, 2, 3]")

        assert FileLedgerStore(str(path)).load() == {}

    def test_default_path_from_env(self, tmp_path):
        path = tmp_path / "env-ledger.json"
        with patch.dict(os.environ, {LEDGER_PATH_ENV: str(path)}):
            store = FileLedgerStore()

        assert store.path == path
