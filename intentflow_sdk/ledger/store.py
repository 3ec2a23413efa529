"""
Durable storage adapters for the asset ledger.

Adapters own serialization: the ledger hands them ``Asset`` objects and
gets ``Asset`` objects back.
"""
import json
import logging
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, Any, Optional

import portalocker
from pydantic import ValidationError

from ..config import default_ledger_path
from ..models import Asset

logger = logging.getLogger(__name__)

LEDGER_KEY = "glitches"


def serialize_assets(assets: Dict[str, Asset]) -> Dict[str, Any]:
    return {asset_id: asset.model_dump(mode="json") for asset_id, asset in assets.items()}


def deserialize_assets(raw: Any) -> Dict[str, Asset]:
    """
    Rebuild the asset map from its stored form.

    Entries that fail validation are skipped with a warning.
    """
    if not isinstance(raw, dict):
        logger.warning(f"Ignoring ledger data of type {type(raw).__name__}")
        return {}

    assets = {}
    for asset_id, entry in raw.items():
        try:
            assets[asset_id] = Asset.model_validate(entry)
        except ValidationError as e:
            logger.warning(f"Skipping corrupt ledger entry {asset_id}: {e}")
    return assets


class LedgerStore(ABC):
    """Storage boundary of the asset ledger"""

    @abstractmethod
    def load(self) -> Dict[str, Asset]:
        """
        Read the persisted ledger.

        Returns:
            Asset map; empty when nothing (or nothing readable) is stored
        """
        pass

    @abstractmethod
    def save(self, assets: Dict[str, Asset]) -> None:
        """Persist the full ledger."""
        pass


class MemoryLedgerStore(LedgerStore):
    """Keeps the serialized ledger in memory; counts writes."""

    def __init__(self, initial: Optional[str] = None):
        self.data = initial
        self.writes = 0
        self._lock = threading.Lock()

    def load(self) -> Dict[str, Asset]:
        with self._lock:
            data = self.data
        if not data:
            return {}
        try:
            return deserialize_assets(json.loads(data).get(LEDGER_KEY, {}))
        except (ValueError, AttributeError) as e:
            logger.warning(f"Stored ledger is corrupt, starting empty: {e}")
            return {}

    def save(self, assets: Dict[str, Asset]) -> None:
        payload = json.dumps({LEDGER_KEY: serialize_assets(assets)})
        with self._lock:
            self.data = payload
            self.writes += 1


class FileLedgerStore(LedgerStore):
    """
    JSON file under a single ``glitches`` key, guarded by a lock file so
    several processes can share it.
    """

    def __init__(self, path: Optional[str] = None, lock_timeout: int = 10):
        self.path = Path(path or default_ledger_path())
        self.lock_timeout = lock_timeout

    def _get_lock_path(self) -> str:
        return str(self.path) + ".lock"

    def load(self) -> Dict[str, Asset]:
        if not self.path.exists():
            return {}
        with portalocker.Lock(self._get_lock_path(), timeout=self.lock_timeout):
            try:
                with open(self.path, "r", encoding="utf-8") as f:
                    document = json.load(f)
            except FileNotFoundError:
                return {}
            except (json.JSONDecodeError, UnicodeDecodeError) as e:
                logger.warning(f"Ledger file {self.path} is corrupt, starting empty: {e}")
                return {}
        if not isinstance(document, dict):
            logger.warning(f"Ledger file {self.path} has unexpected shape, starting empty")
            return {}
        return deserialize_assets(document.get(LEDGER_KEY, {}))

    def save(self, assets: Dict[str, Asset]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        document = {LEDGER_KEY: serialize_assets(assets)}
        with portalocker.Lock(self._get_lock_path(), timeout=self.lock_timeout):
            tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(document, f, indent=2)
            tmp_path.replace(self.path)
