"""
Network configuration for the IntentFlow SDK.

Endpoints ship in ``networks.json`` and can be overridden per network
through environment variables.
"""
import importlib.resources
import json
import logging
import os
from typing import Dict, Any, Optional

logger = logging.getLogger(__name__)

DEFAULT_NETWORK = "anoma-testnet"
DEFAULT_RPC_ENDPOINT = "https://testnet.anoma.network"
DEFAULT_CHAIN_ID = "anoma-test.anoma"
LEDGER_PATH_ENV = "INTENTFLOW_LEDGER_PATH"
DEFAULT_LEDGER_PATH = "~/.intentflow/ledger.json"


class NetworkConfig:
    """Lookup of chain endpoints with a class-level cache of ``networks.json``."""

    _networks_cache: Optional[Dict[str, Any]] = None

    @classmethod
    def load_networks(cls) -> Dict[str, Any]:
        """
        Load the packaged network definitions.

        Returns:
            Mapping of network name to configuration
        """
        if cls._networks_cache is not None:
            return cls._networks_cache

        resource = importlib.resources.files("intentflow_sdk").joinpath("networks.json")
        with resource.open("r", encoding="utf-8") as f:
            cls._networks_cache = json.load(f)
        return cls._networks_cache

    @classmethod
    def get_network(cls, network: str = DEFAULT_NETWORK) -> Dict[str, Any]:
        """
        Get the configuration of a single chain network.

        Raises:
            ValueError: If the network is not defined
        """
        networks = cls.load_networks()
        if network == "evm" or network not in networks:
            available = ", ".join(sorted(k for k in networks if k != "evm"))
            raise ValueError(f"Unknown network: {network}. Available networks: {available}")
        return networks[network]

    @classmethod
    def get_rpc_url(cls, network: str = DEFAULT_NETWORK) -> str:
        """
        Resolve the RPC base URL of a chain network.

        The environment variable named by ``rpcEnv`` wins over the
        packaged default. A missing or unreadable ``networks.json`` falls
        back to the public testnet.
        """
        try:
            config = cls.get_network(network)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Could not load network definitions, using default RPC: {e}")
            return os.environ.get("INTENTFLOW_RPC_ENDPOINT") or DEFAULT_RPC_ENDPOINT

        env_name = config.get("rpcEnv")
        override = os.environ.get(env_name) if env_name else None
        return (override or config.get("rpc") or DEFAULT_RPC_ENDPOINT).rstrip("/")

    @classmethod
    def get_chain_id(cls, network: str = DEFAULT_NETWORK) -> str:
        return cls.get_network(network).get("chainId", DEFAULT_CHAIN_ID)

    @classmethod
    def get_evm_rpc_url(cls, chain_id: int) -> str:
        """
        Resolve the JSON-RPC URL of an EVM chain.

        Raises:
            ValueError: If no RPC URL is configured for ``chain_id``
        """
        evm = cls.load_networks().get("evm", {})
        config = evm.get(str(chain_id))
        if not config:
            raise ValueError(f"No RPC URL configured for chain ID {chain_id}")
        env_name = config.get("rpcEnv")
        return (os.environ.get(env_name) if env_name else None) or config["rpc"]


def default_ledger_path() -> str:
    return os.path.expanduser(os.environ.get(LEDGER_PATH_ENV, DEFAULT_LEDGER_PATH))
