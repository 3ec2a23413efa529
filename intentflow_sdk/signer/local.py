"""
In-process chain wallet backed by an ``eth_account`` key.
"""
import base64
import logging
from typing import Dict, Any, List, Optional, Set

from eth_account import Account
from eth_account.messages import encode_defunct
from eth_keys import keys

from ..exceptions import SignerRejectedError
from . import AminoSignature, WalletKey, canonical_json

logger = logging.getLogger(__name__)


class LocalWallet:
    """
    Chain wallet for scripts and tests.

    Signs the canonical JSON of an amino sign document as an EIP-191
    message. ``bech32_address`` is the owner identity reported to the
    chain; it defaults to the checksummed EVM address.
    """

    def __init__(self, private_key: str, bech32_address: Optional[str] = None):
        self.account = Account.from_key(private_key)
        self._public_key = keys.PrivateKey(bytes(self.account.key)).public_key
        self.bech32_address = bech32_address or self.account.address
        self._enabled: Set[str] = set()

    @property
    def address(self) -> str:
        return self.account.address

    @property
    def pub_key(self) -> str:
        return base64.b64encode(self._public_key.to_compressed_bytes()).decode("ascii")

    def enable(self, chain_id: str) -> None:
        self._enabled.add(chain_id)

    def _require_enabled(self, chain_id: str) -> None:
        if chain_id not in self._enabled:
            raise SignerRejectedError(f"Chain {chain_id} has not been enabled")

    def get_key(self, chain_id: str) -> WalletKey:
        self._require_enabled(chain_id)
        return WalletKey(
            address=self.account.address,
            bech32_address=self.bech32_address,
            pub_key=self.pub_key,
        )

    def get_offline_signer(self, chain_id: str) -> "LocalWallet":
        self._require_enabled(chain_id)
        return self

    def get_accounts(self) -> List[WalletKey]:
        return [WalletKey(self.account.address, self.bech32_address, self.pub_key)]

    def sign_amino(self, signer_address: str, sign_doc: Dict[str, Any]) -> AminoSignature:
        """
        Sign an amino document.

        Raises:
            SignerRejectedError: If ``signer_address`` is not this wallet
        """
        if signer_address != self.bech32_address:
            raise SignerRejectedError(f"Wallet does not hold a key for {signer_address}")

        message = encode_defunct(text=canonical_json(sign_doc))
        signed = self.account.sign_message(message)
        logger.debug(f"Signed amino document for {signer_address}")
        return AminoSignature(
            signature=base64.b64encode(bytes(signed.signature)).decode("ascii"),
            pub_key=self.pub_key,
        )
