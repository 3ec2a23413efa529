"""
Signer interfaces for the IntentFlow SDK.

Two signing capabilities are used:

* ``Signer`` signs EVM transactions (any ``eth_account`` LocalAccount fits).
* ``WalletSigner`` is a browser-extension style chain wallet that signs
  amino sign documents for the Anoma endpoint.
"""
import json
import logging
from dataclasses import dataclass
from typing import Dict, Any, List, Optional, Protocol

from ..exceptions import IntentFlowError, SignerRejectedError, WalletNotFoundError
from ..models import SignedIntent

logger = logging.getLogger(__name__)

DEFAULT_FEE = {"amount": [{"denom": "nam", "amount": "5000"}], "gas": "200000"}


class Signer(Protocol):
    """Protocol for EVM transaction signers"""
    address: str

    def sign_transaction(self, transaction_dict: Dict[str, Any]) -> Any:
        """Sign transaction and return signed tx object"""
        ...


@dataclass
class WalletKey:
    """Account key exposed by a chain wallet"""
    address: str
    bech32_address: str
    pub_key: str


@dataclass
class AminoSignature:
    """Result of ``sign_amino``"""
    signature: str
    pub_key: str


class WalletSigner(Protocol):
    """Protocol for chain wallets (Keplr-style extensions)"""

    def enable(self, chain_id: str) -> None:
        ...

    def get_offline_signer(self, chain_id: str) -> Any:
        ...

    def get_key(self, chain_id: str) -> WalletKey:
        ...

    def sign_amino(self, signer_address: str, sign_doc: Dict[str, Any]) -> AminoSignature:
        ...


def canonical_json(data: Dict[str, Any]) -> str:
    """Serialize a sign document deterministically."""
    return json.dumps(data, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def build_sign_doc(
    chain_id: str,
    msgs: List[Dict[str, Any]],
    memo: str = "",
    fee: Optional[Dict[str, Any]] = None,
    account_number: str = "0",
    sequence: str = "0"
) -> Dict[str, Any]:
    return {
        "chain_id": chain_id,
        "account_number": account_number,
        "sequence": sequence,
        "fee": fee or DEFAULT_FEE,
        "msgs": msgs,
        "memo": memo,
    }


def sign_intent_document(
    wallet: Optional[WalletSigner],
    chain_id: str,
    msgs: List[Dict[str, Any]],
    memo: str = ""
) -> SignedIntent:
    """
    Run the wallet signature round-trip for a list of messages.

    Args:
        wallet: Chain wallet, or None when no wallet is installed
        chain_id: Chain the document is signed for
        msgs: Amino messages to include
        memo: Optional memo

    Returns:
        SignedIntent ready for broadcast

    Raises:
        WalletNotFoundError: If ``wallet`` is None
        SignerRejectedError: If the wallet refuses or fails to sign
    """
    if wallet is None:
        raise WalletNotFoundError()

    try:
        wallet.enable(chain_id)
        key = wallet.get_key(chain_id)
        sign_doc = build_sign_doc(chain_id, msgs, memo)
        signature = wallet.sign_amino(key.bech32_address, sign_doc)
    except IntentFlowError:
        raise
    except Exception as e:
        logger.error(f"Wallet signing failed: {e}")
        raise SignerRejectedError(f"Failed to sign intent: {e}") from e

    return SignedIntent(
        intent=sign_doc,
        signature=signature.signature,
        public_key=signature.pub_key,
        address=key.bech32_address,
    )


__all__ = [
    "Signer",
    "WalletSigner",
    "WalletKey",
    "AminoSignature",
    "build_sign_doc",
    "canonical_json",
    "sign_intent_document",
    "DEFAULT_FEE",
]
