#!/usr/bin/env python3
"""
Simple example of using the IntentFlow SDK.
"""
import os

from intentflow_sdk import IntentClient, IntentFlowError, IntentStatus
from intentflow_sdk.signer.local import LocalWallet


def main():
    """
    Demonstrate basic usage of the IntentClient.

    This example shows how to:
    1. Connect to the Anoma endpoint and a local wallet
    2. Mint a Glitch into the local ledger
    3. Trade it through a signed intent and wait for the outcome
    """
    # Read configuration from environment
    RPC_URL = os.environ.get("INTENTFLOW_RPC_ENDPOINT", "https://testnet.anoma.network")
    PRIVATE_KEY = os.environ.get("PRIVATE_KEY")
    OWNER = os.environ.get("ANOMA_ADDRESS")

    if not PRIVATE_KEY:
        print("ERROR: PRIVATE_KEY environment variable is required")
        return

    wallet = LocalWallet(PRIVATE_KEY, bech32_address=OWNER)

    with IntentClient(rpc_url=RPC_URL, wallet=wallet) as client:
        status = client.connect()
        print(f"Connection: {status.state.value} (height {status.block_height})")

        key = client.connect_wallet()
        print(f"Wallet: {key.bech32_address}")

        glitch = client.mint_asset("swap-master")
        print(f"Minted {glitch.name} ({glitch.id})")

        try:
            intent = client.create_intent(
                "trade",
                give_asset_id=glitch.id,
                receive_asset_type="bridge-guardian",
                description="Trade my Swap Master for a Bridge Guardian",
            )
            result = client.process_intent(intent.id)
        except IntentFlowError as e:
            print(f"Error processing intent: {e}")
            return

        if result.status is IntentStatus.COMPLETED:
            print(f"Intent completed! Transaction hash: {result.tx_hash}")
        else:
            print(f"Intent failed [{result.error_code.value}]: {result.error}")

        for record in client.transaction_history():
            print(f"  {record.hash}: {record.status.value}")


if __name__ == "__main__":
    main()
