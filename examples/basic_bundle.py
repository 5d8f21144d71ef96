#!/usr/bin/env python3
"""
Basic Bundle Example

Signs a self-transfer, simulates it as a one-transaction bundle and submits
it for the next block, then waits for the inclusion outcome.

Usage:
    python examples/basic_bundle.py --rpc-url http://127.0.0.1:8545 --relay flashbots_sepolia

Environment:
    FLASHBOTS_SIGNER_KEY  searcher identity key (signs relay requests only)
    WALLET_PRIVATE_KEY    key that signs the transaction itself
"""

import argparse
import asyncio
import sys
from pathlib import Path

from eth_account import Account

# Add project root to Python path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from flashbundle import BundleMiddleware, BundleRequest, FlashbundleError, Web3ChainClient
from flashbundle.config import get_relay_config
from flashbundle.utils import get_env_var, setup_environment, setup_logging


async def sign_self_transfer(chain: Web3ChainClient, wallet, priority_fee_gwei: float):
    """Sign a zero-value transfer to ourselves, priced for the next block"""
    w3 = chain.w3
    latest = await w3.eth.get_block('latest')
    priority_fee = w3.to_wei(priority_fee_gwei, 'gwei')

    tx = {
        'to': wallet.address,
        'value': 0,
        'gas': 21000,
        'maxFeePerGas': latest['baseFeePerGas'] * 2 + priority_fee,
        'maxPriorityFeePerGas': priority_fee,
        'nonce': await w3.eth.get_transaction_count(wallet.address),
        'chainId': await w3.eth.chain_id,
        'type': 2,
    }
    return wallet.sign_transaction(tx)


async def run_basic_bundle(args) -> bool:
    """Simulate and submit a single bundle"""
    config = get_relay_config(args.relay)
    chain = Web3ChainClient.from_url(args.rpc_url)
    middleware = BundleMiddleware.from_config(chain, config)
    wallet = Account.from_key(get_env_var('WALLET_PRIVATE_KEY', required=True))

    print(f"Relay:    {middleware.relay_url}")
    print(f"Identity: {middleware.identity_address}")
    print(f"Wallet:   {wallet.address}")

    head = await chain.get_block_number()
    signed = await sign_self_transfer(chain, wallet, args.priority_fee)

    bundle = (BundleRequest()
              .push_transaction(signed)
              .set_block(head + 1)
              .set_simulation_block(head))

    simulated = await middleware.simulate_bundle(bundle)
    for index, tx in enumerate(simulated.transactions):
        status = "ok" if tx.success else f"reverted ({tx.revert_reason or tx.error})"
        print(f"  tx {index}: gas={tx.gas_used} effective_price={tx.effective_gas_price} {status}")

    if not simulated.success:
        print("Simulation failed, not submitting")
        return False

    pending = await middleware.send_bundle(bundle)
    print(f"Submitted for block {pending.block}, waiting...")

    result = await pending.wait()
    print(f"Outcome: {result.state.value}")

    if pending.bundle_hash is not None:
        stats = await middleware.get_bundle_stats(pending.bundle_hash, pending.block)
        print(f"Relay stats: simulated={stats.is_simulated} high_priority={stats.is_high_priority}")

    return result.included


def main():
    """Main entry point"""
    parser = argparse.ArgumentParser(description="Send a one-transaction bundle to a private relay")
    parser.add_argument('--rpc-url', default='http://127.0.0.1:8545', help='Chain JSON-RPC endpoint')
    parser.add_argument('--relay', default=None, help='Relay name from relays.yaml')
    parser.add_argument('--priority-fee', type=float, default=2.0, help='Priority fee in gwei')
    parser.add_argument('--log-level', default='INFO')
    args = parser.parse_args()

    setup_environment()
    setup_logging(args.log_level)

    try:
        included = asyncio.run(run_basic_bundle(args))
        return 0 if included else 1
    except FlashbundleError as e:
        print(f"Failed: {e}")
        return 1


if __name__ == "__main__":
    exit(main())
