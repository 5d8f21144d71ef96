#!/usr/bin/env python3
"""
Broadcast Bundle Example

Sends the same raw, already-signed transactions to every builder listed under
the `broadcast` relay in relays.yaml and reports which builders accepted them.

Usage:
    python examples/broadcast_bundle.py 0x02f8... 0x02f8... --blocks 3
"""

import argparse
import asyncio
import sys
from pathlib import Path

# Add project root to Python path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from flashbundle import BroadcastMiddleware, BundleRequest, PendingBundle, Web3ChainClient
from flashbundle.config import get_relay_config
from flashbundle.utils import setup_environment, setup_logging


async def run_broadcast(args) -> int:
    config = get_relay_config('broadcast')
    chain = Web3ChainClient.from_url(args.rpc_url)
    middleware = BroadcastMiddleware.from_config(chain, config)

    head = await chain.get_block_number()
    included = 0

    # the same bundle is offered for several consecutive blocks
    for target in range(head + 1, head + 1 + args.blocks):
        bundle = BundleRequest().set_block(target)
        for raw in args.transactions:
            bundle.push_transaction(raw)

        results = await middleware.send_bundle(bundle)
        accepted = []
        for url, result in zip(middleware.builder_urls, results):
            if isinstance(result, PendingBundle):
                accepted.append(result)
                print(f"  block {target}: accepted by {url}")
            else:
                print(f"  block {target}: {url} rejected: {result}")

        if accepted:
            outcome = await accepted[0].wait()
            print(f"Block {target}: {outcome.state.value}")
            if outcome.included:
                included += 1
                break

    return included


def main():
    """Main entry point"""
    parser = argparse.ArgumentParser(description="Broadcast a bundle to several block builders")
    parser.add_argument('transactions', nargs='+', help='Signed raw transactions (0x-hex)')
    parser.add_argument('--rpc-url', default='http://127.0.0.1:8545', help='Chain JSON-RPC endpoint')
    parser.add_argument('--blocks', type=int, default=1, help='Number of consecutive blocks to target')
    parser.add_argument('--json-logs', action='store_true', help='Emit structured JSON logs')
    args = parser.parse_args()

    setup_environment()
    setup_logging("INFO", structured=args.json_logs)

    included = asyncio.run(run_broadcast(args))
    return 0 if included else 1


if __name__ == "__main__":
    exit(main())
