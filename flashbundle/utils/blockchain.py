"""
Blockchain interaction utilities for flashbundle

Defines the small set of chain capabilities the bundle client relies on
(ChainClient) and a Web3-backed implementation of it.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Optional, Protocol, Tuple, runtime_checkable

import aiohttp
from hexbytes import HexBytes
from web3 import AsyncWeb3
from web3.exceptions import BlockNotFound

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BlockInfo:
    """Block information data structure"""
    number: int
    hash: Optional[HexBytes]
    transactions: Tuple[HexBytes, ...] = field(default_factory=tuple)
    timestamp: Optional[int] = None

    def contains_all(self, tx_hashes) -> bool:
        """True when every hash in tx_hashes is part of this block"""
        block_hashes = {bytes(tx) for tx in self.transactions}
        return all(bytes(HexBytes(tx)) in block_hashes for tx in tx_hashes)


@runtime_checkable
class ChainClient(Protocol):
    """Chain capabilities required by the bundle middleware and inclusion tracker"""

    async def get_block_number(self) -> int:
        ...

    async def get_block(self, block_number: int) -> Optional[BlockInfo]:
        """Return the block, or None if the node does not have it yet"""
        ...

    async def wait_for_block(self, after: int) -> int:
        """Suspend until the chain head is above `after`; return the new head"""
        ...

    async def make_request(self, method: str, params: Any) -> Any:
        ...


class Web3ChainClient:
    """ChainClient backed by web3's AsyncWeb3"""

    def __init__(self,
                 w3: AsyncWeb3,
                 poll_interval: float = 1.0):
        """
        Initialize chain client

        Args:
            w3: Connected AsyncWeb3 instance
            poll_interval: Seconds between head polls while waiting for a new block
        """
        self.w3 = w3
        self.poll_interval = poll_interval

        self._latest_block = -1
        # One head poll at a time; every waiter reuses its result
        self._head_lock = asyncio.Lock()

    @classmethod
    def from_url(cls, rpc_url: str, timeout: int = 30, poll_interval: float = 1.0) -> "Web3ChainClient":
        """Create a client for an HTTP JSON-RPC endpoint"""
        provider = AsyncWeb3.AsyncHTTPProvider(
            rpc_url,
            request_kwargs={'timeout': aiohttp.ClientTimeout(total=timeout)}
        )
        w3 = AsyncWeb3(provider)
        logger.info(f"Initialized chain client: {rpc_url}")
        return cls(w3, poll_interval=poll_interval)

    @property
    def latest_block(self) -> int:
        """Highest head seen so far, -1 before the first query"""
        return self._latest_block

    async def get_block_number(self) -> int:
        block_number = await self.w3.eth.block_number
        if block_number > self._latest_block:
            self._latest_block = block_number
        return block_number

    async def get_block(self, block_number: int) -> Optional[BlockInfo]:
        """
        Get a block with its transaction hashes

        Args:
            block_number: Block height

        Returns:
            BlockInfo, or None if the block is not available yet
        """
        try:
            block = await self.w3.eth.get_block(block_number, full_transactions=False)
        except BlockNotFound:
            logger.debug(f"Block not found: {block_number}")
            return None

        if block.get('number') is None:
            # pending block
            return None

        return BlockInfo(
            number=block['number'],
            hash=HexBytes(block['hash']) if block.get('hash') is not None else None,
            transactions=tuple(HexBytes(tx) for tx in block.get('transactions', [])),
            timestamp=block.get('timestamp'),
        )

    async def wait_for_block(self, after: int) -> int:
        """
        Wait for the chain head to move past a height

        All concurrent waiters share a single polling loop, so tracking many
        bundles does not multiply the load on the RPC endpoint.

        Args:
            after: Height the caller has already seen

        Returns:
            The new chain head (> after)
        """
        while True:
            if self._latest_block > after:
                return self._latest_block

            async with self._head_lock:
                if self._latest_block > after:
                    return self._latest_block

                head = await self.get_block_number()
                if head > after:
                    return head

                await asyncio.sleep(self.poll_interval)

    async def make_request(self, method: str, params: Any) -> Any:
        """Forward an arbitrary JSON-RPC call to the node"""
        return await self.w3.provider.make_request(method, params)
