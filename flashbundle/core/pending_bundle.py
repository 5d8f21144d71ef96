"""
Inclusion tracking for submitted bundles

After a relay accepts a bundle nothing guarantees it lands on chain. A
PendingBundle watches the chain and resolves, exactly once, to one of:
- INCLUDED: the target block contains every bundle transaction
- NOT_INCLUDED: the target block was produced without them
- QUERY_FAILED: too many consecutive chain queries failed, or the caller cancelled

The tracker does not run its own poll loop. It is driven by new chain heads,
either through wait() (which suspends on the chain client's new-block signal)
or by feeding heights to observe() from any other head source.
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Sequence

from hexbytes import HexBytes

from .errors import InclusionQueryError
from ..utils.blockchain import BlockInfo, ChainClient

logger = logging.getLogger(__name__)

DEFAULT_MAX_QUERY_FAILURES = 3
DEFAULT_RETRY_INTERVAL = 1.0


class InclusionState(Enum):
    """Resolution state of a pending bundle"""
    WAITING = "waiting"
    INCLUDED = "included"
    NOT_INCLUDED = "not_included"
    QUERY_FAILED = "query_failed"

    @property
    def is_terminal(self) -> bool:
        return self is not InclusionState.WAITING


@dataclass(frozen=True)
class InclusionResult:
    """Final outcome of a pending bundle"""
    state: InclusionState
    target_block: int
    bundle_hash: Optional[HexBytes] = None
    block_hash: Optional[HexBytes] = None   # evidence, set when included

    @property
    def included(self) -> bool:
        return self.state is InclusionState.INCLUDED


class PendingBundle:
    """A bundle that has been submitted but not yet resolved"""

    def __init__(self,
                 bundle_hash: Optional[HexBytes],
                 block: int,
                 transactions: Sequence[bytes],
                 chain: ChainClient,
                 max_query_failures: int = DEFAULT_MAX_QUERY_FAILURES,
                 retry_interval: float = DEFAULT_RETRY_INTERVAL):
        """
        Initialize pending bundle

        Args:
            bundle_hash: Hash returned by the relay, if it returned one
            block: Target block number
            transactions: Bundle transaction hashes, in bundle order
            chain: Chain client used to look up the target block
            max_query_failures: Consecutive query failures before giving up
            retry_interval: Seconds to back off after a failed head query
        """
        if max_query_failures < 1:
            raise ValueError("max_query_failures must be at least 1")

        self.bundle_hash = HexBytes(bundle_hash) if bundle_hash is not None else None
        self.block = block
        self.transactions: List[HexBytes] = [HexBytes(tx) for tx in transactions]
        self.max_query_failures = max_query_failures
        self.retry_interval = retry_interval

        self._chain = chain
        self._state = InclusionState.WAITING
        self._last_height = -1
        self._failures = 0
        self._last_error: Optional[BaseException] = None
        self._result: Optional[InclusionResult] = None
        self._failure_reason = ""
        self._waiting = False
        # created by wait(); set once the bundle resolves
        self._resolved: Optional[asyncio.Event] = None

    def __repr__(self) -> str:
        return (f"PendingBundle(block={self.block}, transactions={len(self.transactions)}, "
                f"state={self._state.value})")

    def __await__(self):
        return self.wait().__await__()

    @property
    def state(self) -> InclusionState:
        return self._state

    @property
    def consecutive_failures(self) -> int:
        return self._failures

    @property
    def last_checked_height(self) -> int:
        return self._last_height

    # State machine

    async def observe(self, height: int) -> InclusionState:
        """
        Evaluate a newly observed chain height

        Heights below the last checked one are ignored. Below the target the
        bundle keeps waiting; at or past the target the target block is
        fetched and compared against the bundle's transaction hashes.

        Args:
            height: Observed chain head

        Returns:
            State after the observation
        """
        if self._state.is_terminal or height < self._last_height:
            return self._state

        self._last_height = height

        if height < self.block:
            self._failures = 0
            return self._state

        try:
            block = await self._chain.get_block(self.block)
        except Exception as e:
            self.record_failure(e)
            return self._state

        self._failures = 0

        if block is None:
            if height > self.block:
                # head moved past a target block the node cannot produce
                self._resolve(InclusionState.NOT_INCLUDED)
            return self._state

        self._evaluate(block)
        return self._state

    def _evaluate(self, block: BlockInfo) -> None:
        if block.contains_all(self.transactions):
            self._resolve(InclusionState.INCLUDED, block)
        else:
            self._resolve(InclusionState.NOT_INCLUDED, block)

    def record_failure(self, error: BaseException) -> InclusionState:
        """
        Count one failed chain query

        Args:
            error: The exception raised by the chain client

        Returns:
            State after counting the failure
        """
        if self._state.is_terminal:
            return self._state

        self._failures += 1
        self._last_error = error
        logger.warning(
            f"Inclusion query for block {self.block} failed "
            f"({self._failures}/{self.max_query_failures}): {error}"
        )

        if self._failures >= self.max_query_failures:
            self._failure_reason = f"{self._failures} consecutive chain queries failed"
            self._resolve(InclusionState.QUERY_FAILED)
        return self._state

    def cancel(self) -> None:
        """Stop tracking; a waiting bundle resolves as QUERY_FAILED"""
        if self._state.is_terminal:
            return
        self._failure_reason = "cancelled by caller"
        self._resolve(InclusionState.QUERY_FAILED)

    def _resolve(self, state: InclusionState, block: Optional[BlockInfo] = None) -> None:
        self._state = state
        self._result = InclusionResult(
            state=state,
            target_block=self.block,
            bundle_hash=self.bundle_hash,
            block_hash=block.hash if block is not None and state is InclusionState.INCLUDED else None,
        )
        if self._resolved is not None:
            self._resolved.set()

        if state is InclusionState.INCLUDED:
            logger.info(f"✅ Bundle included in block {self.block}")
        elif state is InclusionState.NOT_INCLUDED:
            logger.info(f"Bundle not included in block {self.block}")
        else:
            logger.warning(f"Stopped tracking bundle for block {self.block}: {self._failure_reason}")

    def result(self) -> InclusionResult:
        """
        Terminal outcome

        Raises:
            RuntimeError: While still waiting
            InclusionQueryError: If tracking failed or was cancelled
        """
        if self._result is None:
            raise RuntimeError("Bundle inclusion is still pending")
        if self._state is InclusionState.QUERY_FAILED:
            raise InclusionQueryError(
                f"Could not resolve inclusion for block {self.block}: {self._failure_reason}",
                self._last_error,
            )
        return self._result

    # Driving

    async def wait(self) -> InclusionResult:
        """
        Wait until the bundle resolves

        Suspends on the chain client's new-block signal; resolution is bounded
        by the target block. cancel() ends the wait immediately, even while
        the chain client is still waiting for a new head.

        Returns:
            InclusionResult for INCLUDED or NOT_INCLUDED

        Raises:
            InclusionQueryError: If chain queries kept failing or tracking was cancelled
        """
        if self._state.is_terminal:
            return self.result()
        if self._waiting:
            raise RuntimeError("PendingBundle is already being awaited")

        self._waiting = True
        self._resolved = asyncio.Event()
        try:
            while not self._state.is_terminal:
                try:
                    height = await self._next_head()
                except Exception as e:
                    self.record_failure(e)
                    if not self._state.is_terminal:
                        await self._pause(self.retry_interval)
                    continue

                if height is not None:
                    await self.observe(height)
        finally:
            self._waiting = False
            self._resolved = None

        return self.result()

    async def _next_head(self) -> Optional[int]:
        """New chain head, or None if the bundle resolved while waiting for it"""
        head = asyncio.ensure_future(self._chain.wait_for_block(self._last_height))
        resolved = asyncio.ensure_future(self._resolved.wait())
        try:
            await asyncio.wait({head, resolved}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in (head, resolved):
                if not task.done():
                    task.cancel()

        if not head.done() or head.cancelled():
            return None
        return head.result()

    async def _pause(self, delay: float) -> None:
        try:
            await asyncio.wait_for(self._resolved.wait(), timeout=delay)
        except asyncio.TimeoutError:
            pass
