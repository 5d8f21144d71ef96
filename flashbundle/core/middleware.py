"""
Bundle middleware

The composition point of flashbundle. BundleMiddleware wraps an existing
chain client: ordinary calls pass straight through to it, and bundle
operations (submit, simulate, stats, inclusion tracking) go to the relay.

BroadcastMiddleware sends the same bundle to several block builders at once.

NOTE: the middleware does not sign transactions. Sign them elsewhere and add
the signed bytes to a BundleRequest.
"""

import asyncio
import logging
from typing import Any, List, Optional, Sequence, Union

from eth_account.signers.local import LocalAccount
from hexbytes import HexBytes

from .bundle import BundleRequest
from .errors import RelayError, ResponseDecodeError, SigningError
from .pending_bundle import (
    DEFAULT_MAX_QUERY_FAILURES,
    DEFAULT_RETRY_INTERVAL,
    InclusionResult,
    PendingBundle,
)
from .relay import RelayClient
from .signing import RelaySigner
from .simulation import (
    BundleStats,
    SimulatedBundle,
    UserStats,
    decode_bundle_stats,
    decode_simulated_bundle,
    decode_user_stats,
)
from ..utils.blockchain import ChainClient
from ..utils.helpers import format_currency, get_env_var, to_hex_data, to_quantity, wei_to_eth

logger = logging.getLogger(__name__)

SEND_BUNDLE = "eth_sendBundle"
CALL_BUNDLE = "eth_callBundle"

STATS_METHODS = {
    1: ("flashbots_getUserStats", "flashbots_getBundleStats"),
    2: ("flashbots_getUserStatsV2", "flashbots_getBundleStatsV2"),
}

IDENTITY_KEY_ENV = "FLASHBOTS_SIGNER_KEY"

Identity = Union[str, bytes, LocalAccount]


class BundleMiddleware:
    """Chain client wrapper that submits bundles to a private relay"""

    def __init__(self,
                 chain: ChainClient,
                 relay_url: str,
                 identity: Identity,
                 simulation_url: Optional[str] = None,
                 timeout: float = 10.0,
                 stats_version: int = 1,
                 max_query_failures: int = DEFAULT_MAX_QUERY_FAILURES,
                 retry_interval: float = DEFAULT_RETRY_INTERVAL,
                 session=None):
        """
        Initialize bundle middleware

        Args:
            chain: Chain client that unrelated calls are forwarded to
            relay_url: Relay endpoint bundles are submitted to
            identity: Searcher identity key (never a transaction-signing key)
            simulation_url: Separate endpoint for eth_callBundle, defaults to relay_url
            timeout: Relay request timeout in seconds
            stats_version: 1 or 2, selects the flashbots_get*Stats method family
            max_query_failures: Consecutive chain-query failures before a pending bundle gives up
            retry_interval: Back-off after a failed head query, in seconds
            session: Optional shared aiohttp.ClientSession

        Raises:
            SigningError: If the identity key is malformed
        """
        if stats_version not in STATS_METHODS:
            raise ValueError(f"Unsupported stats version: {stats_version}")

        self._chain = chain
        self._signer = RelaySigner(identity)
        self._timeout = timeout
        self._session = session
        self._stats_version = stats_version
        self._max_query_failures = max_query_failures
        self._retry_interval = retry_interval

        self._relay = RelayClient(relay_url, self._signer, timeout, session)
        if simulation_url and simulation_url != relay_url:
            self._simulation_relay = RelayClient(simulation_url, self._signer, timeout, session)
        else:
            self._simulation_relay = self._relay

        logger.info(f"Bundle middleware ready: relay={relay_url} identity={self._signer.address}")

    @classmethod
    def from_config(cls, chain: ChainClient, config, identity: Optional[Identity] = None,
                    **kwargs) -> "BundleMiddleware":
        """
        Create middleware from a RelayConfig

        Args:
            chain: Chain client to wrap
            config: flashbundle.config.RelayConfig
            identity: Overrides the configured identity key
        """
        identity = _resolve_identity(identity, config)
        return cls(
            chain,
            config.relay_url,
            identity,
            simulation_url=config.simulation_url,
            timeout=config.timeout,
            stats_version=config.stats_version,
            max_query_failures=config.tracker.max_query_failures,
            retry_interval=config.tracker.retry_interval,
            **kwargs
        )

    def __repr__(self) -> str:
        return f"{type(self).__name__}(relay={self._relay.url!r}, identity={self.identity_address})"

    # Pass-through

    def __getattr__(self, name: str) -> Any:
        # only reached for attributes the middleware itself does not define
        if name.startswith('__') or name == '_chain':
            raise AttributeError(name)
        return getattr(self._chain, name)

    @property
    def inner(self) -> ChainClient:
        """The wrapped chain client"""
        return self._chain

    async def make_request(self, method: str, params: Any) -> Any:
        """Forward a JSON-RPC call unchanged to the wrapped chain client"""
        return await self._chain.make_request(method, params)

    # Configuration (read-only)

    @property
    def identity_address(self) -> str:
        return self._signer.address

    @property
    def relay_url(self) -> str:
        return self._relay.url

    @property
    def simulation_url(self) -> str:
        return self._simulation_relay.url

    # Bundle operations

    async def send_bundle(self, bundle: BundleRequest) -> PendingBundle:
        """
        Submit a bundle to the relay

        Args:
            bundle: Bundle with transactions and a target block

        Returns:
            PendingBundle tracking inclusion in the target block
        """
        params, tx_hashes, target_block = await self._prepare_submission(bundle)
        return await self._submit(self._relay, params, tx_hashes, target_block)

    async def _prepare_submission(self, bundle: BundleRequest):
        bundle.validate()
        current_block = await self._chain.get_block_number()
        bundle.validate(current_block=current_block)

        # render once; later changes to the caller's bundle do not leak in
        return bundle.to_send_params(), bundle.transaction_hashes(), bundle.target_block

    async def _submit(self, relay: RelayClient, params, tx_hashes, target_block: int) -> PendingBundle:
        result = await relay.request(SEND_BUNDLE, [params])
        bundle_hash = _decode_bundle_hash(result)

        logger.info(
            f"📤 Bundle sent to {relay.url} for block {target_block} "
            f"({len(tx_hashes)} txs, hash={to_hex_data(bundle_hash) if bundle_hash else None})"
        )

        return PendingBundle(
            bundle_hash,
            target_block,
            tx_hashes,
            self._chain,
            max_query_failures=self._max_query_failures,
            retry_interval=self._retry_interval,
        )

    async def send_bundle_and_wait(self, bundle: BundleRequest) -> InclusionResult:
        """
        Submit a bundle and wait for its target block

        Returns:
            InclusionResult (included or explicitly not included)

        Raises:
            BundleValidationError, RelayError, InclusionQueryError
        """
        pending = await self.send_bundle(bundle)
        return await pending.wait()

    async def simulate_bundle(self, bundle: BundleRequest,
                              simulation_url: Optional[str] = None) -> SimulatedBundle:
        """
        Simulate a bundle with eth_callBundle

        Args:
            bundle: Bundle with transactions, target block and simulation block
            simulation_url: Endpoint for this call only; defaults to the configured one

        Returns:
            SimulatedBundle with one result per bundle transaction, in order
        """
        params = bundle.to_call_params()
        expected = len(bundle)

        relay = self._simulation_relay
        if simulation_url and simulation_url != relay.url:
            relay = RelayClient(simulation_url, self._signer, self._timeout, self._session)

        result = await relay.request(CALL_BUNDLE, [params])
        simulated = decode_simulated_bundle(result)

        if len(simulated.transactions) != expected:
            raise ResponseDecodeError(
                str(result),
                reason=f"expected {expected} simulated transactions, got {len(simulated.transactions)}"
            )

        logger.info(
            f"Simulated bundle for block {bundle.target_block} on {relay.url}: "
            f"gas={simulated.gas_used} "
            f"coinbase_diff={format_currency(wei_to_eth(simulated.coinbase_diff or 0))}"
        )
        return simulated

    async def get_user_stats(self, block_number: Optional[int] = None) -> UserStats:
        """
        Get statistics for the searcher identity

        Args:
            block_number: Block to query at, defaults to the current head
        """
        if block_number is None:
            block_number = await self._chain.get_block_number()

        method = STATS_METHODS[self._stats_version][0]
        result = await self._relay.request(method, [{"blockNumber": to_quantity(block_number)}])
        return decode_user_stats(result)

    async def get_bundle_stats(self, bundle_hash: Union[bytes, str], block_number: int) -> BundleStats:
        """
        Get statistics for a submitted bundle

        Args:
            bundle_hash: Hash returned when the bundle was sent
            block_number: The bundle's target block
        """
        method = STATS_METHODS[self._stats_version][1]
        params = {
            "bundleHash": to_hex_data(bundle_hash),
            "blockNumber": to_quantity(block_number),
        }
        result = await self._relay.request(method, [params])
        return decode_bundle_stats(result)

    async def send_raw_transaction(self, raw_transaction: Union[bytes, str]) -> PendingBundle:
        """
        Send a single signed transaction as a bundle for the next block

        The transaction may not revert, has no timestamp bounds and is not
        simulated first.
        """
        latest_block = await self._chain.get_block_number()
        bundle = BundleRequest().push_transaction(raw_transaction).set_block(latest_block + 1)
        return await self.send_bundle(bundle)


class BroadcastMiddleware(BundleMiddleware):
    """
    Bundle middleware that submits to several builders at once

    Simulation and stats go to the single relay given as relay_url; bundles
    are sent to every builder URL concurrently.
    """

    def __init__(self,
                 chain: ChainClient,
                 builder_urls: Sequence[str],
                 relay_url: str,
                 identity: Identity,
                 **kwargs):
        if not builder_urls:
            raise ValueError("At least one builder URL is required")

        super().__init__(chain, relay_url, identity, **kwargs)
        self._builders = tuple(
            RelayClient(url, self._signer, self._timeout, self._session) for url in builder_urls
        )

    @classmethod
    def from_config(cls, chain: ChainClient, config, identity: Optional[Identity] = None,
                    **kwargs) -> "BroadcastMiddleware":
        identity = _resolve_identity(identity, config)
        return cls(
            chain,
            config.builder_urls,
            config.relay_url,
            identity,
            simulation_url=config.simulation_url,
            timeout=config.timeout,
            stats_version=config.stats_version,
            max_query_failures=config.tracker.max_query_failures,
            retry_interval=config.tracker.retry_interval,
            **kwargs
        )

    @property
    def builder_urls(self) -> List[str]:
        return [builder.url for builder in self._builders]

    async def send_bundle(self, bundle: BundleRequest) -> List[Union[PendingBundle, RelayError]]:
        """
        Submit a bundle to every builder

        Returns:
            One entry per builder, in builder order: a PendingBundle if the
            builder accepted the bundle, otherwise the RelayError it raised
        """
        params, tx_hashes, target_block = await self._prepare_submission(bundle)

        results = await asyncio.gather(
            *(self._submit(builder, params, tx_hashes, target_block) for builder in self._builders),
            return_exceptions=True
        )

        for builder, result in zip(self._builders, results):
            if isinstance(result, BaseException) and not isinstance(result, RelayError):
                raise result
            if isinstance(result, RelayError):
                logger.warning(f"Builder {builder.url} rejected bundle: {result}")

        accepted = sum(1 for result in results if isinstance(result, PendingBundle))
        logger.info(f"Bundle for block {target_block} accepted by {accepted}/{len(self._builders)} builders")
        return list(results)

    async def send_bundle_and_wait(self, bundle: BundleRequest) -> InclusionResult:
        """
        Broadcast a bundle and wait for its target block

        Raises:
            RelayError: The first builder error, if no builder accepted the bundle
        """
        results = await self.send_bundle(bundle)
        accepted = [result for result in results if isinstance(result, PendingBundle)]
        if not accepted:
            raise results[0]

        # every accepted copy tracks the same block and hashes
        return await accepted[0].wait()


def _resolve_identity(identity: Optional[Identity], config) -> Identity:
    if identity is not None:
        return identity
    if config.identity_key:
        return config.identity_key
    key = get_env_var(IDENTITY_KEY_ENV)
    if key is None:
        raise SigningError(f"No searcher identity key configured (set {IDENTITY_KEY_ENV})")
    return key


def _decode_bundle_hash(result: Any) -> Optional[HexBytes]:
    if result is None:
        return None
    if isinstance(result, dict):
        value = result.get("bundleHash")
    else:
        value = result
    if value is None:
        return None
    if not isinstance(value, str):
        raise ResponseDecodeError(str(result), reason="bundleHash is not a hex string")
    try:
        return HexBytes(value)
    except ValueError as e:
        raise ResponseDecodeError(str(result), reason=f"bad bundleHash: {e}") from e
