"""
Core bundle submission components

This module contains the building blocks of the relay client:
- BundleRequest: bundle model and validation
- RelaySigner: searcher identity request signing
- RelayClient: signed JSON-RPC transport
- Simulation and stats decoders
- PendingBundle: inclusion tracking state machine
- BundleMiddleware / BroadcastMiddleware: the facade over a chain client
"""

from .bundle import BundleRequest, BundleTransaction
from .errors import (
    FlashbundleError,
    BundleValidationError,
    EmptyBundleError,
    MissingTargetBlockError,
    MissingSimulationBlockError,
    StaleTargetBlockError,
    InconsistentBundleError,
    SigningError,
    RelayError,
    RelayTransportError,
    RelayProtocolError,
    NonConformantResponseError,
    ResponseDecodeError,
    InclusionQueryError
)
from .signing import RelaySigner, SIGNATURE_HEADER
from .relay import RelayClient, RelayRequest
from .simulation import (
    SimulatedTransaction,
    SimulatedBundle,
    UserStats,
    BundleStats,
    decode_revert_reason,
    decode_simulated_transaction,
    decode_simulated_bundle,
    decode_user_stats,
    decode_bundle_stats
)
from .pending_bundle import PendingBundle, InclusionState, InclusionResult
from .middleware import BundleMiddleware, BroadcastMiddleware

__all__ = [
    "BundleRequest",
    "BundleTransaction",

    "FlashbundleError",
    "BundleValidationError",
    "EmptyBundleError",
    "MissingTargetBlockError",
    "MissingSimulationBlockError",
    "StaleTargetBlockError",
    "InconsistentBundleError",
    "SigningError",
    "RelayError",
    "RelayTransportError",
    "RelayProtocolError",
    "NonConformantResponseError",
    "ResponseDecodeError",
    "InclusionQueryError",

    "RelaySigner",
    "SIGNATURE_HEADER",
    "RelayClient",
    "RelayRequest",

    "SimulatedTransaction",
    "SimulatedBundle",
    "UserStats",
    "BundleStats",
    "decode_revert_reason",
    "decode_simulated_transaction",
    "decode_simulated_bundle",
    "decode_user_stats",
    "decode_bundle_stats",

    "PendingBundle",
    "InclusionState",
    "InclusionResult",

    "BundleMiddleware",
    "BroadcastMiddleware"
]
