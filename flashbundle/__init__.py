"""
flashbundle: private-relay bundle submission for web3 clients

This package lets a transaction pipeline send bundles of signed transactions
to a private block-construction relay instead of the public mempool:
- Bundle building and pre-flight validation
- Searcher identity request signing
- Bundle submission, simulation and relay statistics
- Tracking whether a submitted bundle landed in its target block

Core Components:
- core: bundle model, relay transport, decoders, inclusion tracker, middleware
- utils: chain client interface, logging and helper utilities
- config: YAML relay configuration
"""

__version__ = "0.1.0"

import logging

# Core imports for easy access
from .core import (
    BundleRequest,
    BundleTransaction,
    BundleMiddleware,
    BroadcastMiddleware,
    PendingBundle,
    InclusionState,
    InclusionResult,
    RelayClient,
    RelaySigner,
    SimulatedBundle,
    SimulatedTransaction,
    UserStats,
    BundleStats,
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

# Utilities
from .utils import ChainClient, Web3ChainClient, BlockInfo, setup_logging

__all__ = [
    # Version info
    "__version__",

    # Core components
    "BundleRequest",
    "BundleTransaction",
    "BundleMiddleware",
    "BroadcastMiddleware",
    "PendingBundle",
    "InclusionState",
    "InclusionResult",
    "RelayClient",
    "RelaySigner",
    "SimulatedBundle",
    "SimulatedTransaction",
    "UserStats",
    "BundleStats",

    # Errors
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

    # Utils
    "ChainClient",
    "Web3ChainClient",
    "BlockInfo",
    "setup_logging"
]

# Library logging stays silent unless the application configures it
logging.getLogger(__name__).addHandler(logging.NullHandler())
