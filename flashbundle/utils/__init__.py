"""
Utility functions and helpers for flashbundle

This module provides common utilities used by the bundle client:
- Chain client capability interface and its web3 implementation
- Logging configuration
- JSON-RPC quantity encoding
- Environment helpers
"""

from .helpers import (
    setup_logging,
    quiet_third_party_loggers,
    to_quantity,
    parse_quantity,
    to_hex_data,
    format_currency,
    wei_to_eth,
    get_env_var,
    setup_environment,
    Timer
)

from .blockchain import (
    BlockInfo,
    ChainClient,
    Web3ChainClient
)

__all__ = [
    # Helper functions
    "setup_logging",
    "quiet_third_party_loggers",
    "to_quantity",
    "parse_quantity",
    "to_hex_data",
    "format_currency",
    "wei_to_eth",
    "get_env_var",
    "setup_environment",
    "Timer",

    # Blockchain utilities
    "BlockInfo",
    "ChainClient",
    "Web3ChainClient"
]
