"""
Bundle model and validation

A bundle is an ordered list of signed transactions that a relay should land
together in one target block. This module provides:
- BundleTransaction: one signed transaction, optionally allowed to revert
- BundleRequest: the bundle itself plus timing and simulation parameters
- Validation run before any request leaves the process
- Rendering to the eth_sendBundle / eth_callBundle parameter objects

Order matters: transactions execute in the order they were pushed and are
sent to the relay in exactly that order.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple, Union

from hexbytes import HexBytes
from web3 import Web3

from .errors import (
    EmptyBundleError,
    InconsistentBundleError,
    MissingSimulationBlockError,
    MissingTargetBlockError,
    StaleTargetBlockError,
)
from ..utils.helpers import to_hex_data, to_quantity


@dataclass(frozen=True)
class BundleTransaction:
    """A signed transaction as it appears in a bundle"""
    raw: HexBytes
    revertible: bool = False
    hash: HexBytes = field(init=False, repr=False)

    def __post_init__(self):
        raw = HexBytes(self.raw)
        if not raw:
            raise ValueError("Signed transaction bytes must not be empty")
        object.__setattr__(self, 'raw', raw)
        object.__setattr__(self, 'hash', HexBytes(Web3.keccak(raw)))

    @classmethod
    def from_signed(cls, tx: Any, revertible: bool = False) -> "BundleTransaction":
        """
        Build an entry from an externally signed transaction

        Args:
            tx: Raw signed bytes, a hex string, or a signed transaction object
                exposing raw_transaction (eth-account >= 0.13) or rawTransaction
            revertible: Whether the bundle stays valid if this transaction reverts

        Returns:
            BundleTransaction
        """
        if isinstance(tx, BundleTransaction):
            return cls(tx.raw, revertible=revertible)
        if isinstance(tx, (bytes, bytearray, str)):
            return cls(HexBytes(tx), revertible=revertible)

        raw = getattr(tx, 'raw_transaction', None)
        if raw is None:
            raw = getattr(tx, 'rawTransaction', None)
        if raw is None:
            raise TypeError(f"Cannot take signed bytes from {type(tx).__name__}")
        return cls(HexBytes(raw), revertible=revertible)


SignedTx = Union[BundleTransaction, bytes, bytearray, str, Any]


class BundleRequest:
    """
    A bundle that can be submitted to, or simulated by, a relay

    Setters return the bundle so requests can be built fluently:

        bundle = (BundleRequest()
                  .push_transaction(signed_a)
                  .push_revertible_transaction(signed_b)
                  .set_block(head + 1))

    Required before submission: at least one transaction and a target block.
    Simulation additionally requires a simulation (state) block.
    """

    def __init__(self):
        self._transactions: List[BundleTransaction] = []
        self.target_block: Optional[int] = None
        self.min_timestamp: Optional[int] = None
        self.max_timestamp: Optional[int] = None
        self.simulation_block: Optional[int] = None
        self.simulation_timestamp: Optional[int] = None
        self.simulation_basefee: Optional[int] = None

    def __repr__(self) -> str:
        return (f"BundleRequest(transactions={len(self._transactions)}, "
                f"target_block={self.target_block})")

    def __len__(self) -> int:
        return len(self._transactions)

    # Building

    def push_transaction(self, tx: SignedTx) -> "BundleRequest":
        """Append a transaction that must not revert"""
        self._transactions.append(BundleTransaction.from_signed(tx))
        return self

    def push_revertible_transaction(self, tx: SignedTx) -> "BundleRequest":
        """Append a transaction that is allowed to revert without invalidating the bundle"""
        self._transactions.append(BundleTransaction.from_signed(tx, revertible=True))
        return self

    def set_block(self, block: int) -> "BundleRequest":
        self.target_block = _block_number(block, "target block")
        return self

    def set_simulation_block(self, block: int) -> "BundleRequest":
        self.simulation_block = _block_number(block, "simulation block")
        return self

    def set_simulation_timestamp(self, timestamp: int) -> "BundleRequest":
        self.simulation_timestamp = timestamp
        return self

    def set_simulation_basefee(self, basefee: int) -> "BundleRequest":
        self.simulation_basefee = basefee
        return self

    def set_min_timestamp(self, timestamp: int) -> "BundleRequest":
        """Earliest UNIX timestamp (seconds) at which the bundle is valid"""
        self.min_timestamp = timestamp
        return self

    def set_max_timestamp(self, timestamp: int) -> "BundleRequest":
        """Latest UNIX timestamp (seconds) at which the bundle is valid"""
        self.max_timestamp = timestamp
        return self

    # Inspection

    @property
    def transactions(self) -> Tuple[BundleTransaction, ...]:
        return tuple(self._transactions)

    def transaction_hashes(self) -> List[HexBytes]:
        return [tx.hash for tx in self._transactions]

    def revertible_transaction_hashes(self) -> List[HexBytes]:
        return [tx.hash for tx in self._transactions if tx.revertible]

    # Validation

    def validate(self, simulation: bool = False, current_block: Optional[int] = None) -> None:
        """
        Check that the bundle can be sent

        Args:
            simulation: Validate for eth_callBundle instead of eth_sendBundle
            current_block: Chain head; when given the target block must not be behind it

        Raises:
            EmptyBundleError: No transactions
            MissingTargetBlockError: No target block
            MissingSimulationBlockError: Simulation without a state block
            StaleTargetBlockError: Target block behind current_block
            InconsistentBundleError: Contradicting timing/block fields
        """
        if not self._transactions:
            raise EmptyBundleError()
        if self.target_block is None:
            raise MissingTargetBlockError()
        if simulation and self.simulation_block is None:
            raise MissingSimulationBlockError()

        if current_block is not None and self.target_block < current_block:
            raise StaleTargetBlockError(self.target_block, current_block)

        for name in ('min_timestamp', 'max_timestamp', 'simulation_timestamp', 'simulation_basefee'):
            value = getattr(self, name)
            if value is not None and (isinstance(value, bool) or not isinstance(value, int) or value < 0):
                raise InconsistentBundleError(f"{name} must be a non-negative integer, got {value!r}")

        if (self.min_timestamp is not None and self.max_timestamp is not None
                and self.min_timestamp > self.max_timestamp):
            raise InconsistentBundleError(
                f"min_timestamp {self.min_timestamp} is after max_timestamp {self.max_timestamp}"
            )

        if (simulation and self.simulation_block is not None
                and self.simulation_block > self.target_block):
            raise InconsistentBundleError(
                f"Simulation block {self.simulation_block} is after target block {self.target_block}"
            )

    # Wire format

    def to_send_params(self) -> Dict[str, Any]:
        """Parameter object for eth_sendBundle (validates first)"""
        self.validate()

        params: Dict[str, Any] = {
            "txs": [to_hex_data(tx.raw) for tx in self._transactions],
            "blockNumber": to_quantity(self.target_block),
        }
        if self.min_timestamp is not None:
            params["minTimestamp"] = self.min_timestamp
        if self.max_timestamp is not None:
            params["maxTimestamp"] = self.max_timestamp

        reverting = self.revertible_transaction_hashes()
        if reverting:
            params["revertingTxHashes"] = [to_hex_data(h) for h in reverting]
        return params

    def to_call_params(self) -> Dict[str, Any]:
        """Parameter object for eth_callBundle (validates first)"""
        self.validate(simulation=True)

        params: Dict[str, Any] = {
            "txs": [to_hex_data(tx.raw) for tx in self._transactions],
            "blockNumber": to_quantity(self.target_block),
            "stateBlockNumber": to_quantity(self.simulation_block),
        }
        if self.simulation_timestamp is not None:
            params["timestamp"] = self.simulation_timestamp
        if self.simulation_basefee is not None:
            params["baseFee"] = self.simulation_basefee
        return params


def _block_number(value: int, name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise InconsistentBundleError(f"{name} must be a non-negative integer, got {value!r}")
    return value
