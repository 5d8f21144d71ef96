"""
Simulation and statistics decoding

Maps relay JSON into typed results:
- SimulatedTransaction / SimulatedBundle from eth_callBundle
- UserStats from flashbots_getUserStats(V2)
- BundleStats from flashbots_getBundleStats(V2)

Relay deployments disagree on which fields they return, so every field is
optional at decode time: an absent field decodes to None, never to zero or
False. A field that is present but malformed raises ResponseDecodeError.
"""

import json
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple

from eth_abi import decode as abi_decode
from eth_abi.exceptions import DecodingError
from hexbytes import HexBytes
from web3 import Web3

from .errors import ResponseDecodeError
from ..utils.helpers import parse_quantity

# Error(string) selector used by Solidity require/revert messages
REVERT_SELECTOR = bytes.fromhex("08c379a0")


@dataclass(frozen=True)
class SimulatedTransaction:
    """Outcome of one transaction in a simulated bundle"""
    tx_hash: Optional[HexBytes]
    from_address: Optional[str]
    to_address: Optional[str]          # None for contract creation
    gas_used: Optional[int]
    gas_price: Optional[int]
    gas_fees: Optional[int]
    coinbase_diff: Optional[int]
    coinbase_tip: Optional[int]        # ETH sent straight to coinbase
    return_data: Optional[HexBytes]    # call return data, not an amount
    error: Optional[str]
    revert_reason: Optional[str]

    @property
    def success(self) -> bool:
        return self.error is None

    @property
    def effective_gas_price(self) -> Optional[int]:
        """
        Price per gas actually paid to the block producer

        coinbase_diff covers gas fees plus direct coinbase payments, so this
        is the legacy gas price or base-plus-priority payment, whichever
        applies to the transaction type.
        """
        return _per_gas(self.coinbase_diff, self.gas_used)


@dataclass(frozen=True)
class SimulatedBundle:
    """Outcome of a simulated bundle"""
    bundle_hash: Optional[HexBytes]
    coinbase_diff: Optional[int]
    coinbase_tip: Optional[int]
    gas_price: Optional[int]           # as reported by the relay
    gas_used: Optional[int]
    gas_fees: Optional[int]
    simulation_block: Optional[int]
    transactions: Tuple[SimulatedTransaction, ...]

    @property
    def success(self) -> bool:
        """False when any transaction failed or the relay returned no per-transaction results"""
        return bool(self.transactions) and all(tx.success for tx in self.transactions)

    @property
    def effective_gas_price(self) -> Optional[int]:
        """
        Gas-weighted price across the bundle

        Approximates the bundle's score so callers can rank candidate
        bundles without resubmitting them.
        """
        diffs = [tx.coinbase_diff for tx in self.transactions]
        gas = [tx.gas_used for tx in self.transactions]
        if self.transactions and None not in diffs and None not in gas:
            return _per_gas(sum(diffs), sum(gas))
        return _per_gas(self.coinbase_diff, self.gas_used)

    def failed_transactions(self) -> List[Tuple[int, SimulatedTransaction]]:
        """(index, transaction) for every failed entry, index matching bundle order"""
        return [(i, tx) for i, tx in enumerate(self.transactions) if not tx.success]


@dataclass(frozen=True)
class UserStats:
    """Point-in-time statistics for the searcher identity"""
    is_high_priority: Optional[bool]
    all_time_validator_payments: Optional[int]
    all_time_gas_simulated: Optional[int]
    last_7d_validator_payments: Optional[int]
    last_7d_gas_simulated: Optional[int]
    last_1d_validator_payments: Optional[int]
    last_1d_gas_simulated: Optional[int]


@dataclass(frozen=True)
class BundleStats:
    """Point-in-time statistics for a submitted bundle"""
    is_simulated: Optional[bool]
    is_high_priority: Optional[bool]
    is_sent_to_miners: Optional[bool]
    simulated_at: Optional[datetime]
    submitted_at: Optional[datetime]
    sent_to_miners_at: Optional[datetime]
    received_at: Optional[datetime]
    considered_by_builders_at: Optional[Tuple[Tuple[str, datetime], ...]]
    sealed_by_builders_at: Optional[Tuple[Tuple[str, datetime], ...]]


# Field decoders

def _field(data: Dict[str, Any], key: str, decoder: Callable[[Any], Any]) -> Any:
    value = data.get(key)
    if value is None:
        return None
    try:
        return decoder(value)
    except (ValueError, TypeError) as e:
        raise ResponseDecodeError(_dump({key: value}), reason=f"bad field {key}: {e}") from e


def _quantity(value: Any) -> Optional[int]:
    return parse_quantity(value)


def _bytes(value: Any) -> HexBytes:
    if not isinstance(value, str):
        raise TypeError(f"expected hex string, got {type(value).__name__}")
    return HexBytes(value)


def _address(value: Any) -> Optional[str]:
    if not isinstance(value, str):
        raise TypeError(f"expected address string, got {type(value).__name__}")
    if value.lower() in ("", "0x"):
        return None
    return Web3.to_checksum_address(value)


def _bool(value: Any) -> bool:
    if not isinstance(value, bool):
        raise TypeError(f"expected boolean, got {type(value).__name__}")
    return value


def _text(value: Any) -> str:
    if not isinstance(value, str):
        raise TypeError(f"expected string, got {type(value).__name__}")
    return value


def _timestamp(value: Any) -> datetime:
    if not isinstance(value, str):
        raise TypeError(f"expected timestamp string, got {type(value).__name__}")
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _builder_times(value: Any) -> Tuple[Tuple[str, datetime], ...]:
    if not isinstance(value, list):
        raise TypeError(f"expected list, got {type(value).__name__}")
    entries = []
    for item in value:
        if not isinstance(item, dict):
            raise TypeError("expected builder timestamp objects")
        entries.append((_text(item.get("pubkey", "")), _timestamp(item.get("timestamp"))))
    return tuple(entries)


def _per_gas(amount: Optional[int], gas: Optional[int]) -> Optional[int]:
    if amount is None or not gas:
        return None
    return amount // gas


def _dump(value: Any) -> str:
    return json.dumps(value, default=str)


def _require_object(data: Any, what: str) -> Dict[str, Any]:
    if not isinstance(data, dict):
        raise ResponseDecodeError(_dump(data), reason=f"{what} is not an object")
    return data


# Revert reasons

def decode_revert_reason(return_data: Optional[bytes]) -> Optional[str]:
    """
    Decode an Error(string) revert payload

    Args:
        return_data: Raw return data of a failed call

    Returns:
        The revert string, or None if the data is not a standard string revert
    """
    if not return_data or len(return_data) < 4:
        return None
    data = bytes(return_data)
    if data[:4] != REVERT_SELECTOR:
        return None
    try:
        (reason,) = abi_decode(["string"], data[4:])
    except (DecodingError, UnicodeDecodeError):
        # not a well-formed Error(string) payload
        return None
    return reason


# Decoders

def decode_simulated_transaction(data: Any) -> SimulatedTransaction:
    data = _require_object(data, "simulated transaction")

    return_data = _field(data, "value", _bytes)
    error = _field(data, "error", _text)
    revert_reason = decode_revert_reason(return_data) if error is not None else None

    return SimulatedTransaction(
        tx_hash=_field(data, "txHash", _bytes),
        from_address=_field(data, "fromAddress", _address),
        to_address=_field(data, "toAddress", _address),
        gas_used=_field(data, "gasUsed", _quantity),
        gas_price=_field(data, "gasPrice", _quantity),
        gas_fees=_field(data, "gasFees", _quantity),
        coinbase_diff=_field(data, "coinbaseDiff", _quantity),
        coinbase_tip=_field(data, "ethSentToCoinbase", _quantity),
        return_data=return_data,
        error=error,
        revert_reason=revert_reason,
    )


def decode_simulated_bundle(data: Any) -> SimulatedBundle:
    """
    Decode an eth_callBundle result

    Args:
        data: The JSON-RPC result object

    Returns:
        SimulatedBundle whose transactions follow the submitted order
    """
    data = _require_object(data, "simulation result")

    results = data.get("results")
    if results is None:
        results = []
    if not isinstance(results, list):
        raise ResponseDecodeError(_dump(data), reason="results is not a list")

    return SimulatedBundle(
        bundle_hash=_field(data, "bundleHash", _bytes),
        coinbase_diff=_field(data, "coinbaseDiff", _quantity),
        coinbase_tip=_field(data, "ethSentToCoinbase", _quantity),
        gas_price=_field(data, "bundleGasPrice", _quantity),
        gas_used=_field(data, "totalGasUsed", _quantity),
        gas_fees=_field(data, "gasFees", _quantity),
        simulation_block=_field(data, "stateBlockNumber", _quantity),
        transactions=tuple(decode_simulated_transaction(item) for item in results),
    )


def decode_user_stats(data: Any) -> UserStats:
    data = _require_object(data, "user stats")

    def first(*keys):
        # v1 reported miner payments, v2 validator payments
        for key in keys:
            if data.get(key) is not None:
                return _field(data, key, _quantity)
        return None

    return UserStats(
        is_high_priority=_field(data, "isHighPriority", _bool),
        all_time_validator_payments=first("allTimeValidatorPayments", "allTimeMinerPayments"),
        all_time_gas_simulated=first("allTimeGasSimulated"),
        last_7d_validator_payments=first("last7dValidatorPayments", "last7dMinerPayments"),
        last_7d_gas_simulated=first("last7dGasSimulated"),
        last_1d_validator_payments=first("last1dValidatorPayments", "last1dMinerPayments"),
        last_1d_gas_simulated=first("last1dGasSimulated"),
    )


def decode_bundle_stats(data: Any) -> BundleStats:
    data = _require_object(data, "bundle stats")

    return BundleStats(
        is_simulated=_field(data, "isSimulated", _bool),
        is_high_priority=_field(data, "isHighPriority", _bool),
        is_sent_to_miners=_field(data, "isSentToMiners", _bool),
        simulated_at=_field(data, "simulatedAt", _timestamp),
        submitted_at=_field(data, "submittedAt", _timestamp),
        sent_to_miners_at=_field(data, "sentToMinersAt", _timestamp),
        received_at=_field(data, "receivedAt", _timestamp),
        considered_by_builders_at=_field(data, "consideredByBuildersAt", _builder_times),
        sealed_by_builders_at=_field(data, "sealedByBuildersAt", _builder_times),
    )
