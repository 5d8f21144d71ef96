"""Decoding of eth_callBundle results and relay statistics"""

from datetime import datetime, timezone
from unittest.mock import patch

import pytest
from eth_abi import encode as abi_encode
from hexbytes import HexBytes

from flashbundle.core.errors import ResponseDecodeError
from flashbundle.core.simulation import (
    REVERT_SELECTOR,
    decode_bundle_stats,
    decode_revert_reason,
    decode_simulated_bundle,
    decode_simulated_transaction,
    decode_user_stats,
)

SIMULATED_BUNDLE = {
    "bundleGasPrice": "476190476193",
    "bundleHash": "0x73b1e258c7a42fd0230b2fd05529c5d4b6fcb66c227783f8bece8aeacdd1db2e",
    "coinbaseDiff": "20000000000126000",
    "ethSentToCoinbase": "20000000000000000",
    "gasFees": "126000",
    "results": [
        {
            "coinbaseDiff": "10000000000063000",
            "ethSentToCoinbase": "10000000000000000",
            "fromAddress": "0x02A727155aeF8609c9f7F2179b2a1f560B39F5A0",
            "gasFees": "63000",
            "gasPrice": "476190476193",
            "gasUsed": 21000,
            "toAddress": "0x73625f59CAdc5009Cb458B751b3E7b6b48C06f2C",
            "txHash": "0x669b4704a7d993a946cdd6e2f95233f308ce0c4649d2e04944e8299efcaa098a",
            "value": "0x",
            "error": "execution reverted",
        },
        {
            "coinbaseDiff": "10000000000063000",
            "ethSentToCoinbase": "10000000000000000",
            "fromAddress": "0x02A727155aeF8609c9f7F2179b2a1f560B39F5A0",
            "gasFees": "63000",
            "gasPrice": "476190476193",
            "gasUsed": 21000,
            "toAddress": "0x73625f59CAdc5009Cb458B751b3E7b6b48C06f2C",
            "txHash": "0xa839ee83465657cac01adc1d50d96c1b586ed498120a84a64749c0034b4f19fa",
            "value": "0x01",
        },
        {
            "coinbaseDiff": "10000000000063000",
            "ethSentToCoinbase": "10000000000000000",
            "fromAddress": "0x02A727155aeF8609c9f7F2179b2a1f560B39F5A0",
            "gasFees": "63000",
            "gasPrice": "476190476193",
            "gasUsed": 21000,
            "toAddress": "0x",
            "txHash": "0xa839ee83465657cac01adc1d50d96c1b586ed498120a84a64749c0034b4f19fa",
            "value": "0x",
        },
    ],
    "stateBlockNumber": 5221585,
    "totalGasUsed": 42000,
}


def _revert_data(reason: str) -> str:
    return "0x" + (REVERT_SELECTOR + abi_encode(["string"], [reason])).hex()


def test_decode_simulated_bundle():
    bundle = decode_simulated_bundle(SIMULATED_BUNDLE)

    assert bundle.bundle_hash == HexBytes(SIMULATED_BUNDLE["bundleHash"])
    assert bundle.coinbase_diff == 20000000000126000
    assert bundle.coinbase_tip == 20000000000000000
    assert bundle.gas_price == 476190476193
    assert bundle.gas_used == 42000
    assert bundle.gas_fees == 126000
    assert bundle.simulation_block == 5221585
    assert len(bundle.transactions) == 3

    first, second, third = bundle.transactions
    assert first.return_data == HexBytes(b"")
    assert first.error == "execution reverted"
    assert not first.success
    assert second.error is None
    assert second.success
    assert second.return_data == HexBytes(b"\x01")
    assert third.to_address is None
    assert not bundle.success
    assert [i for i, _ in bundle.failed_transactions()] == [0]


def test_results_keep_submission_order():
    hashes = [tx["txHash"] for tx in SIMULATED_BUNDLE["results"]]
    bundle = decode_simulated_bundle(SIMULATED_BUNDLE)
    assert [tx.tx_hash for tx in bundle.transactions] == [HexBytes(h) for h in hashes]


def test_contract_creation_destination_is_absent_not_zero():
    tx = decode_simulated_transaction({"toAddress": "0x", "gasUsed": 53000})
    assert tx.to_address is None

    tx = decode_simulated_transaction({"gasUsed": 53000})
    assert tx.to_address is None

    tx = decode_simulated_transaction({"toAddress": "0x0000000000000000000000000000000000000000"})
    assert tx.to_address == "0x0000000000000000000000000000000000000000"


def test_revert_reason_decoded_from_string_revert():
    tx = decode_simulated_transaction({
        "error": "execution reverted",
        "value": _revert_data("insufficient funds"),
    })
    assert tx.revert_reason == "insufficient funds"


def test_revert_reason_absent_for_non_matching_data():
    tx = decode_simulated_transaction({"error": "execution reverted", "value": "0xdeadbeef00"})
    assert tx.revert_reason is None

    # custom error selector
    tx = decode_simulated_transaction({"error": "execution reverted", "value": "0x12345678" + "00" * 32})
    assert tx.revert_reason is None

    # right selector, truncated payload
    tx = decode_simulated_transaction({"error": "execution reverted", "value": "0x08c379a0" + "00" * 10})
    assert tx.revert_reason is None


def test_revert_reason_only_for_failed_transactions():
    tx = decode_simulated_transaction({"value": _revert_data("insufficient funds")})
    assert tx.success
    assert tx.revert_reason is None
    assert tx.return_data[:4] == REVERT_SELECTOR


def test_decode_revert_reason_direct():
    assert decode_revert_reason(HexBytes(_revert_data(""))) == ""
    assert decode_revert_reason(None) is None
    assert decode_revert_reason(b"\x08\xc3") is None


def test_revert_reason_with_invalid_utf8_is_absent():
    data = REVERT_SELECTOR + abi_encode(["bytes"], [b"\xff\xfe\xfd"])
    assert decode_revert_reason(data) is None


def test_revert_reason_does_not_hide_unexpected_errors():
    with patch("flashbundle.core.simulation.abi_decode", side_effect=RuntimeError("boom")):
        with pytest.raises(RuntimeError):
            decode_revert_reason(HexBytes(_revert_data("insufficient funds")))


def test_bundle_without_results_is_not_successful():
    bundle = decode_simulated_bundle({"bundleHash": "0x" + "11" * 32, "totalGasUsed": 42000})
    assert bundle.transactions == ()
    assert not bundle.success


def test_effective_gas_price():
    bundle = decode_simulated_bundle(SIMULATED_BUNDLE)
    tx = bundle.transactions[0]
    assert tx.effective_gas_price == 10000000000063000 // 21000
    # three results of 21000 gas each, weighted across the bundle
    assert bundle.effective_gas_price == (3 * 10000000000063000) // (3 * 21000)


def test_effective_gas_price_ranks_bundles():
    cheap = decode_simulated_bundle({"results": [{"coinbaseDiff": "21000", "gasUsed": 21000}]})
    rich = decode_simulated_bundle({"results": [
        {"coinbaseDiff": "42000", "gasUsed": 21000},
        {"coinbaseDiff": "0", "gasUsed": 21000},
    ]})
    assert rich.effective_gas_price == 1
    assert cheap.effective_gas_price == 1

    richer = decode_simulated_bundle({"results": [{"coinbaseDiff": "63000", "gasUsed": 21000}]})
    assert richer.effective_gas_price > rich.effective_gas_price


def test_effective_gas_price_unknown_when_fields_absent():
    tx = decode_simulated_transaction({})
    assert tx.effective_gas_price is None
    assert decode_simulated_transaction({"coinbaseDiff": "5", "gasUsed": 0}).effective_gas_price is None


def test_absent_fields_decode_to_none():
    tx = decode_simulated_transaction({})
    assert tx.gas_used is None
    assert tx.gas_price is None
    assert tx.coinbase_tip is None
    assert tx.return_data is None
    assert tx.from_address is None

    bundle = decode_simulated_bundle({})
    assert bundle.transactions == ()
    assert bundle.gas_used is None
    assert bundle.simulation_block is None


@pytest.mark.parametrize("value,expected", [
    (21000, 21000),
    ("21000", 21000),
    ("0x5208", 21000),
    ("0x", 0),
])
def test_quantity_encodings(value, expected):
    assert decode_simulated_transaction({"gasUsed": value}).gas_used == expected


@pytest.mark.parametrize("payload", [
    {"gasUsed": "lots"},
    {"toAddress": "0x1234"},
    {"value": 12},
    {"error": {"message": "nested"}},
])
def test_malformed_fields_raise_decode_error(payload):
    with pytest.raises(ResponseDecodeError):
        decode_simulated_transaction(payload)


def test_non_object_results_raise_decode_error():
    with pytest.raises(ResponseDecodeError):
        decode_simulated_bundle(["not", "an", "object"])
    with pytest.raises(ResponseDecodeError):
        decode_simulated_bundle({"results": "nope"})


def test_decode_user_stats():
    stats = decode_user_stats({
        "isHighPriority": True,
        "allTimeValidatorPayments": "1280749594841588639",
        "allTimeGasSimulated": "30049470846",
        "last7dValidatorPayments": "1280749594841588639",
        "last7dGasSimulated": "30049470846",
        "last1dValidatorPayments": "142305510537954293",
        "last1dGasSimulated": "2731770076",
    })

    assert stats.is_high_priority is True
    assert stats.all_time_validator_payments == 1280749594841588639
    assert stats.all_time_gas_simulated == 30049470846
    assert stats.last_7d_validator_payments == 1280749594841588639
    assert stats.last_7d_gas_simulated == 30049470846
    assert stats.last_1d_validator_payments == 142305510537954293
    assert stats.last_1d_gas_simulated == 2731770076


def test_user_stats_legacy_miner_fields():
    stats = decode_user_stats({"allTimeMinerPayments": "12", "isHighPriority": False})
    assert stats.all_time_validator_payments == 12
    assert stats.is_high_priority is False


def test_user_stats_tolerate_absence():
    stats = decode_user_stats({})
    assert stats.is_high_priority is None
    assert stats.all_time_validator_payments is None
    assert stats.last_1d_gas_simulated is None


def test_decode_bundle_stats_v1():
    stats = decode_bundle_stats({
        "isSimulated": True,
        "isSentToMiners": True,
        "isHighPriority": True,
        "simulatedAt": "2021-08-06T21:36:06.317Z",
        "submittedAt": "2021-08-06T21:36:06.250Z",
        "sentToMinersAt": "2021-08-06T21:36:06.343Z",
    })

    assert stats.is_simulated is True
    assert stats.is_sent_to_miners is True
    assert stats.simulated_at == datetime(2021, 8, 6, 21, 36, 6, 317000, tzinfo=timezone.utc)
    assert stats.submitted_at.isoformat() == "2021-08-06T21:36:06.250000+00:00"
    assert stats.sent_to_miners_at == datetime(2021, 8, 6, 21, 36, 6, 343000, tzinfo=timezone.utc)
    assert stats.received_at is None


def test_decode_bundle_stats_v2():
    stats = decode_bundle_stats({
        "isHighPriority": False,
        "isSimulated": True,
        "simulatedAt": "2022-10-06T21:36:06.317Z",
        "receivedAt": "2022-10-06T21:36:06.250Z",
        "consideredByBuildersAt": [
            {"pubkey": "0x81babeec", "timestamp": "2022-10-06T21:36:06.343Z"},
        ],
        "sealedByBuildersAt": [],
    })

    assert stats.is_sent_to_miners is None
    assert stats.received_at.year == 2022
    assert stats.considered_by_builders_at[0][0] == "0x81babeec"
    assert stats.sealed_by_builders_at == ()


def test_bundle_stats_tolerate_absence():
    stats = decode_bundle_stats({})
    assert stats.is_simulated is None
    assert stats.is_high_priority is None
    assert stats.simulated_at is None
    assert stats.considered_by_builders_at is None
    assert stats.sealed_by_builders_at is None


def test_absent_builder_lists_differ_from_empty_ones():
    stats = decode_bundle_stats({"sealedByBuildersAt": []})
    assert stats.sealed_by_builders_at == ()
    assert stats.considered_by_builders_at is None


def test_bundle_stats_bad_timestamp():
    with pytest.raises(ResponseDecodeError):
        decode_bundle_stats({"simulatedAt": "yesterday"})
