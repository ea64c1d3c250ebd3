from decimal import Decimal

import pytest
from eth_abi import encode
from eth_utils import keccak

from reservewatch.engine.attestation import Attestation, attestation_hash, build_attestation
from reservewatch.engine.exceptions import ConfigurationError
from reservewatch.engine.reading import parse_reading


def make_reading(reserve="1200000.75", nav=None):
    payload = {"timestamp": 1_700_000_000, "reserveUsd": reserve, "source": "custodian"}
    if nav is not None:
        payload["navUsd"] = nav
    return parse_reading(payload)


def test_build_attestation_floors_and_computes_coverage():
    att = build_attestation(make_reading(), liability_supply=1_000_000, min_coverage_bps=10_000)

    assert att.reserve_usd == 1_200_000
    assert att.nav_usd is None
    assert att.coverage_bps == 12_000
    assert att.as_of_timestamp == 1_700_000_000
    assert att.breaker_triggered is False


def test_breaker_triggers_below_minimum():
    att = build_attestation(make_reading("900000"), liability_supply=1_000_000, min_coverage_bps=10_000)
    assert att.coverage_bps == 9_000
    assert att.breaker_triggered is True


def test_breaker_not_triggered_at_minimum():
    att = build_attestation(make_reading("1000000"), liability_supply=1_000_000, min_coverage_bps=10_000)
    assert att.breaker_triggered is False


def test_nav_carried_for_v2():
    att = build_attestation(make_reading(nav="1000000.9"), 1_000_000, 10_000)
    assert att.nav_usd == 1_000_000


def test_v1_hash_matches_abi_preimage():
    att = Attestation(
        reserve_usd=1_200_000,
        liability_supply=1_000_000,
        coverage_bps=12_000,
        as_of_timestamp=1_700_000_000,
        breaker_triggered=False,
    )
    preimage = encode(
        ["uint256", "uint256", "uint256", "uint256", "bool"],
        [1_200_000, 1_000_000, 12_000, 1_700_000_000, False],
    )

    assert attestation_hash(att, "v1") == "0x" + keccak(preimage).hex()


def test_v2_hash_includes_nav():
    att = Attestation(
        reserve_usd=1_200_000,
        liability_supply=1_000_000,
        coverage_bps=12_000,
        as_of_timestamp=1_700_000_000,
        breaker_triggered=False,
        nav_usd=1_100_000,
    )
    v2 = attestation_hash(att, "v2")

    assert v2 != attestation_hash(att, "v1")
    assert v2.startswith("0x") and len(v2) == 66


def test_unknown_version_raises():
    att = build_attestation(make_reading(), 1_000_000, 10_000)
    with pytest.raises(ConfigurationError):
        attestation_hash(att, "v3")
