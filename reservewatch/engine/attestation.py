"""Attestation values handed to the on-chain write collaborator."""
from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_FLOOR, Decimal
from typing import Any, Dict, Optional

from eth_abi import encode
from eth_utils import keccak

from .coverage import compute_coverage_bps
from .exceptions import ConfigurationError
from .reading import ReserveReading

ATTESTATION_VERSIONS = ("v1", "v2")

_V1_TYPES = ["uint256", "uint256", "uint256", "uint256", "bool"]
_V2_TYPES = ["uint256", "uint256", "uint256", "uint256", "uint256", "bool"]


def _whole_units(amount: Decimal) -> int:
    return int(amount.to_integral_value(rounding=ROUND_FLOOR))


@dataclass(frozen=True)
class Attestation:
    reserve_usd: int
    liability_supply: int
    coverage_bps: int
    as_of_timestamp: int
    breaker_triggered: bool
    nav_usd: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "reserveUsd": self.reserve_usd,
            "navUsd": self.nav_usd,
            "liabilitySupply": self.liability_supply,
            "coverageBps": self.coverage_bps,
            "asOfTimestamp": self.as_of_timestamp,
            "breakerTriggered": self.breaker_triggered,
        }


def build_attestation(
    reading: ReserveReading,
    liability_supply: int,
    min_coverage_bps: int,
) -> Attestation:
    """
    Attestation tuple for a resolved reading.

    Reserve and NAV are floored to whole units (the receiver stores uint256).
    The breaker triggers when coverage is strictly below ``min_coverage_bps``.
    """
    coverage_bps = compute_coverage_bps(reading.reserve_usd, liability_supply)
    return Attestation(
        reserve_usd=_whole_units(reading.reserve_usd),
        nav_usd=_whole_units(reading.nav_usd) if reading.nav_usd is not None else None,
        liability_supply=int(liability_supply),
        coverage_bps=coverage_bps,
        as_of_timestamp=reading.timestamp,
        breaker_triggered=coverage_bps < int(min_coverage_bps),
    )


def attestation_hash(attestation: Attestation, version: str = "v1") -> str:
    """
    keccak256 of the ABI-encoded attestation preimage, as 0x-prefixed hex.

    v1: (reserveUsd, liabilitySupply, coverageBps, asOfTimestamp, breakerTriggered)
    v2: (reserveUsd, navUsd, liabilitySupply, coverageBps, asOfTimestamp, breakerTriggered)
    """
    if version == "v2":
        preimage = encode(
            _V2_TYPES,
            [
                attestation.reserve_usd,
                attestation.nav_usd or 0,
                attestation.liability_supply,
                attestation.coverage_bps,
                attestation.as_of_timestamp,
                attestation.breaker_triggered,
            ],
        )
    elif version == "v1":
        preimage = encode(
            _V1_TYPES,
            [
                attestation.reserve_usd,
                attestation.liability_supply,
                attestation.coverage_bps,
                attestation.as_of_timestamp,
                attestation.breaker_triggered,
            ],
        )
    else:
        raise ConfigurationError(
            f"attestation version must be one of {ATTESTATION_VERSIONS}, got {version!r}",
            "attestation_version",
            version,
        )
    return "0x" + keccak(preimage).hex()
