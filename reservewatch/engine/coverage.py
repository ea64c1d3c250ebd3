"""Reserve coverage versus outstanding liabilities, in basis points."""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, Optional, Union
import logging

logger = logging.getLogger(__name__)

BPS = 10_000

COVERAGE_FROM_RESERVES = "resolved"
COVERAGE_FROM_ONCHAIN = "onchain"
MINIMUM_FROM_POLICY = "policy"
MINIMUM_FROM_ONCHAIN = "onchain"

Number = Union[int, Decimal]


@dataclass(frozen=True)
class CoverageResult:
    """
    Coverage and breach decision.

    ``breach`` is None when either side is unknown. "No known minimum" is a
    distinct state, not a minimum of zero.
    """

    coverage_bps: Optional[int]
    min_coverage_bps: Optional[int]
    breach: Optional[bool]
    coverage_source: Optional[str] = None
    minimum_source: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "coverageBps": self.coverage_bps,
            "minCoverageBps": self.min_coverage_bps,
            "breach": self.breach,
            "coverageSource": self.coverage_source,
            "minCoverageSource": self.minimum_source,
        }


def compute_coverage_bps(reserve_usd: Number, liability_supply: Number) -> int:
    """floor(reserve * 10000 / supply), or 0 when supply is zero."""
    reserve = Decimal(reserve_usd)
    supply = Decimal(liability_supply)
    if reserve < 0 or supply < 0:
        raise ValueError(f"coverage inputs must be non-negative: reserve={reserve} supply={supply}")
    if supply == 0:
        return 0
    # Integer ratios keep the floor exact at any precision.
    reserve_num, reserve_den = reserve.as_integer_ratio()
    supply_num, supply_den = supply.as_integer_ratio()
    return (reserve_num * supply_den * BPS) // (reserve_den * supply_num)


def evaluate_coverage(
    resolved_reserve_usd: Optional[Number],
    liability_supply: Optional[Number],
    min_coverage_bps_override: Optional[int] = None,
    onchain_min_coverage_bps: Optional[int] = None,
    onchain_coverage_bps: Optional[int] = None,
) -> CoverageResult:
    """
    Decide whether coverage is below the effective minimum.

    Coverage is computed from the resolved reserve and the liability supply
    when both are known; otherwise the last attested on-chain coverage is
    used. The effective minimum is the policy override if set, else the
    on-chain minimum.

    Args:
        resolved_reserve_usd: Reserve value selected by consensus, if any
        liability_supply: Outstanding token supply, if known
        min_coverage_bps_override: Policy minimum (wins when set)
        onchain_min_coverage_bps: Receiver contract minimum
        onchain_coverage_bps: Last coverage attested on-chain

    Returns:
        CoverageResult
    """
    coverage_bps: Optional[int] = None
    coverage_source: Optional[str] = None
    if resolved_reserve_usd is not None and liability_supply is not None:
        coverage_bps = compute_coverage_bps(resolved_reserve_usd, liability_supply)
        coverage_source = COVERAGE_FROM_RESERVES
    elif onchain_coverage_bps is not None:
        coverage_bps = int(onchain_coverage_bps)
        coverage_source = COVERAGE_FROM_ONCHAIN

    min_bps: Optional[int] = None
    minimum_source: Optional[str] = None
    if min_coverage_bps_override is not None:
        min_bps = int(min_coverage_bps_override)
        minimum_source = MINIMUM_FROM_POLICY
    elif onchain_min_coverage_bps is not None:
        min_bps = int(onchain_min_coverage_bps)
        minimum_source = MINIMUM_FROM_ONCHAIN

    breach: Optional[bool] = None
    if coverage_bps is not None and min_bps is not None:
        breach = coverage_bps < min_bps
    elif coverage_bps is not None:
        logger.debug("No minimum coverage known; breach not evaluated")

    return CoverageResult(
        coverage_bps=coverage_bps,
        min_coverage_bps=min_bps,
        breach=breach,
        coverage_source=coverage_source,
        minimum_source=minimum_source,
    )
