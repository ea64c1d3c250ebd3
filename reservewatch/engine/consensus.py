"""
Reserve consensus: reconcile primary and secondary readings under a policy.

A reading is usable when it parsed, its signature check did not fail
(``None`` means not required) and it is no older than the policy's
``max_reserve_age_s``. "Now" is taken once per resolution so both readings
are aged against the same instant.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Callable, Dict, Optional, Tuple
import logging
import time

from .exceptions import ConfigurationError
from .policy import ConsensusMode, ConsensusPolicy, StalePolicy
from .reading import ReserveReading, SourceResult

logger = logging.getLogger(__name__)

PRIMARY = "primary"
SECONDARY = "secondary"

_ONE = Decimal(1)


@dataclass(frozen=True)
class Resolution:
    """Outcome of reconciling the two reserve sources."""

    mode: ConsensusMode
    now: int
    selected: Optional[ReserveReading]
    selected_role: Optional[str]
    stale: bool
    mismatch: bool
    signature_invalid: bool
    mismatch_ratio: Optional[Decimal] = None
    mismatch_usd: Optional[Decimal] = None
    ages: Dict[str, Optional[int]] = field(default_factory=dict)

    @property
    def resolved_reserve_usd(self) -> Optional[Decimal]:
        return self.selected.reserve_usd if self.selected else None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "consensusMode": self.mode.value,
            "now": self.now,
            "selectedSource": self.selected_role,
            "resolvedReserveUsd": (
                str(self.resolved_reserve_usd) if self.resolved_reserve_usd is not None else None
            ),
            "reserveStale": self.stale,
            "sourceMismatch": self.mismatch,
            "reserveSignatureInvalid": self.signature_invalid,
            "reserveMismatchRatio": (
                str(self.mismatch_ratio) if self.mismatch_ratio is not None else None
            ),
            "reserveMismatchUsd": str(self.mismatch_usd) if self.mismatch_usd is not None else None,
            "reserveAgesS": dict(self.ages),
        }


def mismatch(a: Decimal, b: Decimal) -> Tuple[Decimal, Decimal]:
    """
    Absolute and relative divergence between two reserve values.

    The ratio divides by the larger of the two values, floored at 1.

    Returns:
        (mismatch_usd, mismatch_ratio)
    """
    a = Decimal(a)
    b = Decimal(b)
    diff = abs(a - b)
    return diff, diff / max(a, b, _ONE)


def mismatch_ratio(a: Decimal, b: Decimal) -> Decimal:
    return mismatch(a, b)[1]


# ============================================================================
# Usability checks
# ============================================================================

def _age(result: Optional[SourceResult], now: int) -> Optional[int]:
    if result is None or not result.is_present:
        return None
    return result.reading.age(now)


def _too_old(result: Optional[SourceResult], policy: ConsensusPolicy, now: int) -> bool:
    age = _age(result, now)
    return age is not None and age > policy.max_reserve_age_s


def _usable(result: Optional[SourceResult], policy: ConsensusPolicy, now: int) -> bool:
    if result is None or not result.is_present:
        return False
    if result.signature.failed:
        return False
    return not _too_old(result, policy, now)


def _stale_primary_fails_closed(
    primary: Optional[SourceResult], policy: ConsensusPolicy, now: int
) -> bool:
    """True when a parsed, correctly signed but old primary must not fall back."""
    if policy.stale_policy is not StalePolicy.FAIL_CLOSED:
        return False
    if primary is None or not primary.is_present or primary.signature.failed:
        return False
    return _too_old(primary, policy, now)


# ============================================================================
# Mode resolvers
# ============================================================================

_Choice = Tuple[Optional[ReserveReading], Optional[str], bool, bool]  # selected, role, stale, mismatch


def _resolve_primary_only(primary, secondary, policy, now, diff) -> _Choice:
    if _usable(primary, policy, now):
        return primary.reading, PRIMARY, False, False
    if _stale_primary_fails_closed(primary, policy, now):
        logger.warning("Primary reserve reading stale and stale policy is fail_closed")
        return None, None, True, False
    if _usable(secondary, policy, now):
        logger.info("Primary reserve reading unusable; falling back to secondary")
        return secondary.reading, SECONDARY, False, False
    return None, None, True, False


def _resolve_require_match(primary, secondary, policy, now, diff) -> _Choice:
    if not (_usable(primary, policy, now) and _usable(secondary, policy, now)):
        return None, None, True, False
    _, ratio = diff
    return primary.reading, PRIMARY, False, ratio > policy.max_mismatch_ratio


def _resolve_conservative_min(primary, secondary, policy, now, diff) -> _Choice:
    primary_ok = _usable(primary, policy, now)
    secondary_ok = _usable(secondary, policy, now)

    if primary_ok and secondary_ok:
        _, ratio = diff
        if ratio > policy.max_mismatch_ratio:
            logger.warning(
                "Reserve source mismatch ratio=%s exceeds max=%s; using lower value",
                ratio,
                policy.max_mismatch_ratio,
            )
        if secondary.reading.reserve_usd < primary.reading.reserve_usd:
            return secondary.reading, SECONDARY, False, False
        return primary.reading, PRIMARY, False, False

    if primary_ok:
        return primary.reading, PRIMARY, False, False
    if _stale_primary_fails_closed(primary, policy, now):
        logger.warning("Primary reserve reading stale and stale policy is fail_closed")
        return None, None, True, False
    if secondary_ok:
        return secondary.reading, SECONDARY, False, False
    return None, None, True, False


_RESOLVERS: Dict[ConsensusMode, Callable[..., _Choice]] = {
    ConsensusMode.PRIMARY_ONLY: _resolve_primary_only,
    ConsensusMode.REQUIRE_MATCH: _resolve_require_match,
    ConsensusMode.CONSERVATIVE_MIN: _resolve_conservative_min,
}


def resolve(
    primary: Optional[SourceResult],
    secondary: Optional[SourceResult],
    policy: ConsensusPolicy,
    now: Optional[int] = None,
) -> Resolution:
    """
    Select the reserve reading to act on.

    Args:
        primary: Outcome of the primary source (None when not configured)
        secondary: Outcome of the secondary source
        policy: Consensus policy
        now: Evaluation instant in unix seconds (defaults to the wall clock)

    Returns:
        Resolution

    Raises:
        ConfigurationError: If the policy's mode has no resolver
    """
    resolver = _RESOLVERS.get(policy.mode)
    if resolver is None:
        raise ConfigurationError(f"unknown consensus mode {policy.mode!r}", "mode", policy.mode)

    now = int(time.time()) if now is None else int(now)

    diff: Tuple[Optional[Decimal], Optional[Decimal]] = (None, None)
    if (
        primary is not None and primary.is_present
        and secondary is not None and secondary.is_present
    ):
        diff = mismatch(primary.reading.reserve_usd, secondary.reading.reserve_usd)

    selected, role, stale, source_mismatch = resolver(primary, secondary, policy, now, diff)

    primary_sig_failed = primary is not None and primary.signature_failed
    secondary_sig_failed = secondary is not None and secondary.signature_failed
    if policy.mode is ConsensusMode.PRIMARY_ONLY:
        signature_invalid = primary_sig_failed
    else:
        signature_invalid = primary_sig_failed or secondary_sig_failed

    resolution = Resolution(
        mode=policy.mode,
        now=now,
        selected=selected,
        selected_role=role,
        stale=stale,
        mismatch=source_mismatch,
        signature_invalid=signature_invalid,
        mismatch_usd=diff[0],
        mismatch_ratio=diff[1],
        ages={PRIMARY: _age(primary, now), SECONDARY: _age(secondary, now)},
    )

    logger.debug(
        "Resolved reserves mode=%s selected=%s stale=%s mismatch=%s ratio=%s ages=%s",
        policy.mode.value,
        role,
        stale,
        source_mismatch,
        diff[1],
        resolution.ages,
    )
    return resolution
