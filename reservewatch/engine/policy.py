"""Consensus policy: how two reserve sources are reconciled."""
from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Dict, Mapping, Optional

from .exceptions import ConfigurationError

DEFAULT_MAX_RESERVE_AGE_S = Decimal("120")
DEFAULT_MAX_MISMATCH_RATIO = Decimal("0.01")
BPS_DENOMINATOR = 10_000


class ConsensusMode(str, Enum):
    PRIMARY_ONLY = "primary_only"
    REQUIRE_MATCH = "require_match"
    CONSERVATIVE_MIN = "conservative_min"


class StalePolicy(str, Enum):
    """What to do when the primary reading exists but is too old."""

    FALLBACK_SECONDARY = "fallback_secondary"
    FAIL_CLOSED = "fail_closed"


def _to_enum(enum_cls, value: Any, field_name: str):
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(str(value).strip())
    except ValueError:
        allowed = ", ".join(m.value for m in enum_cls)
        raise ConfigurationError(
            f"unknown {field_name} {value!r} (expected one of: {allowed})", field_name, value
        )


def _to_decimal(value: Any, field_name: str) -> Decimal:
    if isinstance(value, bool):
        raise ConfigurationError(f"{field_name} must be a number, got {value!r}", field_name, value)
    try:
        number = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ConfigurationError(f"{field_name} must be a number, got {value!r}", field_name, value)
    if not number.is_finite():
        raise ConfigurationError(f"{field_name} must be finite, got {value!r}", field_name, value)
    return number


def _to_int(value: Any, field_name: str) -> int:
    number = _to_decimal(value, field_name)
    if number != number.to_integral_value():
        raise ConfigurationError(f"{field_name} must be an integer, got {value!r}", field_name, value)
    return int(number)


@dataclass(frozen=True)
class ConsensusPolicy:
    """
    Immutable policy for one evaluation.

    Construction validates every field and raises ConfigurationError on a
    malformed value; there is no silent fallback to defaults.
    """

    mode: ConsensusMode = ConsensusMode.REQUIRE_MATCH
    max_reserve_age_s: Decimal = DEFAULT_MAX_RESERVE_AGE_S
    max_mismatch_ratio: Decimal = DEFAULT_MAX_MISMATCH_RATIO
    min_coverage_bps: Optional[int] = None  # overrides the on-chain minimum when set
    stale_policy: StalePolicy = StalePolicy.FALLBACK_SECONDARY

    def __post_init__(self) -> None:
        object.__setattr__(self, "mode", _to_enum(ConsensusMode, self.mode, "consensus mode"))
        object.__setattr__(
            self, "stale_policy", _to_enum(StalePolicy, self.stale_policy, "stale policy")
        )

        max_age = _to_decimal(self.max_reserve_age_s, "max_reserve_age_s")
        if max_age <= 0:
            raise ConfigurationError(
                f"max_reserve_age_s must be positive, got {self.max_reserve_age_s!r}",
                "max_reserve_age_s",
                self.max_reserve_age_s,
            )
        object.__setattr__(self, "max_reserve_age_s", max_age)

        max_ratio = _to_decimal(self.max_mismatch_ratio, "max_mismatch_ratio")
        if max_ratio < 0:
            raise ConfigurationError(
                f"max_mismatch_ratio must be non-negative, got {self.max_mismatch_ratio!r}",
                "max_mismatch_ratio",
                self.max_mismatch_ratio,
            )
        object.__setattr__(self, "max_mismatch_ratio", max_ratio)

        if self.min_coverage_bps is not None:
            min_bps = _to_int(self.min_coverage_bps, "min_coverage_bps")
            if min_bps < 0:
                raise ConfigurationError(
                    f"min_coverage_bps must be non-negative, got {self.min_coverage_bps!r}",
                    "min_coverage_bps",
                    self.min_coverage_bps,
                )
            object.__setattr__(self, "min_coverage_bps", min_bps)

    @classmethod
    def from_mapping(cls, data: Optional[Mapping[str, Any]]) -> "ConsensusPolicy":
        """
        Build a policy from project configuration.

        Accepts the camelCase keys used by project/connector configs
        (``consensusMode``, ``maxReserveAgeS``, ``maxMismatchRatio``,
        ``maxMismatchBps``, ``minCoverageBps``, ``stalePolicy``) as well as
        the snake_case field names. ``maxMismatchBps`` wins over
        ``maxMismatchRatio`` when both are given. Missing or empty keys take
        the defaults; present-but-malformed keys raise ConfigurationError.
        """
        data = data or {}

        def pick(*keys: str) -> Any:
            for key in keys:
                value = data.get(key)
                if value is not None and value != "":
                    return value
            return None

        kwargs: Dict[str, Any] = {}

        mode = pick("consensusMode", "mode", "consensus_mode")
        if mode is not None:
            kwargs["mode"] = mode

        max_age = pick("maxReserveAgeS", "max_reserve_age_s")
        if max_age is not None:
            kwargs["max_reserve_age_s"] = max_age

        mismatch_bps = pick("maxMismatchBps", "max_mismatch_bps")
        mismatch_ratio = pick("maxMismatchRatio", "max_mismatch_ratio")
        if mismatch_bps is not None:
            bps = _to_int(mismatch_bps, "max_mismatch_bps")
            if bps < 0:
                raise ConfigurationError(
                    f"max_mismatch_bps must be non-negative, got {mismatch_bps!r}",
                    "max_mismatch_bps",
                    mismatch_bps,
                )
            kwargs["max_mismatch_ratio"] = Decimal(bps) / BPS_DENOMINATOR
        elif mismatch_ratio is not None:
            kwargs["max_mismatch_ratio"] = mismatch_ratio

        min_bps = pick("minCoverageBps", "min_coverage_bps")
        if min_bps is not None:
            kwargs["min_coverage_bps"] = min_bps

        stale_policy = pick("stalePolicy", "stale_policy")
        if stale_policy is not None:
            kwargs["stale_policy"] = stale_policy

        return cls(**kwargs)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "consensusMode": self.mode.value,
            "maxReserveAgeS": str(self.max_reserve_age_s),
            "maxMismatchRatio": str(self.max_mismatch_ratio),
            "minCoverageBps": self.min_coverage_bps,
            "stalePolicy": self.stale_policy.value,
        }
