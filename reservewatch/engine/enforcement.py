"""On-chain enforcement state and transition detection."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional


@dataclass(frozen=True)
class EnforcementSnapshot:
    """
    Decoded on-chain state of the receiver and liability token.

    Boolean fields are None when the value could not be read. ``error`` is
    set when the read as a whole failed.
    """

    coverage_bps: Optional[int] = None  # last attested coverage
    min_coverage_bps: Optional[int] = None
    minting_paused: Optional[bool] = None
    minting_enabled: Optional[bool] = None
    hook_wired: Optional[bool] = None  # token guardian is the receiver
    forwarder_set: Optional[bool] = None
    liability_supply: Optional[int] = None  # token totalSupply
    forwarder_matches_expected: Optional[bool] = None
    block_number: Optional[int] = None
    last_attestation_hash: Optional[str] = None
    last_reserve_usd: Optional[int] = None
    last_as_of_timestamp: Optional[int] = None
    error: Optional[str] = None

    @property
    def available(self) -> bool:
        return self.error is None

    @classmethod
    def unavailable(cls, error: str) -> "EnforcementSnapshot":
        return cls(error=error or "onchain read failed")

    @classmethod
    def from_mapping(cls, data: Optional[Mapping[str, Any]]) -> "EnforcementSnapshot":
        """Build a snapshot from camelCase JSON (``coverageBps``, ``hookWired`` ...)."""
        if data is None:
            return cls.unavailable("no onchain snapshot")

        def opt_int(key: str) -> Optional[int]:
            value = data.get(key)
            if value is None or value == "":
                return None
            if isinstance(value, bool):
                raise ValueError(f"{key} must be an integer, got {value!r}")
            return int(value)

        def opt_bool(key: str) -> Optional[bool]:
            value = data.get(key)
            if value is not None and not isinstance(value, bool):
                raise ValueError(f"{key} must be a boolean, got {value!r}")
            return value

        return cls(
            coverage_bps=opt_int("coverageBps"),
            min_coverage_bps=opt_int("minCoverageBps"),
            minting_paused=opt_bool("mintingPaused"),
            minting_enabled=opt_bool("mintingEnabled"),
            hook_wired=opt_bool("hookWired"),
            forwarder_set=opt_bool("forwarderSet"),
            liability_supply=opt_int("liabilitySupply"),
            forwarder_matches_expected=opt_bool("forwarderMatchesExpected"),
            block_number=opt_int("blockNumber"),
            error=data.get("error") or None,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "coverageBps": self.coverage_bps,
            "minCoverageBps": self.min_coverage_bps,
            "mintingPaused": self.minting_paused,
            "mintingEnabled": self.minting_enabled,
            "hookWired": self.hook_wired,
            "forwarderSet": self.forwarder_set,
            "liabilitySupply": self.liability_supply,
            "forwarderMatchesExpected": self.forwarder_matches_expected,
            "blockNumber": self.block_number,
            "lastAttestationHash": self.last_attestation_hash,
            "lastReserveUsd": self.last_reserve_usd,
            "lastAsOfTimestamp": self.last_as_of_timestamp,
            "error": self.error,
        }


@dataclass(frozen=True)
class EnforcementTransition:
    """Minting enforcement changed between two consecutive snapshots."""

    minting_paused_before: Optional[bool]
    minting_paused: Optional[bool]
    minting_enabled_before: Optional[bool]
    minting_enabled: Optional[bool]

    event_type = "enforcement_state_changed"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.event_type,
            "mintingPaused": self.minting_paused,
            "mintingEnabled": self.minting_enabled,
            "previous": {
                "mintingPaused": self.minting_paused_before,
                "mintingEnabled": self.minting_enabled_before,
            },
        }


def detect_enforcement_transition(
    previous: Optional[EnforcementSnapshot],
    current: Optional[EnforcementSnapshot],
) -> Optional[EnforcementTransition]:
    """
    Compare minting flags of two snapshots.

    Returns None on the first observation, when either read failed, or when
    neither flag changed. The caller owns ``previous``.
    """
    if previous is None or current is None:
        return None
    if not previous.available or not current.available:
        return None
    if previous.minting_paused is None and previous.minting_enabled is None:
        return None

    if (
        previous.minting_paused == current.minting_paused
        and previous.minting_enabled == current.minting_enabled
    ):
        return None

    return EnforcementTransition(
        minting_paused_before=previous.minting_paused,
        minting_paused=current.minting_paused,
        minting_enabled_before=previous.minting_enabled,
        minting_enabled=current.minting_enabled,
    )
