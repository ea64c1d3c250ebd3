"""
System status derivation.

Every independent failure signal becomes a reason code; all applicable
codes are reported. The single status is then chosen by strict priority:

    1. STALE      - the data cannot be trusted (on-chain read failed, reserves
                    stale, required signature invalid)
    2. DEGRADED   - sources disagree, enforcement wiring incomplete, or a
                    warning-level incident is active
    3. UNHEALTHY  - coverage below threshold, minting paused/disabled, or a
                    critical incident is active
    4. HEALTHY

"Cannot tell" outranks "looks bad".
"""
from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, FrozenSet, Iterable, Mapping, Optional
import logging
import time

from .consensus import Resolution, resolve
from .coverage import CoverageResult, evaluate_coverage
from .enforcement import EnforcementSnapshot
from .policy import ConsensusPolicy
from .reading import SourceResult

logger = logging.getLogger(__name__)


class SystemStatus(str, Enum):
    HEALTHY = "HEALTHY"
    DEGRADED = "DEGRADED"
    STALE = "STALE"
    UNHEALTHY = "UNHEALTHY"


class ReasonCode(str, Enum):
    ONCHAIN_UNAVAILABLE = "onchain_unavailable"
    RESERVE_DATA_STALE = "reserve_data_stale"
    RESERVE_SIGNATURE_INVALID = "reserve_signature_invalid"
    RESERVE_SOURCE_MISMATCH = "reserve_source_mismatch"
    ENFORCEMENT_NOT_WIRED = "enforcement_not_wired"
    FORWARDER_NOT_SET = "forwarder_not_set"
    MINTING_PAUSED = "minting_paused"
    MINTING_DISABLED = "minting_disabled"
    COVERAGE_BELOW_THRESHOLD = "coverage_below_threshold"
    INCIDENT_ACTIVE = "incident_active"


STALE_REASONS = frozenset({
    ReasonCode.ONCHAIN_UNAVAILABLE,
    ReasonCode.RESERVE_DATA_STALE,
    ReasonCode.RESERVE_SIGNATURE_INVALID,
})

DEGRADED_REASONS = frozenset({
    ReasonCode.RESERVE_SOURCE_MISMATCH,
    ReasonCode.ENFORCEMENT_NOT_WIRED,
    ReasonCode.FORWARDER_NOT_SET,
})

UNHEALTHY_REASONS = frozenset({
    ReasonCode.COVERAGE_BELOW_THRESHOLD,
    ReasonCode.MINTING_PAUSED,
    ReasonCode.MINTING_DISABLED,
})


class IncidentSeverity(str, Enum):
    WARNING = "warning"
    CRITICAL = "critical"


@dataclass(frozen=True)
class Incident:
    active: bool = False
    severity: IncidentSeverity = IncidentSeverity.WARNING
    message: str = ""
    updated_at: int = 0

    @property
    def critical(self) -> bool:
        return self.active and self.severity is IncidentSeverity.CRITICAL

    @classmethod
    def from_mapping(cls, data: Optional[Mapping[str, Any]]) -> Optional["Incident"]:
        """Build an incident from JSON; unknown severities normalise to warning."""
        if not data:
            return None
        severity = (
            IncidentSeverity.CRITICAL
            if data.get("severity") == IncidentSeverity.CRITICAL.value
            else IncidentSeverity.WARNING
        )
        message = data.get("message")
        return cls(
            active=bool(data.get("active")),
            severity=severity,
            message=message if isinstance(message, str) else "",
            updated_at=int(data.get("updatedAt") or 0),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "active": self.active,
            "severity": self.severity.value,
            "message": self.message,
            "updatedAt": self.updated_at,
        }


@dataclass(frozen=True)
class ReadingPair:
    """The two reserve source outcomes for one evaluation."""

    primary: Optional[SourceResult] = None
    secondary: Optional[SourceResult] = None


@dataclass(frozen=True)
class DerivedStatus:
    """Status and reasons for one evaluation. Built fresh every time, never mutated."""

    status: SystemStatus
    reasons: FrozenSet[ReasonCode]
    evaluated_at: int
    resolution: Resolution
    coverage: CoverageResult
    onchain_error: Optional[str] = None
    incident: Optional[Incident] = None
    policy: Optional[ConsensusPolicy] = field(default=None, compare=False)

    @property
    def ages(self) -> Dict[str, Optional[int]]:
        return dict(self.resolution.ages)

    @property
    def mismatch_ratio(self) -> Optional[Decimal]:
        return self.resolution.mismatch_ratio

    @property
    def mismatch_usd(self) -> Optional[Decimal]:
        return self.resolution.mismatch_usd

    @property
    def resolved_coverage_bps(self) -> Optional[int]:
        return self.coverage.coverage_bps

    def has(self, reason: ReasonCode) -> bool:
        return reason in self.reasons

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "status": self.status.value,
            "reasons": sorted(r.value for r in self.reasons),
            "now": self.evaluated_at,
            "onchainError": self.onchain_error,
            "incident": self.incident.to_dict() if self.incident else None,
            "policy": self.policy.to_dict() if self.policy else None,
        }
        data.update(self.resolution.to_dict())
        data.update(self.coverage.to_dict())
        return data


def classify(reasons: Iterable[ReasonCode], critical_incident: bool = False) -> SystemStatus:
    """Map a reason set to a status by strict priority."""
    reasons = frozenset(reasons)

    if reasons & STALE_REASONS:
        return SystemStatus.STALE

    incident_active = ReasonCode.INCIDENT_ACTIVE in reasons
    if reasons & DEGRADED_REASONS or (incident_active and not critical_incident):
        return SystemStatus.DEGRADED

    if reasons & UNHEALTHY_REASONS or (incident_active and critical_incident):
        return SystemStatus.UNHEALTHY

    return SystemStatus.HEALTHY


def collect_reasons(
    resolution: Resolution,
    coverage: CoverageResult,
    snapshot: Optional[EnforcementSnapshot],
    incident: Optional[Incident] = None,
) -> FrozenSet[ReasonCode]:
    """Every applicable reason code, not just the first."""
    reasons = set()

    if snapshot is None or not snapshot.available:
        reasons.add(ReasonCode.ONCHAIN_UNAVAILABLE)
    if resolution.stale:
        reasons.add(ReasonCode.RESERVE_DATA_STALE)
    if resolution.signature_invalid:
        reasons.add(ReasonCode.RESERVE_SIGNATURE_INVALID)
    if resolution.mismatch:
        reasons.add(ReasonCode.RESERVE_SOURCE_MISMATCH)

    # Flags from a failed read are unknown, not false.
    if snapshot is not None and snapshot.available:
        if snapshot.hook_wired is False:
            reasons.add(ReasonCode.ENFORCEMENT_NOT_WIRED)
        if snapshot.forwarder_set is False:
            reasons.add(ReasonCode.FORWARDER_NOT_SET)
        if snapshot.minting_paused is True:
            reasons.add(ReasonCode.MINTING_PAUSED)
        if snapshot.minting_enabled is False:
            reasons.add(ReasonCode.MINTING_DISABLED)

    if coverage.breach is True:
        reasons.add(ReasonCode.COVERAGE_BELOW_THRESHOLD)
    if incident is not None and incident.active:
        reasons.add(ReasonCode.INCIDENT_ACTIVE)

    return frozenset(reasons)


def derive_status(
    resolution: Resolution,
    coverage: CoverageResult,
    snapshot: Optional[EnforcementSnapshot],
    incident: Optional[Incident] = None,
    policy: Optional[ConsensusPolicy] = None,
) -> DerivedStatus:
    """
    Fold resolution, coverage, enforcement state and incident into one status.

    Args:
        resolution: Consensus outcome
        coverage: Coverage outcome
        snapshot: On-chain enforcement state (None counts as unavailable)
        incident: Active incident, if incident tracking applies
        policy: Policy used, carried through for reporting only

    Returns:
        DerivedStatus
    """
    reasons = collect_reasons(resolution, coverage, snapshot, incident)
    status = classify(reasons, critical_incident=bool(incident and incident.critical))

    return DerivedStatus(
        status=status,
        reasons=reasons,
        evaluated_at=resolution.now,
        resolution=resolution,
        coverage=coverage,
        onchain_error=snapshot.error if snapshot is not None else "no onchain snapshot",
        incident=incident,
        policy=policy,
    )


def evaluate(
    readings: ReadingPair,
    policy: ConsensusPolicy,
    snapshot: Optional[EnforcementSnapshot],
    incident: Optional[Incident] = None,
    now: Optional[int] = None,
) -> DerivedStatus:
    """
    Evaluate reserve health from one tick's inputs.

    Pure given its arguments; nothing is cached between calls.

    Raises:
        ConfigurationError: If the policy is unusable
    """
    now = int(time.time()) if now is None else int(now)
    resolution = resolve(readings.primary, readings.secondary, policy, now=now)

    onchain_ok = snapshot is not None and snapshot.available
    coverage = evaluate_coverage(
        resolution.resolved_reserve_usd,
        snapshot.liability_supply if onchain_ok else None,
        min_coverage_bps_override=policy.min_coverage_bps,
        onchain_min_coverage_bps=snapshot.min_coverage_bps if onchain_ok else None,
        onchain_coverage_bps=snapshot.coverage_bps if onchain_ok else None,
    )

    derived = derive_status(resolution, coverage, snapshot, incident, policy=policy)

    logger.debug(
        "Evaluated status=%s reasons=%s coverage=%s/%s",
        derived.status.value,
        sorted(r.value for r in derived.reasons),
        coverage.coverage_bps,
        coverage.min_coverage_bps,
    )
    return derived
