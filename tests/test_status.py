from decimal import Decimal

import pytest

from reservewatch.engine.enforcement import EnforcementSnapshot
from reservewatch.engine.policy import ConsensusPolicy
from reservewatch.engine.reading import SignatureCheck, SourceResult, parse_reading
from reservewatch.engine.status import (
    Incident,
    IncidentSeverity,
    ReadingPair,
    ReasonCode,
    SystemStatus,
    classify,
    evaluate,
)

NOW = 1_700_000_000


def make_source(reserve, age=0, signature_valid=None):
    reading = parse_reading({"timestamp": NOW - age, "reserveUsd": reserve, "source": "src"})
    return SourceResult.present(reading, SignatureCheck(valid=signature_valid))


def make_snapshot(**overrides):
    fields = dict(
        coverage_bps=12_000,
        min_coverage_bps=10_000,
        minting_paused=False,
        minting_enabled=True,
        hook_wired=True,
        forwarder_set=True,
        liability_supply=1_000_000,
    )
    fields.update(overrides)
    return EnforcementSnapshot(**fields)


def make_readings(primary=1_200_000, secondary=1_195_000, primary_age=0, secondary_age=0):
    return ReadingPair(
        primary=make_source(primary, age=primary_age),
        secondary=make_source(secondary, age=secondary_age),
    )


POLICY = ConsensusPolicy(mode="require_match", max_mismatch_ratio="0.01")


# ----------------------------------------------------------------------
# End-to-end scenarios
# ----------------------------------------------------------------------

def test_healthy_when_sources_agree_and_coverage_holds():
    derived = evaluate(make_readings(), POLICY, make_snapshot(), now=NOW)

    assert derived.status is SystemStatus.HEALTHY
    assert derived.reasons == frozenset()
    assert derived.resolution.mismatch is False
    assert derived.resolution.resolved_reserve_usd == Decimal(1_200_000)
    assert derived.resolved_coverage_bps == 12_000


def test_source_mismatch_is_degraded():
    derived = evaluate(make_readings(secondary=900_000), POLICY, make_snapshot(), now=NOW)

    assert derived.has(ReasonCode.RESERVE_SOURCE_MISMATCH)
    assert derived.mismatch_ratio == Decimal("0.25")
    assert derived.status is SystemStatus.DEGRADED


def test_stale_primary_is_stale_regardless_of_coverage():
    derived = evaluate(
        make_readings(primary_age=500),
        ConsensusPolicy(mode="require_match", max_reserve_age_s=120),
        make_snapshot(coverage_bps=5_000, liability_supply=None),
        now=NOW,
    )

    assert derived.has(ReasonCode.RESERVE_DATA_STALE)
    assert derived.status is SystemStatus.STALE
    assert derived.ages["primary"] == 500


def test_coverage_below_threshold_is_unhealthy():
    derived = evaluate(
        make_readings(),
        POLICY,
        make_snapshot(coverage_bps=9_000, min_coverage_bps=10_000, liability_supply=None),
        now=NOW,
    )

    assert derived.reasons == frozenset({ReasonCode.COVERAGE_BELOW_THRESHOLD})
    assert derived.status is SystemStatus.UNHEALTHY


# ----------------------------------------------------------------------
# Reasons and priority
# ----------------------------------------------------------------------

def test_all_applicable_reasons_reported():
    derived = evaluate(
        make_readings(secondary=900_000),
        POLICY,
        make_snapshot(
            hook_wired=False,
            forwarder_set=False,
            minting_paused=True,
            minting_enabled=False,
            liability_supply=2_000_000,
        ),
        incident=Incident(active=True),
        now=NOW,
    )

    assert derived.reasons == frozenset(
        {
            ReasonCode.RESERVE_SOURCE_MISMATCH,
            ReasonCode.ENFORCEMENT_NOT_WIRED,
            ReasonCode.FORWARDER_NOT_SET,
            ReasonCode.MINTING_PAUSED,
            ReasonCode.MINTING_DISABLED,
            ReasonCode.COVERAGE_BELOW_THRESHOLD,
            ReasonCode.INCIDENT_ACTIVE,
        }
    )
    assert derived.status is SystemStatus.DEGRADED


def test_onchain_unavailable_is_stale_and_ignores_flags():
    snapshot = EnforcementSnapshot(hook_wired=False, minting_paused=True, error="rpc timeout")
    derived = evaluate(make_readings(), POLICY, snapshot, now=NOW)

    assert derived.reasons == frozenset({ReasonCode.ONCHAIN_UNAVAILABLE})
    assert derived.status is SystemStatus.STALE
    assert derived.onchain_error == "rpc timeout"


def test_missing_snapshot_counts_as_unavailable():
    derived = evaluate(make_readings(), POLICY, None, now=NOW)
    assert derived.has(ReasonCode.ONCHAIN_UNAVAILABLE)
    assert derived.status is SystemStatus.STALE


def test_unknown_flags_raise_no_reasons():
    snapshot = EnforcementSnapshot(coverage_bps=12_000, min_coverage_bps=10_000)
    derived = evaluate(make_readings(), POLICY, snapshot, now=NOW)
    assert derived.status is SystemStatus.HEALTHY


def test_signature_invalid_is_stale():
    readings = ReadingPair(
        primary=make_source(1_200_000),
        secondary=make_source(1_200_000, signature_valid=False),
    )
    derived = evaluate(readings, POLICY, make_snapshot(), now=NOW)

    assert derived.has(ReasonCode.RESERVE_SIGNATURE_INVALID)
    assert derived.status is SystemStatus.STALE


@pytest.mark.parametrize(
    "reasons,expected",
    [
        ({ReasonCode.RESERVE_DATA_STALE, ReasonCode.COVERAGE_BELOW_THRESHOLD}, SystemStatus.STALE),
        ({ReasonCode.ONCHAIN_UNAVAILABLE, ReasonCode.RESERVE_SOURCE_MISMATCH}, SystemStatus.STALE),
        ({ReasonCode.FORWARDER_NOT_SET, ReasonCode.MINTING_PAUSED}, SystemStatus.DEGRADED),
        ({ReasonCode.ENFORCEMENT_NOT_WIRED}, SystemStatus.DEGRADED),
        ({ReasonCode.MINTING_DISABLED}, SystemStatus.UNHEALTHY),
        ({ReasonCode.INCIDENT_ACTIVE}, SystemStatus.DEGRADED),
        (set(), SystemStatus.HEALTHY),
    ],
)
def test_classify_priority(reasons, expected):
    assert classify(reasons) is expected


def test_critical_incident_is_unhealthy():
    assert classify({ReasonCode.INCIDENT_ACTIVE}, critical_incident=True) is SystemStatus.UNHEALTHY

    derived = evaluate(
        make_readings(),
        POLICY,
        make_snapshot(),
        incident=Incident(active=True, severity=IncidentSeverity.CRITICAL, message="custodian"),
        now=NOW,
    )
    assert derived.status is SystemStatus.UNHEALTHY


def test_inactive_incident_is_ignored():
    derived = evaluate(make_readings(), POLICY, make_snapshot(), incident=Incident(), now=NOW)
    assert derived.status is SystemStatus.HEALTHY


def test_evaluate_is_pure():
    readings = make_readings()
    snapshot = make_snapshot()
    first = evaluate(readings, POLICY, snapshot, now=NOW)
    second = evaluate(readings, POLICY, snapshot, now=NOW)
    assert first == second


def test_to_dict_sorts_reasons():
    derived = evaluate(
        make_readings(secondary=900_000),
        POLICY,
        make_snapshot(forwarder_set=False),
        now=NOW,
    )
    data = derived.to_dict()

    assert data["status"] == "DEGRADED"
    assert data["reasons"] == ["forwarder_not_set", "reserve_source_mismatch"]
    assert data["consensusMode"] == "require_match"
    assert data["coverageBps"] == 12_000
    assert data["policy"]["maxMismatchRatio"] == "0.01"


def test_incident_from_mapping_normalises_severity():
    incident = Incident.from_mapping({"active": True, "severity": "severe", "message": 5})
    assert incident.severity is IncidentSeverity.WARNING
    assert incident.message == ""
    assert Incident.from_mapping(None) is None


def test_high_precision_reserves_evaluate_without_error():
    reserve = "1" * 31
    derived = evaluate(
        make_readings(primary=reserve, secondary=reserve),
        POLICY,
        make_snapshot(liability_supply=1),
        now=NOW,
    )

    assert derived.status is SystemStatus.HEALTHY
    assert derived.resolved_coverage_bps == int(reserve) * 10_000
