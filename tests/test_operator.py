from reservewatch.engine.enforcement import EnforcementSnapshot
from reservewatch.engine.operator import recommended_actions
from reservewatch.engine.policy import ConsensusPolicy
from reservewatch.engine.reading import SourceResult, parse_reading
from reservewatch.engine.status import Incident, ReadingPair, evaluate

NOW = 1_700_000_000


def make_readings(primary=1_200_000, secondary=1_200_000):
    return ReadingPair(
        primary=SourceResult.present(parse_reading({"timestamp": NOW, "reserveUsd": primary})),
        secondary=SourceResult.present(parse_reading({"timestamp": NOW, "reserveUsd": secondary})),
    )


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


def test_healthy_has_no_actions():
    derived = evaluate(make_readings(), ConsensusPolicy(), make_snapshot(), now=NOW)
    assert recommended_actions(derived) == []


def test_stale_asks_to_check_sources():
    derived = evaluate(
        make_readings(), ConsensusPolicy(), EnforcementSnapshot.unavailable("down"), now=NOW
    )
    assert recommended_actions(derived) == ["check_rpc_and_data_sources"]


def test_actions_are_ordered_and_deduplicated():
    derived = evaluate(
        make_readings(secondary=900_000),
        ConsensusPolicy(),
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

    assert recommended_actions(derived) == [
        "fix_enforcement_wiring_roles",
        "investigate_source_discrepancy",
        "check_incident_feed",
        "broadcast_new_attestation_after_fix",
        "use_guarded_reenable_flow",
    ]
