import pytest

from reservewatch.engine.enforcement import EnforcementSnapshot, detect_enforcement_transition


def make_snapshot(paused=False, enabled=True, **kwargs):
    return EnforcementSnapshot(minting_paused=paused, minting_enabled=enabled, **kwargs)


def test_first_observation_has_no_transition():
    assert detect_enforcement_transition(None, make_snapshot()) is None


def test_unchanged_flags_have_no_transition():
    assert detect_enforcement_transition(make_snapshot(), make_snapshot(coverage_bps=1)) is None


def test_pause_is_detected():
    transition = detect_enforcement_transition(make_snapshot(), make_snapshot(paused=True))

    assert transition is not None
    assert transition.minting_paused_before is False
    assert transition.minting_paused is True
    assert transition.to_dict() == {
        "type": "enforcement_state_changed",
        "mintingPaused": True,
        "mintingEnabled": True,
        "previous": {"mintingPaused": False, "mintingEnabled": True},
    }


def test_disable_is_detected():
    transition = detect_enforcement_transition(make_snapshot(), make_snapshot(enabled=False))
    assert transition.minting_enabled_before is True
    assert transition.minting_enabled is False


def test_failed_reads_never_transition():
    failed = EnforcementSnapshot.unavailable("rpc down")
    assert detect_enforcement_transition(make_snapshot(), failed) is None
    assert detect_enforcement_transition(failed, make_snapshot(paused=True)) is None


def test_from_mapping_reads_camel_case():
    snapshot = EnforcementSnapshot.from_mapping(
        {
            "coverageBps": "12000",
            "minCoverageBps": 10000,
            "mintingPaused": False,
            "mintingEnabled": True,
            "hookWired": True,
            "forwarderSet": None,
            "liabilitySupply": 1000000,
        }
    )

    assert snapshot.available
    assert snapshot.coverage_bps == 12_000
    assert snapshot.forwarder_set is None
    assert snapshot.liability_supply == 1_000_000


def test_from_mapping_none_is_unavailable():
    snapshot = EnforcementSnapshot.from_mapping(None)
    assert not snapshot.available
    assert snapshot.to_dict()["error"] == "no onchain snapshot"


@pytest.mark.parametrize(
    "data",
    [
        {"mintingPaused": "false"},
        {"hookWired": 1},
        {"forwarderMatchesExpected": "true"},
        {"coverageBps": True},
    ],
)
def test_from_mapping_rejects_loosely_typed_flags(data):
    with pytest.raises(ValueError):
        EnforcementSnapshot.from_mapping(data)
