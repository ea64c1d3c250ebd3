import pytest

from reservewatch.engine.consensus import Resolution
from reservewatch.engine.coverage import CoverageResult
from reservewatch.engine.enforcement import EnforcementSnapshot
from reservewatch.engine.policy import ConsensusMode
from reservewatch.engine.status import DerivedStatus, ReadingPair, SystemStatus
from reservewatch.state.monitor import MonitorTick
from reservewatch.state.status_buffer import StatusBuffer


def _tick(ts: int) -> MonitorTick:
    resolution = Resolution(
        mode=ConsensusMode.REQUIRE_MATCH,
        now=ts,
        selected=None,
        selected_role=None,
        stale=False,
        mismatch=False,
        signature_invalid=False,
    )
    derived = DerivedStatus(
        status=SystemStatus.HEALTHY,
        reasons=frozenset(),
        evaluated_at=ts,
        resolution=resolution,
        coverage=CoverageResult(coverage_bps=None, min_coverage_bps=None, breach=None),
    )
    return MonitorTick(
        derived=derived,
        readings=ReadingPair(),
        snapshot=EnforcementSnapshot.unavailable("not read"),
        incident=None,
    )


def test_append_and_latest():
    buf = StatusBuffer(maxlen=3)
    assert buf.latest() is None
    assert len(buf) == 0

    t1 = _tick(1)
    assert buf.append(t1) is True
    assert buf.latest() is t1

    t2 = _tick(2)
    buf.append(t2)
    assert buf.latest() is t2


def test_ticks_and_statuses_order():
    buf = StatusBuffer(maxlen=5)
    ticks = [_tick(i) for i in range(3)]
    for t in ticks:
        buf.append(t)

    assert buf.ticks(2) == ticks[1:]
    assert buf.ticks() == ticks
    assert buf.ticks(0) == []
    assert buf.statuses() == [t.derived for t in ticks]


def test_since_filters_before_limit():
    buf = StatusBuffer(maxlen=10)
    for ts in (10, 20, 30, 40):
        buf.append(_tick(ts))

    assert [s.evaluated_at for s in buf.statuses(since=20)] == [20, 30, 40]
    assert [s.evaluated_at for s in buf.statuses(1, since=20)] == [40]
    assert buf.statuses(since=41) == []


def test_maxlen_eviction():
    buf = StatusBuffer(maxlen=2)
    for i in range(4):
        buf.append(_tick(i))

    assert len(buf) == 2
    assert buf.maxlen == 2
    assert [s.evaluated_at for s in buf.statuses()] == [2, 3]


def test_out_of_order_refused():
    buf = StatusBuffer(maxlen=5)
    buf.append(_tick(10))

    assert buf.append(_tick(5)) is False
    assert len(buf) == 1
    assert buf.latest().derived.evaluated_at == 10


def test_same_second_appends():
    buf = StatusBuffer(maxlen=5)
    buf.append(_tick(10))
    buf.append(_tick(10))
    assert len(buf) == 2


def test_maxlen_must_be_positive():
    with pytest.raises(ValueError):
        StatusBuffer(maxlen=0)
