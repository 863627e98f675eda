import math

import pytest

from signal_gate.engines.labels.execution_reality_label_engine import (
    CandidateEvent,
    ExecutionRealityLabelEngine,
    Label,
    Side,
    apply_slip_to_move,
    burst_usd_1s,
    check_maker_fill,
    dynamic_slip_bps,
    net_usd_from_move,
)
from signal_gate.utils.errors import InvalidBatch

T = 1_000_000


def _event(i=0, *, ts=T, mid=10_000.0, side="LONG", spread=0.0, imb=0.0, move30=10.0):
    return CandidateEvent(
        index=i,
        entry_ts=ts,
        entry_mid=mid,
        side=side,
        spread_bps=spread,
        pressure_imb=imb,
        move30=move30,
    )


# ----------------------------------------------------------------------
# pure functions
# ----------------------------------------------------------------------
def test_slip_base_value():
    assert dynamic_slip_bps(0.0, 0.0, 0.0) == pytest.approx(1.5)
    assert dynamic_slip_bps(2.0, -0.4, 200_000) == pytest.approx(1.5 + 2.0 + 0.2 + 0.2)


@pytest.mark.parametrize(
    "lo, hi",
    [
        ((1.0, 0.1, 0.0), (2.0, 0.1, 0.0)),
        ((1.0, 0.1, 0.0), (1.0, -0.9, 0.0)),
        ((1.0, 0.1, 1_000.0), (1.0, 0.1, 50_000.0)),
    ],
)
def test_slip_is_monotonic(lo, hi):
    assert dynamic_slip_bps(*hi) >= dynamic_slip_bps(*lo)


def test_slip_treats_missing_inputs_as_zero():
    assert dynamic_slip_bps(None, float("nan"), None) == pytest.approx(1.5)


def test_net_from_move():
    # qty = 0.1, fee = 1000 * 2 * 4.5 / 1e4 = 0.9
    assert net_usd_from_move(10.0, 10_000.0, 1000.0, 4.5) == pytest.approx(0.1)
    assert net_usd_from_move(None, 10_000.0, 1000.0, 4.5) is None
    assert net_usd_from_move(10.0, 0.0, 1000.0, 4.5) is None


def test_apply_slip():
    assert apply_slip_to_move(10.0, 10_000.0, 1.5) == pytest.approx(8.5)
    assert apply_slip_to_move(float("inf"), 10_000.0, 1.5) is None


def test_burst_window_bounds(make_index):
    idx = make_index(
        mid=[(T, 10_000.0)],
        trades=[
            (T - 1001, 1.0, 1.0),
            (T - 1000, 1.0, 10.0),
            (T, 1.0, 100.0),
            (T + 1, 1.0, 1000.0),
        ],
    )
    assert burst_usd_1s(idx, T) == pytest.approx(110.0)
    assert burst_usd_1s(idx, None) is None


# ----------------------------------------------------------------------
# maker fill
# ----------------------------------------------------------------------
def test_penetrate_then_retreat_is_not_filled(make_index):
    idx = make_index(
        mid=[(T, 10_000.0), (T + 100, 9_999.0), (T + 500, 10_000.0)],
        trades=[(T + 200, 9_999.0, 50_000.0)],
    )
    fill = check_maker_fill(idx, T, 10_000.0, Side.LONG)

    assert fill.maker_price == pytest.approx(9_999.5)
    assert fill.penetrated == 1
    assert fill.held == 0
    assert fill.maker_filled == 0


def test_held_with_volume_is_filled(make_index):
    idx = make_index(
        mid=[(T, 10_000.0), (T + 100, 9_999.0), (T + 900, 9_999.2)],
        trades=[(T + 2_000, 9_999.0, 25_000.0), (T + 6_000, 9_999.0, 1e9)],
    )
    fill = check_maker_fill(idx, T, 10_000.0, "LONG")

    assert fill.held == 1
    assert fill.fill_usd == pytest.approx(25_000.0)
    assert fill.maker_filled == 1


def test_held_without_volume_is_not_filled(make_index):
    idx = make_index(
        mid=[(T, 10_000.0), (T + 100, 9_999.0)],
        trades=[(T + 2_000, 9_999.0, 15_000.0), (T + 2_000, 10_001.0, 80_000.0)],
    )
    fill = check_maker_fill(idx, T, 10_000.0, "LONG")

    assert fill.held == 1
    assert fill.maker_filled == 0


def test_short_side_is_mirrored(make_index):
    idx = make_index(
        mid=[(T, 10_000.0), (T + 300, 10_001.0)],
        trades=[(T + 1_000, 10_000.5, 30_000.0)],
    )
    fill = check_maker_fill(idx, T, 10_000.0, "SHORT")

    assert fill.maker_price == pytest.approx(10_000.5)
    assert fill.maker_filled == 1


def test_penetration_depth_floor(make_index):
    idx = make_index(mid=[(T, 100.0)])
    fill = check_maker_fill(idx, T, 100.0, "LONG")

    # 100 * 0.5bp = 0.005 < 0.2
    assert fill.penetration_depth_usd == pytest.approx(0.2)
    assert fill.maker_filled == 0


# ----------------------------------------------------------------------
# engine
# ----------------------------------------------------------------------
def test_engine_labels_in_input_order(make_index):
    idx = make_index(mid=[(T, 10_000.0)], trades=[(T, 10_000.0, 100_000.0)])
    engine = ExecutionRealityLabelEngine(index=idx, notional_usd=1000.0, taker_bps=4.5)

    labels = engine.execute([_event(3), _event(1, move30=20.0)])

    assert [lb.index for lb in labels] == [3, 1]
    first = labels[0]
    assert first.burst_usd_1s == pytest.approx(100_000.0)
    assert first.dyn_slip_bps == pytest.approx(1.6)
    # move_pes = 10 - 1.6 = 8.4 → 0.84 - 0.9
    assert first.net30_pes == pytest.approx(-0.06)


def test_engine_degrades_non_finite_fields(make_index):
    idx = make_index(mid=[(T, 10_000.0)])
    engine = ExecutionRealityLabelEngine(index=idx, notional_usd=1000.0, taker_bps=4.5)

    no_move, bad_mid = engine.execute(
        [_event(0, move30=None, spread=None, imb=None), _event(1, mid=float("nan"))]
    )

    assert no_move.net30_pes is None
    assert no_move.dyn_slip_bps == pytest.approx(1.5)
    assert bad_mid.net30_pes is None
    assert bad_mid.maker_filled == 0
    assert math.isfinite(bad_mid.dyn_slip_bps)


def test_engine_is_idempotent(make_index):
    idx = make_index(
        mid=[(T, 10_000.0), (T + 100, 9_999.0)],
        trades=[(T + 10, 9_999.0, 30_000.0)],
    )
    engine = ExecutionRealityLabelEngine(index=idx, notional_usd=1000.0, taker_bps=4.5)
    batch = [_event(i, ts=T + i, side="LONG" if i % 2 else "SHORT") for i in range(10)]

    first = engine.execute(batch)
    second = engine.execute(batch)

    assert first == second
    assert all(isinstance(lb, Label) for lb in first)


@pytest.mark.parametrize("bad", ["LONG", None, 42, [1, 2], ({"index": 0},)])
def test_invalid_batch(make_index, bad):
    idx = make_index(mid=[(T, 10_000.0)])
    engine = ExecutionRealityLabelEngine(index=idx, notional_usd=1000.0, taker_bps=4.5)

    with pytest.raises(InvalidBatch):
        engine.execute(bad)
