#!filepath: signal_gate/engines/labels/execution_reality_label_engine.py
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Sequence

import numpy as np

from signal_gate.engines.base import BaseEngine
from signal_gate.engines.labels.base import finite_or_none
from signal_gate.engines.tick_index import TickIndex
from signal_gate.utils.errors import InvalidBatch

"""
{#!filepath: signal_gate/engines/labels/execution_reality_label_engine.py}

ExecutionRealityLabelEngine (FINAL / FROZEN)

Role:
- Turn one CandidateEvent + the window's TickIndex into one Label.

Assumptions:
- Fixed notional per trade (global, overridable).
- Round-trip taker fee on every trade.
- Slippage grows with quoted spread, |imbalance| and recent trade burst.

Invariants:
- Pure: no I/O, no clock, no mutation of the TickIndex.
- Non-finite inputs degrade to None fields, never raise.
- Only a structurally invalid batch raises (InvalidBatch).
"""

# ----------------------------------------------------------------------
# policy constants
# ----------------------------------------------------------------------
BPS = 10_000.0

BURST_WINDOW_MS = 1000

BASE_SLIP_BPS = 1.5
SPREAD_SLIP_COEF = 1.0
IMB_SLIP_COEF = 0.5
BURST_SLIP_COEF = 0.1
BURST_SLIP_UNIT_USD = 100_000.0

MAKER_HOLD_WINDOW_MS = 1000
MAKER_TRADE_WINDOW_MS = 5000
# minimum favourable notional for a resting order to count as filled
MAKER_MIN_FILL_USD = 20_000.0
MAKER_PENETRATION_MIN_USD = 0.2
MAKER_PENETRATION_BPS = 0.5


class Side(str, Enum):
    LONG = "LONG"
    SHORT = "SHORT"


@dataclass(frozen=True)
class CandidateEvent:
    index: int
    entry_ts: int
    entry_mid: float
    side: str
    spread_bps: Optional[float]
    pressure_imb: Optional[float]
    move30: Optional[float]


@dataclass(frozen=True)
class Label:
    index: int
    burst_usd_1s: Optional[float]
    dyn_slip_bps: float
    net30_pes: Optional[float]
    maker_filled: int


@dataclass(frozen=True)
class MakerFill:
    maker_filled: int
    maker_price: Optional[float] = None
    penetration_depth_usd: Optional[float] = None
    penetrated: int = 0
    held: int = 0
    fill_usd: float = 0.0


# ----------------------------------------------------------------------
# pure functions
# ----------------------------------------------------------------------
def burst_usd_1s(index: TickIndex, entry_ts) -> Optional[float]:
    """trade notional in [entry_ts - 1s, entry_ts + 1ms)"""
    ts = finite_or_none(entry_ts)
    if ts is None:
        return None
    return index.range_sum_notional(ts - BURST_WINDOW_MS, ts + 1)


def dynamic_slip_bps(spread_bps, pressure_imb, burst_usd) -> float:
    s = finite_or_none(spread_bps) or 0.0
    imb_abs = abs(finite_or_none(pressure_imb) or 0.0)
    burst = finite_or_none(burst_usd) or 0.0
    return (
        BASE_SLIP_BPS
        + SPREAD_SLIP_COEF * s
        + IMB_SLIP_COEF * imb_abs
        + BURST_SLIP_COEF * (burst / BURST_SLIP_UNIT_USD)
    )


def apply_slip_to_move(move_usd, entry_mid, slip_bps) -> Optional[float]:
    move = finite_or_none(move_usd)
    mid = finite_or_none(entry_mid)
    slip = finite_or_none(slip_bps)
    if move is None or mid is None or slip is None or mid <= 0:
        return None
    return move - mid * (slip / BPS)


def net_usd_from_move(move_usd, entry_mid, notional_usd: float, taker_bps: float) -> Optional[float]:
    """
    qty   = notional / entry_mid
    gross = move * qty
    fee   = notional * 2 * taker_bps / 1e4   (round trip)
    """
    move = finite_or_none(move_usd)
    mid = finite_or_none(entry_mid)
    if move is None or mid is None or mid <= 0:
        return None
    qty = notional_usd / mid
    fee = notional_usd * (2 * taker_bps / BPS)
    return move * qty - fee


def roundtrip_fee_usd(notional_usd: float, taker_bps: float) -> float:
    return notional_usd * (2 * taker_bps / BPS)


def check_maker_fill(index: TickIndex, entry_ts, entry_mid, side) -> MakerFill:
    """
    Simulated resting-order fill, three stages:

    1. penetration: within the hold window the mid touches/passes the resting price
    2. hold       : from the first penetration to the window end the mid never
                    retreats back through the resting price
    3. volume     : favourable trade notional within the trade window >= MAKER_MIN_FILL_USD
    """
    ts = finite_or_none(entry_ts)
    mid = finite_or_none(entry_mid)
    if ts is None or mid is None or mid <= 0:
        return MakerFill(maker_filled=0)

    is_short = side == Side.SHORT
    depth = max(MAKER_PENETRATION_MIN_USD, mid * (MAKER_PENETRATION_BPS / BPS))
    maker_price = mid + depth if is_short else mid - depth

    mid_start = index.mid_lower_bound(ts)
    mid_end = index.mid_lower_bound(ts + MAKER_HOLD_WINDOW_MS + 1)
    if mid_start >= index.n_mid or mid_end <= mid_start:
        return MakerFill(0, maker_price, depth)

    window = index.mid[mid_start:mid_end]
    past = window >= maker_price if is_short else window <= maker_price
    if not past.any():
        return MakerFill(0, maker_price, depth)

    first = int(np.argmax(past))
    if not past[first:].all():
        return MakerFill(0, maker_price, depth, penetrated=1, held=0)

    t_start = index.trade_lower_bound(ts)
    t_end = index.trade_lower_bound(ts + MAKER_TRADE_WINDOW_MS + 1)
    px = index.trade_px[t_start:t_end]
    usd = index.trade_usd[t_start:t_end]
    favourable = px >= mid if is_short else px <= mid
    fill_usd = float(usd[favourable].sum())

    filled = 1 if fill_usd >= MAKER_MIN_FILL_USD else 0
    return MakerFill(filled, maker_price, depth, penetrated=1, held=1, fill_usd=fill_usd)


# ----------------------------------------------------------------------
# engine
# ----------------------------------------------------------------------
class ExecutionRealityLabelEngine(BaseEngine[CandidateEvent, Label]):
    """
    ExecutionRealityLabelEngine

    输入：
      - CandidateEvent（index / entry_ts / entry_mid / side / spread / imb / move30）
    输出：
      - Label（burst_usd_1s / dyn_slip_bps / net30_pes / maker_filled）

    设计原则：
      - 纯计算，无状态
      - TickIndex 只读共享
      - 相同输入 → 逐字节相同输出
    """

    LABEL_COLUMNS = ("burstUsd1s", "dynSlipBps", "net30Pes", "makerFilled")

    def __init__(self, *, index: TickIndex, notional_usd: float, taker_bps: float):
        self.index = index
        self.notional_usd = float(notional_usd)
        self.taker_bps = float(taker_bps)

    def process(self, event: CandidateEvent) -> Label:
        burst = burst_usd_1s(self.index, event.entry_ts)
        slip = dynamic_slip_bps(event.spread_bps, event.pressure_imb, burst)
        move_pes = apply_slip_to_move(event.move30, event.entry_mid, slip)
        net_pes = net_usd_from_move(move_pes, event.entry_mid, self.notional_usd, self.taker_bps)
        maker = check_maker_fill(self.index, event.entry_ts, event.entry_mid, event.side)

        return Label(
            index=event.index,
            burst_usd_1s=burst,
            dyn_slip_bps=slip,
            net30_pes=net_pes,
            maker_filled=maker.maker_filled,
        )

    def execute(self, events: Sequence[CandidateEvent]) -> list[Label]:
        validate_batch(events)
        return list(self.process_stream(events))


def require_sequence(events) -> None:
    if isinstance(events, (str, bytes)) or not isinstance(events, Sequence):
        raise InvalidBatch(f"batch must be a sequence of CandidateEvent, got {type(events).__name__}")


def validate_batch(events) -> None:
    require_sequence(events)
    for pos, ev in enumerate(events):
        if not isinstance(ev, CandidateEvent):
            raise InvalidBatch(f"batch[{pos}] is {type(ev).__name__}, expected CandidateEvent")
