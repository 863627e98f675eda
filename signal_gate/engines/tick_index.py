#!filepath: signal_gate/engines/tick_index.py
from __future__ import annotations

from dataclasses import dataclass

import numpy as np
import pyarrow as pa

from signal_gate.utils.errors import MalformedSeries


def _frozen(arr, dtype) -> np.ndarray:
    out = np.array(arr, dtype=dtype, copy=True)
    out.flags.writeable = False
    return out


def _assert_sorted_ts(ts: np.ndarray, *, who: str) -> None:
    if ts.size <= 1:
        return
    if np.any(ts[1:] < ts[:-1]):
        raise MalformedSeries(f"[TickIndex] {who} ts must be non-decreasing (sort before building)")


def lower_bound(series_ts: np.ndarray, ts) -> int:
    """
    first i such that series_ts[i] >= ts；无则返回 len(series_ts)。
    重复 ts 时返回第一次出现的位置。
    """
    return int(np.searchsorted(series_ts, ts, side="left"))


@dataclass(frozen=True, eq=False)
class TickIndex:
    """
    TickIndex（FINAL / FROZEN）

    一个 evaluation window 的只读行情索引：
      - mid series   : (mid_ts, mid, mid_spread_bps)
      - trade tape   : (trade_ts, trade_px, trade_usd)
      - trade_cum_usd: len(trades) + 1 的前缀和，trade_cum_usd[0] == 0

    Invariants:
      - 两个 series 的 ts 均非递减（index 不排序，由调用方保证）
      - 构建后所有数组 writeable=False
      - 可 pickle，按 worker 启动时一次性下发
    """

    mid_ts: np.ndarray
    mid: np.ndarray
    mid_spread_bps: np.ndarray
    trade_ts: np.ndarray
    trade_px: np.ndarray
    trade_usd: np.ndarray
    trade_cum_usd: np.ndarray

    def __setstate__(self, state: dict) -> None:
        # unpickle 出来的数组默认 writeable=True（worker 进程）
        for name, arr in state.items():
            arr = np.asarray(arr)
            arr.flags.writeable = False
            object.__setattr__(self, name, arr)

    # --------------------------------------------------
    # construction
    # --------------------------------------------------
    @classmethod
    def build(
        cls,
        *,
        mid_ts,
        mid,
        trade_ts,
        trade_px,
        trade_usd,
        mid_spread_bps=None,
    ) -> "TickIndex":
        mid_ts = _frozen(mid_ts, np.int64)
        mid = _frozen(mid, np.float64)
        trade_ts = _frozen(trade_ts, np.int64)
        trade_px = _frozen(trade_px, np.float64)
        trade_usd = _frozen(trade_usd, np.float64)

        if mid_spread_bps is None:
            mid_spread_bps = np.full(mid_ts.size, np.nan)
        mid_spread_bps = _frozen(mid_spread_bps, np.float64)

        if not (mid_ts.size == mid.size == mid_spread_bps.size):
            raise MalformedSeries("[TickIndex] mid series columns differ in length")
        if not (trade_ts.size == trade_px.size == trade_usd.size):
            raise MalformedSeries("[TickIndex] trade series columns differ in length")

        _assert_sorted_ts(mid_ts, who="mid")
        _assert_sorted_ts(trade_ts, who="trades")

        cum = np.zeros(trade_usd.size + 1, dtype=np.float64)
        np.cumsum(trade_usd, out=cum[1:])
        cum.flags.writeable = False

        return cls(
            mid_ts=mid_ts,
            mid=mid,
            mid_spread_bps=mid_spread_bps,
            trade_ts=trade_ts,
            trade_px=trade_px,
            trade_usd=trade_usd,
            trade_cum_usd=cum,
        )

    @classmethod
    def from_tables(cls, mid: pa.Table, trades: pa.Table) -> "TickIndex":
        """
        mid   : ts / mid / (spreadBps)
        trades: ts / px / usd
        """
        spread = None
        if "spreadBps" in mid.column_names:
            spread = mid["spreadBps"].to_numpy(zero_copy_only=False)

        return cls.build(
            mid_ts=mid["ts"].to_numpy(zero_copy_only=False),
            mid=mid["mid"].to_numpy(zero_copy_only=False),
            mid_spread_bps=spread,
            trade_ts=trades["ts"].to_numpy(zero_copy_only=False),
            trade_px=trades["px"].to_numpy(zero_copy_only=False),
            trade_usd=trades["usd"].to_numpy(zero_copy_only=False),
        )

    # --------------------------------------------------
    # point lookup
    # --------------------------------------------------
    @property
    def n_mid(self) -> int:
        return int(self.mid_ts.size)

    @property
    def n_trades(self) -> int:
        return int(self.trade_ts.size)

    def mid_lower_bound(self, ts) -> int:
        return lower_bound(self.mid_ts, ts)

    def trade_lower_bound(self, ts) -> int:
        return lower_bound(self.trade_ts, ts)

    # --------------------------------------------------
    # range query
    # --------------------------------------------------
    def range_sum_notional(self, ts_start, ts_end_exclusive) -> float:
        """
        sum(trade_usd) for trade_ts in [ts_start, ts_end_exclusive)
        空区间 / 反向区间 → 0
        """
        left = self.trade_lower_bound(ts_start)
        right = self.trade_lower_bound(ts_end_exclusive)
        if right <= left:
            return 0.0
        return float(self.trade_cum_usd[right] - self.trade_cum_usd[left])
