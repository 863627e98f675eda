# tests/conftest.py
from __future__ import annotations

import multiprocessing
from pathlib import Path
from typing import Sequence

import pyarrow as pa
import pyarrow.parquet as pq
import pytest
from loguru import logger

from signal_gate.engines.tick_index import TickIndex


@pytest.fixture(autouse=True)
def disable_file_logger():
    logger.remove()
    logger.add(lambda msg: None)
    yield


@pytest.fixture(scope="session", autouse=True)
def _set_start_method():
    multiprocessing.set_start_method("spawn", force=True)


# ============================================================
# synthetic windows
# ============================================================
EVENT_SPACING_MS = 100_000
BASE_MID = 10_000.0


def window_tables(
        *,
        n_events: int,
        move: float,
        base_ts: int = 1_700_000_000_000,
        type_: str = "ws_pressure",
        side: str = "LONG",
) -> tuple[list[dict], list[dict], list[dict]]:
    """
    每个事件 k：
      mid(T_k) = 10000
      mid(T_k + 30s) = mid(T_k + 60s) = 10000 + move
    无成交、spread = 0、imbalance = 0 → slip = 1.5bps
    """
    events, mid = [], []
    for k in range(n_events):
        t = base_ts + k * EVENT_SPACING_MS
        events.append(
            dict(ts=t, type=type_, side=side, score=1.0, spreadBps=0.0, pressureImb=0.0)
        )
        mid.append(dict(ts=t, mid=BASE_MID, spreadBps=0.0))
        mid.append(dict(ts=t + 30_000, mid=BASE_MID + move, spreadBps=0.0))
        mid.append(dict(ts=t + 60_000, mid=BASE_MID + move, spreadBps=0.0))
    return events, mid, []


EVENT_SCHEMA = pa.schema(
    [
        ("ts", pa.int64()),
        ("type", pa.string()),
        ("side", pa.string()),
        ("score", pa.float64()),
        ("spreadBps", pa.float64()),
        ("pressureImb", pa.float64()),
    ]
)
MID_SCHEMA = pa.schema([("ts", pa.int64()), ("mid", pa.float64()), ("spreadBps", pa.float64())])
TRADE_SCHEMA = pa.schema([("ts", pa.int64()), ("px", pa.float64()), ("usd", pa.float64())])


@pytest.fixture
def write_window(tmp_path):
    def _write(
            name: str,
            events: Sequence[dict],
            mid: Sequence[dict],
            trades: Sequence[dict] = (),
    ) -> Path:
        d = tmp_path / "windows" / name
        d.mkdir(parents=True)
        pq.write_table(pa.Table.from_pylist(list(events), schema=EVENT_SCHEMA), d / "events.parquet")
        pq.write_table(pa.Table.from_pylist(list(mid), schema=MID_SCHEMA), d / "mid.parquet")
        pq.write_table(pa.Table.from_pylist(list(trades), schema=TRADE_SCHEMA), d / "trades.parquet")
        return d

    return _write


@pytest.fixture
def make_index():
    def _make(mid: Sequence[tuple], trades: Sequence[tuple] = ()) -> TickIndex:
        """mid: [(ts, mid)]，trades: [(ts, px, usd)]"""
        return TickIndex.build(
            mid_ts=[m[0] for m in mid],
            mid=[m[1] for m in mid],
            trade_ts=[t[0] for t in trades],
            trade_px=[t[1] for t in trades],
            trade_usd=[t[2] for t in trades],
        )

    return _make


@pytest.fixture
def synthetic_window(write_window):
    def _make(name: str, move: float, n_events: int = 5) -> str:
        events, mid, trades = window_tables(n_events=n_events, move=move)
        return str(write_window(name, events, mid, trades))

    return _make
