#!filepath: signal_gate/dataloader/window_loader.py
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import pyarrow as pa
import pyarrow.compute as pc
import pyarrow.csv as pv
import pyarrow.parquet as pq

from signal_gate.engines.labels.base import require_columns
from signal_gate.utils.errors import InputError
from signal_gate.utils.logger import logs

EVENT_COLUMNS = ["ts", "type", "side", "score", "spreadBps", "pressureImb"]
MID_COLUMNS = ["ts", "mid"]
TRADE_COLUMNS = ["ts", "px"]

_SUFFIXES = (".parquet", ".csv")


@dataclass(frozen=True)
class WindowData:
    path: Path
    events: pa.Table
    mid: pa.Table
    trades: pa.Table


class WindowLoader:
    """
    WindowLoader（只读）

    一个 input window = 一个目录：
        <window>/events.{parquet,csv}   upstream detector 输出
        <window>/mid.{parquet,csv}      mid series
        <window>/trades.{parquet,csv}   trade tape

    保证：
      - mid / trades 已按 ts 稳定排序（TickIndex 本身不排序）
      - trades 一定带 usd（缺失时 usd = px * sz）
      - 缺文件 / 缺列 / events 或 mid 为空 → InputError
    """

    @logs.catch()
    def load(self, path: str | Path) -> WindowData:
        path = Path(path)
        if not path.is_dir():
            raise InputError(f"[WindowLoader] input window not found: {path}")

        events = self._read(path, "events")
        mid = self._read(path, "mid")
        trades = self._read(path, "trades")

        require_columns(events, EVENT_COLUMNS, who="WindowLoader.events")
        require_columns(mid, MID_COLUMNS, who="WindowLoader.mid")
        require_columns(trades, TRADE_COLUMNS, who="WindowLoader.trades")

        if events.num_rows == 0:
            raise InputError(f"[WindowLoader] empty events in {path}")
        if mid.num_rows == 0:
            raise InputError(f"[WindowLoader] empty mid series in {path}")

        trades = self._ensure_usd(trades)

        mid = self._sort_by_ts(mid)
        trades = self._sort_by_ts(trades)

        logs.info(
            f"[WindowLoader] {path.name} events={events.num_rows} "
            f"mid={mid.num_rows} trades={trades.num_rows}"
        )
        return WindowData(path=path, events=events, mid=mid, trades=trades)

    # --------------------------------------------------
    @staticmethod
    def _read(path: Path, name: str) -> pa.Table:
        for suffix in _SUFFIXES:
            f = path / f"{name}{suffix}"
            if not f.exists():
                continue
            if suffix == ".parquet":
                return pq.read_table(f)
            return pv.read_csv(f)
        raise InputError(f"[WindowLoader] missing {name} table in {path}")

    @staticmethod
    def _ensure_usd(trades: pa.Table) -> pa.Table:
        if "usd" in trades.column_names:
            return trades
        if "sz" not in trades.column_names:
            raise InputError("[WindowLoader.trades] need usd or sz column")
        usd = pc.multiply(
            pc.cast(trades["px"], pa.float64()),
            pc.cast(trades["sz"], pa.float64()),
        )
        return trades.append_column("usd", usd)

    @staticmethod
    def _sort_by_ts(table: pa.Table) -> pa.Table:
        if table.num_rows <= 1:
            return table
        order = pc.sort_indices(table, sort_keys=[("ts", "ascending")])
        return table.take(order)
