#!filepath: signal_gate/engines/event_stats_engine.py
from __future__ import annotations

import pandas as pd
import pyarrow as pa

from signal_gate.engines.labels.base import require_columns

EVENT_STATS_COLUMNS = [
    "cohort", "type", "side", "count",
    "avg_move30", "avg_move60", "avg_dyn_slip_bps",
    "avg_net30", "avg_net30_pes", "avg_net60",
    "maker_fill_count", "maker_fill_rate",
    "hit3_30_rate", "hit5_60_rate",
    "avg_mfe60", "avg_mae60", "p_net30_pos",
]

_MEANS = {
    "avg_move30": "move30",
    "avg_move60": "move60",
    "avg_dyn_slip_bps": "dynSlipBps",
    "avg_net30": "net30",
    "avg_net30_pes": "net30Pes",
    "avg_net60": "net60",
    "hit3_30_rate": "hit3_30",
    "hit5_60_rate": "hit5_60",
    "avg_mfe60": "mfe60",
    "avg_mae60": "mae60",
}

KEYS = ["cohort", "type", "side"]


class EventStatsEngine:
    """
    EventStatsEngine

    一个 window 的 labeled events → 每个 (cohort, type, side) 一行统计

    - 均值跳过空值（label 缺失的行不拖低均值）
    - maker_fill_rate / p_net30_pos 以组内总行数为分母
    - 按 count 降序；count 相同保持首次出现顺序
    """

    def execute(self, events: pa.Table) -> pd.DataFrame:
        require_columns(events, KEYS + list(_MEANS.values()) + ["makerFilled"], who="EventStatsEngine")
        df = events.to_pandas()
        if df.empty:
            return pd.DataFrame(columns=EVENT_STATS_COLUMNS)

        df["_maker"] = (df["makerFilled"] == 1).astype(int)
        df["_net30_pos"] = (df["net30"] > 0).astype(int)

        g = df.groupby(KEYS, sort=False)
        out = g.size().rename("count").to_frame()
        for name, col in _MEANS.items():
            out[name] = g[col].mean()
        out["maker_fill_count"] = g["_maker"].sum()
        out["maker_fill_rate"] = out["maker_fill_count"] / out["count"]
        out["p_net30_pos"] = g["_net30_pos"].sum() / out["count"]

        out = out.reset_index().sort_values("count", ascending=False, kind="mergesort")
        return out[EVENT_STATS_COLUMNS].reset_index(drop=True)
