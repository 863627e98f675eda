#!filepath: signal_gate/engines/labels/forward_truth_label_engine.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

import numpy as np
import pyarrow as pa

from signal_gate.engines.labels.base import finite_or_none, require_columns
from signal_gate.engines.labels.execution_reality_label_engine import (
    CandidateEvent,
    Side,
    net_usd_from_move,
    roundtrip_fee_usd,
)
from signal_gate.engines.tick_index import TickIndex

HORIZONS_MS = (5000, 15000, 30000, 60000)
MFE_HORIZON_MS = 60000

PLACEBO_TYPE = "placebo_random"
PLACEBO_GUARD_FACTOR = 50

EVENTS_SCHEMA = pa.schema(
    [
        ("index", pa.int64()),
        ("cohort", pa.string()),
        ("type", pa.string()),
        ("side", pa.string()),
        ("ts", pa.int64()),
        ("mid", pa.float64()),
        ("spreadBps", pa.float64()),
        ("pressureImb", pa.float64()),
        ("score", pa.float64()),
        ("move5", pa.float64()),
        ("move15", pa.float64()),
        ("move30", pa.float64()),
        ("move60", pa.float64()),
        ("mfe60", pa.float64()),
        ("mae60", pa.float64()),
        ("hit3_30", pa.int64()),
        ("hit5_60", pa.int64()),
        ("burstUsd1s", pa.float64()),
        ("dynSlipBps", pa.float64()),
        ("net30", pa.float64()),
        ("net30Pes", pa.float64()),
        ("net60", pa.float64()),
        ("makerFilled", pa.int64()),
        ("cls30", pa.string()),
        ("cls60", pa.string()),
    ]
)


@dataclass
class TruthResult:
    """
    table : labeled events（real 在前，placebo 在后；label 列待 dispatcher 回填）
    jobs  : 每行一个 CandidateEvent，index == 行号
    counts: 计数（写入 chunk summary.json）
    """

    table: pa.Table
    jobs: list[CandidateEvent]
    counts: dict = field(default_factory=dict)


# ----------------------------------------------------------------------
# forward labels
# ----------------------------------------------------------------------
def forward_move(index: TickIndex, idx: int, horizon_ms: int, side: str) -> Optional[float]:
    """第一个 ts >= entry.ts + horizon 的 mid 相对 entry 的位移（按方向取号）"""
    j = index.mid_lower_bound(int(index.mid_ts[idx]) + horizon_ms)
    if j >= index.n_mid:
        return None
    raw = float(index.mid[j] - index.mid[idx])
    return -raw if side == Side.SHORT else raw


def mfe_mae(index: TickIndex, idx: int, horizon_ms: int, side: str) -> Optional[tuple[float, float]]:
    end = index.mid_lower_bound(int(index.mid_ts[idx]) + horizon_ms)
    if end >= index.n_mid:
        return None
    window = index.mid[idx:end + 1]
    entry = float(index.mid[idx])
    best = float(window.max())
    worst = float(window.min())
    if side == Side.SHORT:
        return entry - worst, best - entry
    return best - entry, entry - worst


def classify3(net: Optional[float], fee_roundtrip_usd: float) -> str:
    if net is None:
        return "unknown"
    if net >= fee_roundtrip_usd * 1.5:
        return "up"
    if net <= -fee_roundtrip_usd:
        return "down"
    return "flat"


class ForwardTruthLabelEngine:
    """
    ForwardTruthLabelEngine

    输入：
      - upstream detector 的 events 表（ts / type / side / score / spreadBps / pressureImb）
      - 本 window 的 TickIndex
    输出：
      - TruthResult（未调整的 forward label + placebo cohort + labeling jobs）

    步骤：
      1. min_score / max_spread_bps 过滤
      2. cooldown 聚类：同 type+side 在 cluster_ms 内只保留 score 最高者
      3. 5/15/30/60s forward move、60s MFE/MAE、net30/net60
      4. placebo：同数量的随机 mid 采样点 + 随机方向（seeded）
    """

    def __init__(
        self,
        *,
        notional_usd: float,
        taker_bps: float,
        cluster_ms: int = 1000,
        min_score: float | None = None,
        max_spread_bps: float | None = None,
        placebo: bool = True,
        seed: int = 42,
    ):
        self.notional_usd = float(notional_usd)
        self.taker_bps = float(taker_bps)
        self.cluster_ms = int(cluster_ms)
        self.min_score = min_score
        self.max_spread_bps = max_spread_bps
        self.placebo = placebo
        self.seed = seed

        self.fee_roundtrip = roundtrip_fee_usd(self.notional_usd, self.taker_bps)

    def params(self) -> dict:
        """run 参数（写入 chunk summary.json）"""
        return {
            "notionalUsd": self.notional_usd,
            "takerBps": self.taker_bps,
            "clusterMs": self.cluster_ms,
            "minScore": self.min_score,
            "maxSpreadBps": self.max_spread_bps,
            "placebo": self.placebo,
            "seed": self.seed,
        }

    # --------------------------------------------------
    def execute(self, events: pa.Table, index: TickIndex) -> TruthResult:
        require_columns(
            events,
            ["ts", "type", "side", "score", "spreadBps", "pressureImb"],
            who=self.__class__.__name__,
        )

        raw = events.to_pylist()
        kept = self._filter(raw)
        clustered = self._cluster(kept)

        rows: list[dict] = []
        jobs: list[CandidateEvent] = []

        for e in clustered:
            idx = index.mid_lower_bound(e["ts"])
            if idx >= index.n_mid:
                continue
            self._label_one(
                rows, jobs, index, idx,
                cohort="real",
                type_=str(e["type"]),
                side=e["side"],
                entry_ts=e["ts"],
                spread_bps=finite_or_none(e["spreadBps"]),
                pressure_imb=finite_or_none(e["pressureImb"]),
                score=finite_or_none(e["score"]),
            )

        labeled_real = len(rows)
        if self.placebo:
            self._placebo(rows, jobs, index, labeled_real)

        counts = {
            "eventsIn": len(raw),
            "filteredOut": len(raw) - len(kept),
            "clusteredEvents": len(clustered),
            "labeledReal": labeled_real,
            "labeledPlacebo": len(rows) - labeled_real,
            "midSamples": index.n_mid,
            "trades": index.n_trades,
        }
        table = pa.Table.from_pylist(rows, schema=EVENTS_SCHEMA)
        return TruthResult(table=table, jobs=jobs, counts=counts)

    # --------------------------------------------------
    def _filter(self, raw: list[dict]) -> list[dict]:
        out = []
        for e in raw:
            ts = finite_or_none(e.get("ts"))
            if ts is None or e.get("side") not in (Side.LONG.value, Side.SHORT.value):
                continue
            score = finite_or_none(e.get("score"))
            if self.min_score is not None and (score is None or score < self.min_score):
                continue
            spread = finite_or_none(e.get("spreadBps"))
            if self.max_spread_bps is not None and spread is not None and spread > self.max_spread_bps:
                continue
            out.append({**e, "ts": int(ts), "score": score})
        return out

    def _cluster(self, events: list[dict]) -> list[dict]:
        ordered = sorted(events, key=lambda e: e["ts"])
        out: list[dict] = []
        for e in ordered:
            last = out[-1] if out else None
            if (
                last is not None
                and e["type"] == last["type"]
                and e["side"] == last["side"]
                and e["ts"] - last["ts"] <= self.cluster_ms
            ):
                if (e["score"] or 0.0) > (last["score"] or 0.0):
                    out[-1] = e
            else:
                out.append(e)
        return out

    def _label_one(
        self,
        rows: list[dict],
        jobs: list[CandidateEvent],
        index: TickIndex,
        idx: int,
        *,
        cohort: str,
        type_: str,
        side: str,
        entry_ts: int,
        spread_bps: float | None,
        pressure_imb: float | None,
        score: float | None,
    ) -> bool:
        moves = {h: forward_move(index, idx, h, side) for h in HORIZONS_MS}
        mf = mfe_mae(index, idx, MFE_HORIZON_MS, side)
        move30 = moves[30000]
        move60 = moves[60000]
        if move30 is None or move60 is None or mf is None:
            return False

        entry_mid = float(index.mid[idx])
        net30 = net_usd_from_move(move30, entry_mid, self.notional_usd, self.taker_bps)
        net60 = net_usd_from_move(move60, entry_mid, self.notional_usd, self.taker_bps)

        row_index = len(rows)
        jobs.append(
            CandidateEvent(
                index=row_index,
                entry_ts=int(entry_ts),
                entry_mid=entry_mid,
                side=side,
                spread_bps=spread_bps,
                pressure_imb=pressure_imb,
                move30=move30,
            )
        )
        rows.append(
            {
                "index": row_index,
                "cohort": cohort,
                "type": type_,
                "side": side,
                "ts": int(entry_ts),
                "mid": entry_mid,
                "spreadBps": spread_bps,
                "pressureImb": pressure_imb,
                "score": score,
                "move5": moves[5000],
                "move15": moves[15000],
                "move30": move30,
                "move60": move60,
                "mfe60": mf[0],
                "mae60": mf[1],
                "hit3_30": 1 if move30 >= 3 else 0,
                "hit5_60": 1 if move60 >= 5 else 0,
                "burstUsd1s": None,
                "dynSlipBps": None,
                "net30": net30,
                "net30Pes": None,
                "net60": net60,
                "makerFilled": None,
                "cls30": classify3(net30, self.fee_roundtrip),
                "cls60": classify3(net60, self.fee_roundtrip),
            }
        )
        return True

    def _placebo(self, rows, jobs, index: TickIndex, target: int) -> None:
        if index.n_mid == 0 or target == 0:
            return
        rng = np.random.default_rng(self.seed)
        produced = 0
        guard = 0
        while produced < target and guard < target * PLACEBO_GUARD_FACTOR:
            guard += 1
            idx = int(rng.integers(0, index.n_mid))
            side = Side.LONG.value if rng.random() >= 0.5 else Side.SHORT.value
            ok = self._label_one(
                rows, jobs, index, idx,
                cohort="placebo",
                type_=PLACEBO_TYPE,
                side=side,
                entry_ts=int(index.mid_ts[idx]),
                spread_bps=finite_or_none(index.mid_spread_bps[idx]),
                pressure_imb=0.0,
                score=0.0,
            )
            if ok:
                produced += 1
