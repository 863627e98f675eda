#!filepath: signal_gate/engines/judgement_engine.py
from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Dict, List

import numpy as np
import pandas as pd
import pyarrow as pa

from signal_gate.config.judge_config import JudgeConfig
from signal_gate.engines.labels.forward_truth_label_engine import PLACEBO_TYPE
from signal_gate.validation.state import ADOPT, HOLD, REJECT, WATCH, CandidateKey
from signal_gate.utils.errors import InputError

"""
{#!filepath: signal_gate/engines/judgement_engine.py}

JudgementEngine (FINAL / FROZEN)

Role:
- labeled events (net30Pes) → per (type, side) pessimistic verdict.

Contract:
- Only rows with a finite net30Pes are judged.
- Groups are evaluated in ts order (drawdown / losing streak are path dependent).
- The placebo group of the same side is reported next to each real group,
  it never changes the decision.
"""

MS_PER_DAY = 86_400_000

JUDGE_COLUMNS = ["ts", "cohort", "type", "side", "net30Pes"]

STAGE_ORDER = {"robust": 4, "actionable": 3, "provisional": 2, "insufficient": 1}


def stage_from_count(n: int) -> str:
    if n >= 3000:
        return "robust"
    if n >= 1000:
        return "actionable"
    if n >= 300:
        return "provisional"
    return "insufficient"


def percentile(values: np.ndarray, p: float) -> float | None:
    if values.size == 0:
        return None
    s = np.sort(values)
    idx = max(0, min(s.size - 1, int(np.floor((s.size - 1) * p))))
    return float(s[idx])


@dataclass(frozen=True)
class GroupMetrics:
    count: int
    avg_net: float
    p_pos: float
    mean_win: float
    p95_loss: float
    max_cons_loss: int
    max_dd: float
    avg_daily_net: float
    pf: float


def group_metrics(nets: np.ndarray, duration_days: float) -> GroupMetrics:
    """nets 必须已按 ts 排序"""
    sum_win = 0.0
    count_win = 0
    cons_loss = 0
    max_cons_loss = 0
    cml = 0.0
    peak = 0.0
    max_dd = 0.0

    for net in nets.tolist():
        if net > 0:
            sum_win += net
            count_win += 1
            cons_loss = 0
        elif net < 0:
            # net == 0 不打断连亏
            cons_loss += 1
            max_cons_loss = max(max_cons_loss, cons_loss)
        cml += net
        peak = max(peak, cml)
        max_dd = max(max_dd, peak - cml)

    count = int(nets.size)
    sum_net = float(nets.sum())
    gross_loss = float(-nets[nets < 0].sum())

    return GroupMetrics(
        count=count,
        avg_net=sum_net / count,
        p_pos=count_win / count,
        mean_win=sum_win / count_win if count_win > 0 else 0.0,
        p95_loss=abs(min(0.0, percentile(nets, 0.05) or 0.0)),
        max_cons_loss=max_cons_loss,
        max_dd=max_dd,
        avg_daily_net=sum_net / duration_days,
        pf=sum_win / gross_loss if gross_loss > 0 else 999.0,
    )


@dataclass(frozen=True)
class CandidateStat:
    type: str
    side: str
    count: int
    stage: str
    decision: str
    avg_net_real: float
    avg_net_placebo: float
    p_pos_real: float
    p_pos_placebo: float
    mean_win_real: float
    p95_loss_real: float
    max_dd_real: float
    max_cons_loss_real: int
    pf_real: float

    @property
    def key(self) -> CandidateKey:
        return CandidateKey(self.type, self.side)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


CANDIDATE_COLUMNS = [f for f in CandidateStat.__dataclass_fields__]


@dataclass
class Judgement:
    summary: Dict[str, Any]
    candidates: List[CandidateStat]


class JudgementEngine:
    """
    JudgementEngine

    decision:
      - count < min_count                      → hold_sample
      - core pass and count >= min_count_final → adopt_candidate
      - core pass                              → watch
      - otherwise                              → reject

    core pass:
      avg_net > 0
      p_pos >= min_p_pos
      p95_loss <= max_tail_loss_ratio * mean_win
      max_cons_loss <= max_cons_loss
      max_dd <= max(0, max_dd_ratio * avg_daily_net)
    """

    def __init__(self, cfg: JudgeConfig | None = None):
        self.cfg = cfg or JudgeConfig()

    # --------------------------------------------------
    def execute(self, events: pa.Table | pd.DataFrame) -> Judgement:
        df = events.to_pandas() if isinstance(events, pa.Table) else events.copy()
        missing = [c for c in JUDGE_COLUMNS if c not in df.columns]
        if missing:
            raise InputError(f"[JudgementEngine] missing required columns: {missing}")

        df["ts"] = pd.to_numeric(df["ts"], errors="coerce")
        df["net30Pes"] = pd.to_numeric(df["net30Pes"], errors="coerce")

        ts = df["ts"][np.isfinite(df["ts"])]
        duration_days = 1.0
        if not ts.empty:
            duration_days = max(1.0, float(ts.max() - ts.min()) / MS_PER_DAY)

        judged = df[np.isfinite(df["ts"]) & np.isfinite(df["net30Pes"])]

        real: dict[CandidateKey, GroupMetrics] = {}
        placebo: dict[str, GroupMetrics] = {}
        for (cohort, type_, side), g in judged.groupby(["cohort", "type", "side"], sort=False):
            nets = g.sort_values("ts", kind="mergesort")["net30Pes"].to_numpy(dtype=float)
            m = group_metrics(nets, duration_days)
            if cohort == "real":
                real[CandidateKey(str(type_), str(side))] = m
            elif cohort == "placebo" and type_ == PLACEBO_TYPE:
                placebo[str(side)] = m

        candidates = [self._decide(k, m, placebo.get(k.side)) for k, m in real.items()]
        candidates = self._sort(candidates)
        totals = self.totals(df, candidates)

        summary = {
            "thresholds": {
                "minCount": self.cfg.min_count,
                "minCountFinal": self.cfg.min_count_final,
                "minPPos": self.cfg.min_p_pos,
                "maxTailLossRatio": self.cfg.max_tail_loss_ratio,
                "maxConsLoss": self.cfg.max_cons_loss,
                "maxDDRatio": self.cfg.max_dd_ratio,
            },
            "totals": totals,
            "sweepScore": sweep_score(totals),
        }
        return Judgement(summary=summary, candidates=candidates)

    # --------------------------------------------------
    def _decide(self, key: CandidateKey, m: GroupMetrics, pb: GroupMetrics | None) -> CandidateStat:
        cfg = self.cfg
        core = (
            m.avg_net > 0
            and m.p_pos >= cfg.min_p_pos
            and m.p95_loss <= cfg.max_tail_loss_ratio * m.mean_win
            and m.max_cons_loss <= cfg.max_cons_loss
            and m.max_dd <= max(0.0, cfg.max_dd_ratio * m.avg_daily_net)
        )

        if m.count < cfg.min_count:
            decision = HOLD
        elif core and m.count >= cfg.min_count_final:
            decision = ADOPT
        elif core:
            decision = WATCH
        else:
            decision = REJECT

        return CandidateStat(
            type=key.type,
            side=key.side,
            count=m.count,
            stage=stage_from_count(m.count),
            decision=decision,
            avg_net_real=m.avg_net,
            avg_net_placebo=pb.avg_net if pb else 0.0,
            p_pos_real=m.p_pos,
            p_pos_placebo=pb.p_pos if pb else 0.0,
            mean_win_real=m.mean_win,
            p95_loss_real=m.p95_loss,
            max_dd_real=m.max_dd,
            max_cons_loss_real=m.max_cons_loss,
            pf_real=m.pf,
        )

    @staticmethod
    def _sort(candidates: list[CandidateStat]) -> list[CandidateStat]:
        # stage desc → decision desc → avg_net desc（稳定排序逐层叠加）
        out = sorted(candidates, key=lambda c: c.avg_net_real, reverse=True)
        out.sort(key=lambda c: c.decision, reverse=True)
        out.sort(key=lambda c: STAGE_ORDER[c.stage], reverse=True)
        return out

    @staticmethod
    def totals(df: pd.DataFrame, candidates: list[CandidateStat]) -> Dict[str, int]:
        decisions = [c.decision for c in candidates]
        return {
            "realRows": int((df["cohort"] == "real").sum()),
            "placeboRows": int((df["cohort"] == "placebo").sum()),
            "groupsEvaluated": len(candidates),
            "adoptCandidates": decisions.count(ADOPT),
            "watch": decisions.count(WATCH),
            "rejected": decisions.count(REJECT),
            "holdSample": decisions.count(HOLD),
        }


def sweep_score(totals: Dict[str, Any]) -> float:
    """
    参数网格 sweep 的排序分（写入 summary.sweepScore）：
      (adopt * 3 + watch - reject * 0.25 - hold * 0.1) / max(1, groups)
    """
    adopt = float(totals.get("adoptCandidates", 0) or 0)
    watch = float(totals.get("watch", 0) or 0)
    reject = float(totals.get("rejected", 0) or 0)
    hold = float(totals.get("holdSample", 0) or 0)
    groups = max(1.0, float(totals.get("groupsEvaluated", 1) or 1))
    return (adopt * 3 + watch - reject * 0.25 - hold * 0.1) / groups
