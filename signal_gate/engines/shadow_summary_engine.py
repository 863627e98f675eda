#!filepath: signal_gate/engines/shadow_summary_engine.py
from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List

from signal_gate.engines.labels.base import finite_or_none
from signal_gate.utils.errors import InputError
from signal_gate.utils.logger import logs

SAMPLE_SIZE = 20


def _num(v, default=None):
    f = finite_or_none(v)
    return default if f is None else f


class ShadowSummaryEngine:
    """
    ShadowSummaryEngine

    shadow-live JSONL（shadow_open / shadow_close）→ 汇总 dict

    - 按 shadowId 配对；close 缺失字段回落到 open
    - 非 JSON / 非对象行直接跳过
    - 未 close 的 open 计入 shadowOpenStillActive
    """

    @logs.catch()
    def execute(self, path: str | Path) -> Dict[str, Any]:
        path = Path(path)
        if not path.exists():
            raise InputError(f"[ShadowSummary] input not found: {path}")

        with open(path, "r", encoding="utf-8") as f:
            opened, closed = self.pair(f)

        summary = self.summarize(closed, still_open=len(opened))
        summary = {
            "input": str(path.resolve()),
            "generatedAt": datetime.now(timezone.utc).isoformat(),
            **summary,
        }
        logs.info(
            f"[ShadowSummary] closed={len(closed)} open={len(opened)} "
            f"net={summary['performance']['netUsd']:.4f}"
        )
        return summary

    # --------------------------------------------------
    @staticmethod
    def pair(lines: Iterable[str]) -> tuple[dict, List[dict]]:
        opened: dict[str, dict] = {}
        closed: list[dict] = []
        for line in lines:
            line = line.strip()
            if not line.startswith("{"):
                continue
            try:
                obj = json.loads(line)
            except json.JSONDecodeError:
                continue
            if not isinstance(obj, dict) or not obj.get("shadowId"):
                continue

            sid = str(obj["shadowId"])
            if obj.get("type") == "shadow_open":
                opened[sid] = obj
            elif obj.get("type") == "shadow_close":
                op = opened.pop(sid, {})
                closed.append(
                    {
                        "shadowId": sid,
                        "dir": obj.get("dir", op.get("dir")),
                        "openTs": _num(obj.get("openTs"), _num(op.get("ts"))),
                        "closeTs": _num(obj.get("closeTs"), _num(obj.get("ts"))),
                        "holdMs": _num(obj.get("holdMs")),
                        "entryPx": _num(obj.get("entryPx"), _num(op.get("entryPx"))),
                        "exitPx": _num(obj.get("exitPx")),
                        "grossUsd": _num(obj.get("grossUsd"), 0.0),
                        "feeUsd": _num(obj.get("feeUsd"), 0.0),
                        "netUsd": _num(obj.get("netUsd"), 0.0),
                        "closeReason": obj.get("closeReason"),
                    }
                )
        return opened, closed

    @staticmethod
    def summarize(closed: List[dict], *, still_open: int) -> Dict[str, Any]:
        nets = [t["netUsd"] for t in closed]
        wins = sum(1 for n in nets if n > 0)
        losses = sum(1 for n in nets if n < 0)
        reasons = [t["closeReason"] for t in closed]

        return {
            "counts": {
                "shadowOpenStillActive": still_open,
                "shadowClosed": len(closed),
            },
            "performance": {
                "netUsd": sum(nets),
                "grossUsd": sum(t["grossUsd"] for t in closed),
                "feeUsd": sum(t["feeUsd"] for t in closed),
                "winRate": wins / len(closed) if closed else None,
                "wins": wins,
                "losses": losses,
            },
            "exitReason": {
                "timeout": reasons.count("timeout"),
                "decisionFlip": reasons.count("decision_flip"),
            },
            "sample": closed[-SAMPLE_SIZE:],
        }
