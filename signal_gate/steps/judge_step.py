#!filepath: signal_gate/steps/judge_step.py
from __future__ import annotations

from datetime import datetime, timezone

import pandas as pd

from signal_gate.engines.judgement_engine import CANDIDATE_COLUMNS, Judgement, JudgementEngine
from signal_gate.pipeline.context import PhaseContext
from signal_gate.pipeline.step import PipelineStep
from signal_gate.utils.filesystem import FileSystem
from signal_gate.utils.logger import logs

TOP_N = 10


def render_summary(judgement: Judgement) -> str:
    s = judgement.summary
    t = s["totals"]
    lines = [
        "Validation Judgement (Pessimistic)",
        f"generatedAt: {s.get('generatedAt', '')}",
        f"runDir: {s.get('runDir', '')}",
        "",
        f"[totals] real={t['realRows']} placebo={t['placeboRows']} groups={t['groupsEvaluated']}",
        f"[decision] adopt={t['adoptCandidates']} watch={t['watch']} "
        f"reject={t['rejected']} hold_sample={t['holdSample']}",
        f"[sweep] score={s['sweepScore']:.4f}",
        "",
        "[top candidates]",
    ]
    for c in judgement.candidates[:TOP_N]:
        lines.append(
            f"{c.type}/{c.side} decision={c.decision} stage={c.stage} count={c.count} "
            f"avgNet={c.avg_net_real:.4f} pPos={c.p_pos_real * 100:.1f}% "
            f"p95Loss={c.p95_loss_real:.4f} maxDD={c.max_dd_real:.4f} "
            f"maxConsLoss={c.max_cons_loss_real} PF={c.pf_real:.2f}"
        )
    return "\n".join(lines) + "\n"


class JudgeStep(PipelineStep):
    """
    JudgeStep（FINAL）

    职责：
      - events → JudgementEngine
      - validation_judgement.json / validation_candidates.csv / validation_summary.txt
    """

    def __init__(self, *, engine: JudgementEngine, inst=None) -> None:
        super().__init__(inst)
        self.engine = engine

    def run(self, ctx: PhaseContext) -> PhaseContext:
        with self.inst.timer(f"{ctx.phase}/judge"):
            judgement = self.engine.execute(ctx.events)

        judgement.summary = {
            "runDir": str(ctx.out_dir),
            "generatedAt": datetime.now(timezone.utc).isoformat(),
            **judgement.summary,
        }

        out = ctx.out_dir
        FileSystem.write_json(
            out / "validation_judgement.json",
            {
                "summary": judgement.summary,
                "candidates": [c.to_dict() for c in judgement.candidates],
            },
        )
        pd.DataFrame(
            [c.to_dict() for c in judgement.candidates],
            columns=CANDIDATE_COLUMNS,
        ).to_csv(out / "validation_candidates.csv", index=False)
        FileSystem.write_text(out / "validation_summary.txt", render_summary(judgement))

        totals = judgement.summary["totals"]
        logs.info(
            f"[JudgeStep] {ctx.phase} groups={totals['groupsEvaluated']} "
            f"adopt={totals['adoptCandidates']} watch={totals['watch']} "
            f"reject={totals['rejected']} hold={totals['holdSample']}"
        )

        ctx.judgement = judgement
        return ctx
