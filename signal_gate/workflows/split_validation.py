#!filepath: signal_gate/workflows/split_validation.py
from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Sequence

from signal_gate.utils.logger import logs
from signal_gate.config.app_config import AppConfig
from signal_gate.observability.instrumentation import Instrumentation, NoOpInstrumentation
from signal_gate.pipeline.pipeline import PhasePipeline

from signal_gate.dataloader.window_loader import WindowLoader
from signal_gate.engines.labels.forward_truth_label_engine import ForwardTruthLabelEngine
from signal_gate.pipeline.parallel.dispatcher import LabelDispatcher
from signal_gate.steps.window_eval_step import WindowEvalStep

from signal_gate.steps.merge_events_step import MergeEventsStep

from signal_gate.engines.judgement_engine import JudgementEngine
from signal_gate.steps.judge_step import JudgeStep

from signal_gate.validation.orchestrator import SplitValidationOrchestrator, Verdict


def new_run_id() -> str:
    """UTC，去掉 ':' '.'：2026-01-02T030405123"""
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H%M%S%f")[:-3]


def build_phase_pipeline(cfg: AppConfig, *, run_dir: Path, run_id: str) -> PhasePipeline:
    """
    Phase Pipeline (FINAL / FROZEN)

    Semantic Order (LAW):
        WindowEval   (window → TickIndex → forward truth → execution-reality labels)
        → MergeEvents (chunks → events_labeled.csv)
        → Judge       (events → candidates)
    """
    inst = Instrumentation() if cfg.validation.instrumentation else NoOpInstrumentation()

    eval_step = WindowEvalStep(
        loader=WindowLoader(),
        truth=ForwardTruthLabelEngine(
            notional_usd=cfg.labeler.notional_usd,
            taker_bps=cfg.labeler.taker_bps,
            cluster_ms=cfg.window.cluster_ms,
            min_score=cfg.window.min_score,
            max_spread_bps=cfg.window.max_spread_bps,
            placebo=cfg.window.placebo,
            seed=cfg.window.seed,
        ),
        dispatcher=LabelDispatcher(
            notional_usd=cfg.labeler.notional_usd,
            taker_bps=cfg.labeler.taker_bps,
            max_workers=cfg.dispatch.max_workers,
        ),
        inst=inst,
    )
    merge_step = MergeEventsStep(inst=inst)
    judge_step = JudgeStep(engine=JudgementEngine(cfg.judge), inst=inst)

    return PhasePipeline(
        steps=[eval_step, merge_step, judge_step],
        run_dir=run_dir,
        run_id=run_id,
        inst=inst,
    )


def run_split_validation(
        train: Sequence[str],
        validate: Sequence[str] | None = None,
        forward: Sequence[str] | None = None,
        *,
        cfg: AppConfig | None = None,
        run_id: str | None = None,
) -> Verdict:
    cfg = cfg or AppConfig.load()
    run_id = run_id or new_run_id()
    run_dir = Path(cfg.validation.output_root) / run_id
    run_dir.mkdir(parents=True, exist_ok=True)

    logs.info(f"[SplitValidation] run_id={run_id} out={run_dir}")

    pipeline = build_phase_pipeline(cfg, run_dir=run_dir, run_id=run_id)
    orchestrator = SplitValidationOrchestrator(
        run_phase=pipeline.run,
        run_dir=run_dir,
        run_id=run_id,
    )
    return orchestrator.run(train, validate, forward)
