#!filepath: signal_gate/pipeline/pipeline.py
from __future__ import annotations

from pathlib import Path
from typing import Sequence

import pyarrow as pa

from signal_gate.utils.logger import logs
from signal_gate.observability.instrumentation import Instrumentation, NoOpInstrumentation
from signal_gate.pipeline.context import PhaseContext, PhaseResult
from signal_gate.pipeline.step import PipelineStep
from signal_gate.utils.errors import PhaseError, SignalGateError


class PhasePipeline:
    """
    PhasePipeline（FINAL / FROZEN）

    语义：
      - 一个 phase = eval → merge → judge
      - 只负责：
          * Context 构造
          * Step 顺序执行
          * 输出目录管理
      - 任一结构性错误 → PhaseError（带 phase 名），不做重试
    """

    def __init__(
            self,
            *,
            steps: list[PipelineStep],
            run_dir: Path,
            run_id: str,
            inst: Instrumentation | NoOpInstrumentation | None = None,
    ) -> None:
        self.steps = steps
        self.run_dir = Path(run_dir)
        self.run_id = run_id
        self.inst = inst if inst is not None else NoOpInstrumentation()

    # --------------------------------------------------
    def run(self, phase: str, inputs: Sequence[str | Path]) -> PhaseResult:
        inputs = [Path(p) for p in inputs]
        if not inputs:
            raise PhaseError(phase, "no input files")

        out_dir = self.run_dir / phase
        out_dir.mkdir(parents=True, exist_ok=True)

        logs.info(f"[PhasePipeline] ====== START {phase} files={len(inputs)} ======")

        ctx = PhaseContext(
            phase=phase,
            run_id=self.run_id,
            inputs=inputs,
            out_dir=out_dir,
        )

        for step in self.steps:
            logs.debug(f"[PhasePipeline] running step={step.step_name}")
            try:
                ctx = step.run(ctx)
            except PhaseError:
                raise
            except (SignalGateError, OSError, pa.ArrowException) as e:
                logs.error(f"[PhasePipeline] {phase} failed at {step.step_name}: {e}")
                raise PhaseError(phase, f"{step.step_name}: {e}") from e

        self.inst.generate_timeline_report(phase)
        self.inst.reset()
        logs.info(f"[PhasePipeline] ====== DONE {phase} ======")

        return PhaseResult(
            phase=phase,
            run_id=self.run_id,
            out_dir=out_dir,
            events=ctx.events,
            candidates=list(ctx.judgement.candidates) if ctx.judgement else [],
        )
