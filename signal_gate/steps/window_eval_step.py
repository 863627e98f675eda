#!filepath: signal_gate/steps/window_eval_step.py
from __future__ import annotations

from pathlib import Path
from typing import Sequence

import pyarrow as pa
import pyarrow.csv as pv

from signal_gate.dataloader.window_loader import WindowLoader
from signal_gate.engines.event_stats_engine import EventStatsEngine
from signal_gate.engines.labels.execution_reality_label_engine import Label
from signal_gate.engines.labels.forward_truth_label_engine import ForwardTruthLabelEngine
from signal_gate.engines.tick_index import TickIndex
from signal_gate.pipeline.context import ChunkOutput, PhaseContext
from signal_gate.pipeline.parallel.dispatcher import LabelDispatcher
from signal_gate.pipeline.step import PipelineStep
from signal_gate.utils.filesystem import FileSystem
from signal_gate.utils.logger import logs


def chunk_name(position: int) -> str:
    """chunks/001, chunks/002, ...（从 1 开始）"""
    return f"{position + 1:03d}"


def attach_labels(table: pa.Table, labels: Sequence[Label]) -> pa.Table:
    """
    按 Label.index（== 行号）回填 execution-reality 列
    """
    n = table.num_rows
    burst = [None] * n
    slip = [None] * n
    net_pes = [None] * n
    maker = [None] * n
    for lb in labels:
        burst[lb.index] = lb.burst_usd_1s
        slip[lb.index] = lb.dyn_slip_bps
        net_pes[lb.index] = lb.net30_pes
        maker[lb.index] = lb.maker_filled

    for name, values, typ in (
            ("burstUsd1s", burst, pa.float64()),
            ("dynSlipBps", slip, pa.float64()),
            ("net30Pes", net_pes, pa.float64()),
            ("makerFilled", maker, pa.int64()),
    ):
        pos = table.schema.get_field_index(name)
        table = table.set_column(pos, name, pa.array(values, type=typ))
    return table


class WindowEvalStep(PipelineStep):
    """
    WindowEvalStep（FINAL / FROZEN）

    Semantics:
      <window dir>
        -> chunks/NNN/events_labeled.csv
        -> chunks/NNN/event_stats.csv
        -> chunks/NNN/summary.json（input / params / counts）

    Principles:
      - 每个 window 独立：独立 TickIndex、独立 dispatcher run
      - 任一 partition 失败 → 整个 phase 失败（PartitionFailed）
      - 输出顺序 == inputs 顺序
    """

    def __init__(
            self,
            *,
            loader: WindowLoader,
            truth: ForwardTruthLabelEngine,
            dispatcher: LabelDispatcher,
            inst=None,
    ) -> None:
        super().__init__(inst)
        self.loader = loader
        self.truth = truth
        self.dispatcher = dispatcher
        self.stats = EventStatsEngine()

    def run(self, ctx: PhaseContext) -> PhaseContext:
        with self.timed():
            chunks = []
            for position, input_path in enumerate(ctx.inputs):
                with self.inst.timer(f"{ctx.phase}/eval_{chunk_name(position)}"):
                    chunks.append(self._eval_one(ctx, position, input_path))
            ctx.chunks = chunks
        return ctx

    # --------------------------------------------------
    def _eval_one(self, ctx: PhaseContext, position: int, input_path: Path) -> ChunkOutput:
        window = self.loader.load(input_path)
        index = TickIndex.from_tables(window.mid, window.trades)

        truth = self.truth.execute(window.events, index)

        result = self.dispatcher.run(index, truth.jobs)
        result.raise_for_failures()

        table = attach_labels(truth.table, result.labels)

        chunk_dir = FileSystem.ensure_dir(ctx.chunks_dir / chunk_name(position))
        pv.write_csv(table, chunk_dir / "events_labeled.csv")
        self.stats.execute(table).to_csv(chunk_dir / "event_stats.csv", index=False)
        FileSystem.write_json(
            chunk_dir / "summary.json",
            {
                "input": str(input_path),
                "params": {
                    **self.truth.params(),
                    "maxWorkers": self.dispatcher.max_workers,
                },
                "counts": truth.counts,
            },
        )

        logs.info(
            f"[WindowEvalStep] {ctx.phase} {chunk_name(position)} {input_path.name} "
            f"real={truth.counts['labeledReal']} placebo={truth.counts['labeledPlacebo']}"
        )
        return ChunkOutput(
            position=position,
            input_path=input_path,
            chunk_dir=chunk_dir,
            table=table,
            counts=truth.counts,
        )
