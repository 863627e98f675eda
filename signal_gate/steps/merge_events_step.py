#!filepath: signal_gate/steps/merge_events_step.py
from __future__ import annotations

import pyarrow as pa
import pyarrow.csv as pv

from signal_gate.pipeline.context import PhaseContext
from signal_gate.pipeline.step import PipelineStep
from signal_gate.utils.errors import InputError
from signal_gate.utils.filesystem import FileSystem
from signal_gate.utils.logger import logs


class MergeEventsStep(PipelineStep):
    """
    MergeEventsStep（FINAL）

    chunks/*/events_labeled.csv -> events_labeled.csv + split_summary.json

    规则：
      - 列头必须完全一致（名称 + 顺序），否则失败，不做列对齐
      - 行顺序：chunk 内原顺序，chunk 间按 inputs 顺序
      - 合并后 0 行 → 失败
    """

    def run(self, ctx: PhaseContext) -> PhaseContext:
        if not ctx.chunks:
            raise InputError(f"[MergeEventsStep] {ctx.phase}: no chunks to merge")

        header = ctx.chunks[0].table.column_names
        for chunk in ctx.chunks[1:]:
            if chunk.table.column_names != header:
                raise InputError(
                    f"[MergeEventsStep] header mismatch in {chunk.chunk_dir}: "
                    f"{chunk.table.column_names} != {header}"
                )

        with self.inst.timer(f"{ctx.phase}/merge"):
            merged = pa.concat_tables([c.table for c in ctx.chunks], promote_options="default")

        if merged.num_rows == 0:
            raise InputError(f"[MergeEventsStep] {ctx.phase}: no csv rows to merge")

        pv.write_csv(merged, ctx.out_dir / "events_labeled.csv")
        FileSystem.write_json(
            ctx.out_dir / "split_summary.json",
            {
                "phase": ctx.phase,
                "runId": ctx.run_id,
                "files": [str(p) for p in ctx.inputs],
                "chunks": [c.counts for c in ctx.chunks],
            },
        )

        logs.info(
            f"[MergeEventsStep] {ctx.phase} merged chunks={len(ctx.chunks)} rows={merged.num_rows}"
        )
        ctx.events = merged
        return ctx
