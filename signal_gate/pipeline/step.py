#!filepath: signal_gate/pipeline/step.py
from __future__ import annotations

from signal_gate.pipeline.context import PhaseContext
from signal_gate.observability.instrumentation import (
    Instrumentation,
    NoOpInstrumentation,
)


class PipelineStep:
    """
    Pipeline Step 基类（FINAL / FROZEN）

    职责（唯一）：
      1. 读取 ctx 中上游 slot，写入自己的 slot
      2. 提供 Step 级时间语义边界（parent scope）

    设计铁律：
      - Step 本身不进入 timeline
      - 叶子计时发生在 Step 内部（inst.timer）
      - Step 行为不依赖 inst 是否存在
    """

    def __init__(self, inst: Instrumentation | None = None):
        self.inst: Instrumentation | NoOpInstrumentation = (
            inst if inst is not None else NoOpInstrumentation()
        )

    @property
    def step_name(self) -> str:
        return self.__class__.__name__

    def timed(self):
        """Step 级 scope，record=False，不进入 timeline"""
        return self.inst.timer(self.step_name, record=False)

    def run(self, ctx: PhaseContext) -> PhaseContext:
        raise NotImplementedError
