#!filepath: signal_gate/pipeline/context.py
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import pyarrow as pa


@dataclass
class ChunkOutput:
    """一个 input window 的评估产物"""

    position: int
    input_path: Path
    chunk_dir: Path
    table: pa.Table
    counts: Dict[str, Any]


@dataclass
class PhaseContext:
    """
    PhaseContext = 一个 phase 运行期唯一上下文

    设计原则：
    - PhasePipeline 负责构造
    - Step 只读上游 slot，只写自己的 slot
    - 不放业务逻辑
    """

    # -------------------------
    # identity
    # -------------------------
    phase: str
    run_id: str

    # -------------------------
    # io
    # -------------------------
    inputs: List[Path]
    out_dir: Path

    # -------------------------
    # slots (filled by steps)
    # -------------------------
    chunks: List[ChunkOutput] = field(default_factory=list)
    events: Optional[pa.Table] = None
    judgement: Any = None

    @property
    def chunks_dir(self) -> Path:
        return self.out_dir / "chunks"


@dataclass
class PhaseResult:
    phase: str
    run_id: str
    out_dir: Path
    events: pa.Table
    candidates: list
