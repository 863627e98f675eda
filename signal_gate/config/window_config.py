#!filepath: signal_gate/config/window_config.py
from typing import Optional

from pydantic import BaseModel, Field


class WindowConfig(BaseModel):
    """
    Forward-truth 阶段的 run 参数（cooldown / filters / placebo）
    """

    cluster_ms: int = Field(1000, ge=0)
    min_score: Optional[float] = None
    max_spread_bps: Optional[float] = None

    placebo: bool = True
    seed: int = 42
