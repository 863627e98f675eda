#!filepath: signal_gate/config/judge_config.py
from pydantic import BaseModel, Field


class JudgeConfig(BaseModel):
    """
    JudgeConfig（pessimistic thresholds）
    """

    min_count: int = Field(300, ge=0)
    min_count_final: int = Field(1000, ge=0)

    min_p_pos: float = 0.55
    max_tail_loss_ratio: float = 3.5
    max_cons_loss: int = 12
    max_dd_ratio: float = 5.0
