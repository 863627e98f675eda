#!filepath: signal_gate/config/labeler_config.py
from pydantic import BaseModel, Field


class LabelerConfig(BaseModel):
    """
    LabelerConfig

    语义：
      - 固定名义仓位（与 signal / 波动率无关，显式可覆盖）
      - taker 费率（单边 bps，round-trip = 2x）
    """

    notional_usd: float = Field(1000.0, gt=0)
    taker_bps: float = Field(4.5, ge=0)
