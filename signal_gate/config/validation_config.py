#!filepath: signal_gate/config/validation_config.py
from typing import Optional

from pydantic import BaseModel, Field


class DispatchConfig(BaseModel):
    # None → min(cpu, jobs)
    max_workers: Optional[int] = Field(None, ge=1)


class ValidationConfig(BaseModel):
    output_root: str = "data/validation/split-runs"
    instrumentation: bool = True
