#!filepath: signal_gate/engines/labels/base.py
from __future__ import annotations

import math
from typing import Sequence

import pyarrow as pa

from signal_gate.utils.errors import InputError


def require_columns(table: pa.Table, cols: Sequence[str], *, who: str) -> None:
    missing = [c for c in cols if c not in table.column_names]
    if missing:
        raise InputError(f"[{who}] missing required columns: {missing}")


def finite_or_none(v) -> float | None:
    """None / NaN / inf / 非数值 → None"""
    if v is None or isinstance(v, bool):
        return None
    try:
        f = float(v)
    except (TypeError, ValueError):
        return None
    return f if math.isfinite(f) else None
