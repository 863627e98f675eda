#!filepath: signal_gate/validation/state.py
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Mapping, NamedTuple, Optional

from signal_gate.utils.errors import (
    AllCandidatesDegradedInForward,
    AllCandidatesRejectedInValidate,
    NoTrainCandidates,
    ValidationFailure,
)

# forward avg net must keep at least this share of the train avg net
FORWARD_RETENTION_RATIO = 0.7

ADOPT = "adopt_candidate"
WATCH = "watch"
REJECT = "reject"
HOLD = "hold_sample"


class CandidateKey(NamedTuple):
    type: str
    side: str

    def __str__(self) -> str:
        return f"{self.type}|{self.side}"


class PhaseState(str, Enum):
    TRAIN = "train"
    VALIDATE = "validate"
    FORWARD = "forward"
    DONE = "done"
    FAILED = "failed"


@dataclass(frozen=True)
class Transition:
    """
    state     : 下一个状态（DONE / FAILED / 下一 phase）
    survivors : 进入下一 phase 的候选（key → train 阶段的 CandidateStat）
    failure   : state == FAILED 时的失败原因
    degraded  : forward 阶段掉队的候选（仅记录，不影响判定）
    """

    state: PhaseState
    survivors: dict = field(default_factory=dict)
    failure: Optional[ValidationFailure] = None
    degraded: tuple = ()


def index_candidates(candidates) -> dict:
    return {c.key: c for c in candidates}


# ----------------------------------------------------------------------
# pure transitions
# ----------------------------------------------------------------------
def train_transition(candidates, *, next_state: PhaseState) -> Transition:
    survivors = {c.key: c for c in candidates if c.decision == ADOPT}
    if not survivors:
        return Transition(PhaseState.FAILED, failure=NoTrainCandidates())
    return Transition(next_state, survivors=survivors)


def validate_transition(
        survivors: Mapping[CandidateKey, object],
        candidates,
        *,
        next_state: PhaseState,
) -> Transition:
    by_key = index_candidates(candidates)
    kept = {
        k: c for k, c in survivors.items()
        if k in by_key and by_key[k].decision != REJECT
    }
    if not kept:
        return Transition(PhaseState.FAILED, failure=AllCandidatesRejectedInValidate())
    return Transition(next_state, survivors=kept)


def forward_transition(
        survivors: Mapping[CandidateKey, object],
        candidates,
) -> Transition:
    """
    forward 采纳条件（同时满足）：
      - forward 中存在同 key 候选
      - forward.avg_net_real >= 0.7 * train.avg_net_real（含边界）
      - forward.decision != reject
    """
    by_key = index_candidates(candidates)
    adopted = {}
    degraded = []
    for k, train in survivors.items():
        fwd = by_key.get(k)
        if fwd is None:
            degraded.append((k, "missing in forward"))
            continue
        floor = train.avg_net_real * FORWARD_RETENTION_RATIO
        if fwd.avg_net_real < floor:
            degraded.append(
                (k, f"avg_net {fwd.avg_net_real:.4f} < {floor:.4f} (70% of train)")
            )
            continue
        if fwd.decision == REJECT:
            degraded.append((k, "rejected in forward"))
            continue
        adopted[k] = fwd

    if not adopted:
        return Transition(
            PhaseState.FAILED,
            failure=AllCandidatesDegradedInForward(),
            degraded=tuple(degraded),
        )
    return Transition(PhaseState.DONE, survivors=adopted, degraded=tuple(degraded))
