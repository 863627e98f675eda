#!filepath: signal_gate/validation/orchestrator.py
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence

from signal_gate.pipeline.context import PhaseResult
from signal_gate.utils.errors import PhaseError, SignalGateError, ValidationFailure
from signal_gate.utils.filesystem import FileSystem
from signal_gate.utils.logger import logs
from signal_gate.validation.state import (
    PhaseState,
    Transition,
    forward_transition,
    train_transition,
    validate_transition,
)

RunPhase = Callable[[str, Sequence[str]], PhaseResult]


@dataclass
class Verdict:
    """
    一次 split validation 的最终结论

    phases  : 每个已执行 phase 的摘要（按执行顺序）
    adopted : 最终采纳的候选（最后一个已执行 phase 的 CandidateStat）
    failure : ValidationFailure / PhaseError；None 表示成功
    """

    run_id: str
    phases: List[Dict[str, Any]] = field(default_factory=list)
    adopted: list = field(default_factory=list)
    failure: Optional[SignalGateError] = None

    @property
    def ok(self) -> bool:
        return self.failure is None

    @property
    def exit_code(self) -> int:
        return 0 if self.ok else 1

    def to_dict(self) -> Dict[str, Any]:
        failure = None
        if self.failure is not None:
            failure = {
                "kind": getattr(self.failure, "kind", type(self.failure).__name__),
                "phase": getattr(self.failure, "phase", None),
                "message": str(self.failure),
            }
        return {
            "runId": self.run_id,
            "ok": self.ok,
            "phases": self.phases,
            "adopted": [c.to_dict() for c in self.adopted],
            "failure": failure,
        }


class SplitValidationOrchestrator:
    """
    SplitValidationOrchestrator（FINAL / FROZEN）

    train → (validate) → (forward)

    - phase 严格串行，前一 phase 失败则后续不执行
    - 候选按 (type, side) 匹配
    - validate: 同 key 存在且 decision != reject
    - forward : 同 key 存在、avg_net >= 0.7 * train avg_net、decision != reject
    - 结论写入 <run_dir>/verdict.json
    """

    def __init__(self, *, run_phase: RunPhase, run_dir: Path, run_id: str):
        self.run_phase = run_phase
        self.run_dir = Path(run_dir)
        self.run_id = run_id

    # --------------------------------------------------
    def run(
            self,
            train: Sequence[str],
            validate: Sequence[str] | None = None,
            forward: Sequence[str] | None = None,
    ) -> Verdict:
        verdict = Verdict(run_id=self.run_id)
        logs.info(f"[Orchestrator] run_id={self.run_id} -> {self.run_dir}")

        try:
            self._run(verdict, list(train), list(validate or []), list(forward or []))
        except (PhaseError, ValidationFailure) as e:
            logs.error(f"[Orchestrator] FAILED {e}")
            verdict.failure = e

        FileSystem.write_json(self.run_dir / "verdict.json", verdict.to_dict())
        if verdict.ok:
            logs.info(
                f"[Orchestrator] SUCCESS adopted="
                f"{[str(c.key) for c in verdict.adopted]} -> {self.run_dir}"
            )
        return verdict

    def _run(self, verdict: Verdict, train, validate, forward) -> None:
        after_train = PhaseState.VALIDATE if validate else (
            PhaseState.FORWARD if forward else PhaseState.DONE
        )
        after_validate = PhaseState.FORWARD if forward else PhaseState.DONE

        # ---------------- train ----------------
        result = self._phase(verdict, PhaseState.TRAIN, train)
        t = train_transition(result.candidates, next_state=after_train)
        self._record(verdict, t)
        logs.info(f"[Orchestrator] train passed: {len(t.survivors)} candidate(s)")
        survivors = t.survivors

        # ---------------- validate ----------------
        if t.state == PhaseState.VALIDATE:
            result = self._phase(verdict, PhaseState.VALIDATE, validate)
            t = validate_transition(survivors, result.candidates, next_state=after_validate)
            self._record(verdict, t)
            logs.info(f"[Orchestrator] validate passed: {len(t.survivors)} candidate(s) survived")
            survivors = t.survivors

        # ---------------- forward ----------------
        if t.state == PhaseState.FORWARD:
            result = self._phase(verdict, PhaseState.FORWARD, forward)
            t = forward_transition(survivors, result.candidates)
            for key, reason in t.degraded:
                logs.warning(f"[Orchestrator] {key} degraded in forward: {reason}")
            self._record(verdict, t)
            logs.info(f"[Orchestrator] forward passed: {len(t.survivors)} candidate(s)")
            survivors = t.survivors
            verdict.adopted = list(survivors.values())
            return

        # 最后执行的 phase 的候选视图
        by_key = {c.key: c for c in result.candidates}
        verdict.adopted = [by_key[k] for k in survivors if k in by_key]

    def _phase(self, verdict: Verdict, state: PhaseState, inputs) -> PhaseResult:
        phase = state.value
        logs.info(f"[Orchestrator] phase={phase} files={len(inputs)}")
        result = self.run_phase(phase, inputs)
        verdict.phases.append(
            {
                "phase": phase,
                "outDir": str(result.out_dir),
                "candidates": len(result.candidates),
                "decisions": {str(c.key): c.decision for c in result.candidates},
            }
        )
        return result

    @staticmethod
    def _record(verdict: Verdict, t: Transition) -> None:
        verdict.phases[-1]["survivors"] = [str(k) for k in t.survivors]
        if t.state == PhaseState.FAILED:
            raise t.failure
