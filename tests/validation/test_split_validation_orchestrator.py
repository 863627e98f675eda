import json

import pytest

from signal_gate.pipeline.context import PhaseResult
from signal_gate.utils.errors import PhaseError
from signal_gate.validation.orchestrator import SplitValidationOrchestrator


class FakePhases:
    """phase → candidates；记录调用顺序"""

    def __init__(self, tmp_path, by_phase, fail_on=None):
        self.tmp_path = tmp_path
        self.by_phase = by_phase
        self.fail_on = fail_on
        self.calls = []

    def __call__(self, phase, inputs):
        self.calls.append((phase, list(inputs)))
        if phase == self.fail_on:
            raise PhaseError(phase, "eval failed on w9")
        return PhaseResult(
            phase=phase,
            run_id="r",
            out_dir=self.tmp_path / phase,
            events=None,
            candidates=self.by_phase[phase],
        )


def _run(tmp_path, phases, **inputs):
    orch = SplitValidationOrchestrator(run_phase=phases, run_dir=tmp_path, run_id="r")
    return orch.run(inputs.get("train", ["w1"]), inputs.get("validate"), inputs.get("forward"))


def test_train_only_success(tmp_path, cand):
    phases = FakePhases(tmp_path, {"train": [cand("a"), cand("b", decision="watch")]})
    verdict = _run(tmp_path, phases)

    assert verdict.ok and verdict.exit_code == 0
    assert [c.type for c in verdict.adopted] == ["a"]
    assert [p for p, _ in phases.calls] == ["train"]

    on_disk = json.loads((tmp_path / "verdict.json").read_text(encoding="utf-8"))
    assert on_disk["ok"] is True
    assert on_disk["phases"][0]["survivors"] == ["a|LONG"]


def test_no_train_candidates_stops_before_validate(tmp_path, cand):
    phases = FakePhases(tmp_path, {"train": [cand(decision="watch")], "validate": []})
    verdict = _run(tmp_path, phases, validate=["w2"])

    assert verdict.exit_code == 1
    assert verdict.failure.kind == "NoTrainCandidates"
    assert [p for p, _ in phases.calls] == ["train"]


def test_validate_reject_fails(tmp_path, cand):
    phases = FakePhases(
        tmp_path,
        {"train": [cand("a")], "validate": [cand("a", decision="reject")], "forward": []},
    )
    verdict = _run(tmp_path, phases, validate=["w2"], forward=["w3"])

    assert verdict.failure.kind == "AllCandidatesRejectedInValidate"
    assert verdict.failure.phase == "validate"
    assert [p for p, _ in phases.calls] == ["train", "validate"]


@pytest.mark.parametrize("fwd_avg, ok", [(7.0, True), (6.999, False)])
def test_forward_compares_against_train_avg(tmp_path, fwd_avg, ok, cand):
    phases = FakePhases(
        tmp_path,
        {
            "train": [cand("a", avg=10.0)],
            # validate 的 avg 不参与 forward 比较
            "validate": [cand("a", avg=1.0, decision="watch")],
            "forward": [cand("a", avg=fwd_avg)],
        },
    )
    verdict = _run(tmp_path, phases, validate=["w2"], forward=["w3"])

    assert verdict.ok is ok
    if ok:
        assert verdict.adopted[0].avg_net_real == fwd_avg
    else:
        assert verdict.failure.kind == "AllCandidatesDegradedInForward"
        assert verdict.to_dict()["failure"]["phase"] == "forward"


def test_phase_error_aborts(tmp_path, cand):
    phases = FakePhases(tmp_path, {"train": [cand("a")]}, fail_on="forward")
    verdict = _run(tmp_path, phases, forward=["w9"])

    assert verdict.exit_code == 1
    assert isinstance(verdict.failure, PhaseError)
    assert verdict.to_dict()["failure"]["kind"] == "PhaseError"
    assert "[forward]" in str(verdict.failure)
