import pytest

from signal_gate.utils.errors import (
    AllCandidatesDegradedInForward,
    AllCandidatesRejectedInValidate,
    NoTrainCandidates,
)
from signal_gate.validation.state import (
    CandidateKey,
    PhaseState,
    forward_transition,
    train_transition,
    validate_transition,
)


def test_train_keeps_only_adopt(cand):
    t = train_transition(
        [cand("a"), cand("b", decision="watch"), cand("c", decision="reject")],
        next_state=PhaseState.VALIDATE,
    )

    assert t.state == PhaseState.VALIDATE
    assert list(t.survivors) == [CandidateKey("a", "LONG")]


def test_train_without_adopt_fails(cand):
    t = train_transition([cand(decision="watch")], next_state=PhaseState.DONE)

    assert t.state == PhaseState.FAILED
    assert isinstance(t.failure, NoTrainCandidates)
    assert t.failure.phase == "train"


def test_validate_accepts_anything_but_reject(cand):
    survivors = {c.key: c for c in [cand("a"), cand("b"), cand("c")]}
    t = validate_transition(
        survivors,
        [cand("a", decision="watch"), cand("b", decision="reject"), cand("z")],
        next_state=PhaseState.FORWARD,
    )

    assert t.state == PhaseState.FORWARD
    assert list(t.survivors) == [CandidateKey("a", "LONG")]
    # forward 比较的是 train 统计
    assert t.survivors[CandidateKey("a", "LONG")].decision == "adopt_candidate"


def test_validate_all_rejected(cand):
    survivors = {cand().key: cand()}
    t = validate_transition(survivors, [cand(decision="reject")], next_state=PhaseState.DONE)

    assert t.state == PhaseState.FAILED
    assert isinstance(t.failure, AllCandidatesRejectedInValidate)


def test_side_is_part_of_the_key(cand):
    survivors = {cand(side="LONG").key: cand(side="LONG")}
    t = validate_transition(survivors, [cand(side="SHORT")], next_state=PhaseState.DONE)

    assert t.state == PhaseState.FAILED


@pytest.mark.parametrize("fwd_avg, adopted", [(7.0, True), (6.999, False), (12.0, True)])
def test_forward_retention_boundary(fwd_avg, adopted, cand):
    survivors = {cand().key: cand(avg=10.0)}
    t = forward_transition(survivors, [cand(avg=fwd_avg, decision="watch")])

    if adopted:
        assert t.state == PhaseState.DONE
        assert t.survivors[cand().key].avg_net_real == fwd_avg
    else:
        assert t.state == PhaseState.FAILED
        assert isinstance(t.failure, AllCandidatesDegradedInForward)
        assert len(t.degraded) == 1


def test_forward_rejected_or_missing_is_degraded(cand):
    survivors = {c.key: c for c in [cand("a"), cand("b"), cand("c")]}
    t = forward_transition(
        survivors,
        [cand("a", decision="reject", avg=50.0), cand("c", decision="hold_sample", avg=9.0)],
    )

    assert list(t.survivors) == [CandidateKey("c", "LONG")]
    assert [str(k) for k, _ in t.degraded] == ["a|LONG", "b|LONG"]
