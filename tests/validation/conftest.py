# tests/validation/conftest.py
import pytest

from signal_gate.engines.judgement_engine import CandidateStat


def _cand(type_="ws_pressure", side="LONG", *, decision="adopt_candidate", avg=10.0, count=1000):
    return CandidateStat(
        type=type_,
        side=side,
        count=count,
        stage="actionable",
        decision=decision,
        avg_net_real=avg,
        avg_net_placebo=0.0,
        p_pos_real=0.6,
        p_pos_placebo=0.5,
        mean_win_real=1.0,
        p95_loss_real=0.5,
        max_dd_real=1.0,
        max_cons_loss_real=2,
        pf_real=1.5,
    )


@pytest.fixture
def cand():
    return _cand
