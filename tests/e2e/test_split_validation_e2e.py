# tests/e2e/test_split_validation_e2e.py
from __future__ import annotations

import json

import pyarrow.csv as pv
import pytest

from signal_gate.config.app_config import AppConfig
from signal_gate.config.judge_config import JudgeConfig
from signal_gate.config.validation_config import DispatchConfig, ValidationConfig
from signal_gate.workflows.split_validation import run_split_validation

# slip 1.5bp @ 10000 → move_pes = move - 1.5；net = move_pes * 0.1 - 0.9
TRAIN_MOVE = 110.5   # net30Pes = 10.0
FORWARD_MOVE = 70.5  # net30Pes = 6.0 < 0.7 * 10.0


@pytest.fixture
def cfg(tmp_path):
    return AppConfig(
        judge=JudgeConfig(min_count=1, min_count_final=1),
        dispatch=DispatchConfig(max_workers=1),
        validation=ValidationConfig(output_root=str(tmp_path / "runs")),
    )


def _candidates(path):
    return json.loads(path.read_text(encoding="utf-8"))["candidates"]


def test_forward_degradation_fails_the_run(cfg, synthetic_window, tmp_path):
    train = [synthetic_window("train1", TRAIN_MOVE), synthetic_window("train2", TRAIN_MOVE)]
    forward = [synthetic_window("fwd1", FORWARD_MOVE)]

    verdict = run_split_validation(train, forward=forward, cfg=cfg, run_id="e2e")

    assert verdict.exit_code == 1
    assert verdict.failure.kind == "AllCandidatesDegradedInForward"

    run_dir = tmp_path / "runs" / "e2e"
    train_dir = run_dir / "train"

    for chunk in ("001", "002"):
        assert (train_dir / "chunks" / chunk / "events_labeled.csv").exists()
        assert (train_dir / "chunks" / chunk / "event_stats.csv").exists()
        summary = json.loads((train_dir / "chunks" / chunk / "summary.json").read_text(encoding="utf-8"))
        assert summary["counts"]["labeledReal"] == 5

    merged = pv.read_csv(train_dir / "events_labeled.csv")
    real = [r for r in merged.to_pylist() if r["cohort"] == "real"]
    assert len(real) == 10
    assert all(r["net30Pes"] == pytest.approx(10.0) for r in real)
    assert all(r["dynSlipBps"] == pytest.approx(1.5) for r in real)
    assert all(r["makerFilled"] == 0 for r in real)

    split = json.loads((train_dir / "split_summary.json").read_text(encoding="utf-8"))
    assert split["phase"] == "train"
    assert split["files"] == train

    (train_cand,) = _candidates(train_dir / "validation_judgement.json")
    assert train_cand["decision"] == "adopt_candidate"
    assert train_cand["avg_net_real"] == pytest.approx(10.0)

    (fwd_cand,) = _candidates(run_dir / "forward" / "validation_judgement.json")
    assert fwd_cand["avg_net_real"] == pytest.approx(6.0)

    for name in ("validation_candidates.csv", "validation_summary.txt"):
        assert (train_dir / name).exists()
    assert "[sweep] score=" in (train_dir / "validation_summary.txt").read_text(encoding="utf-8")

    on_disk = json.loads((run_dir / "verdict.json").read_text(encoding="utf-8"))
    assert on_disk["failure"]["kind"] == "AllCandidatesDegradedInForward"


def test_stable_forward_is_adopted(cfg, synthetic_window):
    verdict = run_split_validation(
        [synthetic_window("train1", TRAIN_MOVE)],
        validate=[synthetic_window("val1", TRAIN_MOVE)],
        forward=[synthetic_window("fwd1", TRAIN_MOVE)],
        cfg=cfg,
        run_id="ok",
    )

    assert verdict.ok
    assert [(c.type, c.side) for c in verdict.adopted] == [("ws_pressure", "LONG")]
    assert [p["phase"] for p in verdict.phases] == ["train", "validate", "forward"]


def test_parallel_labeling_matches_sequential(cfg, synthetic_window, tmp_path):
    train = [synthetic_window("train1", TRAIN_MOVE, n_events=8)]

    seq = run_split_validation(train, cfg=cfg, run_id="seq")
    par_cfg = cfg.model_copy(update={"dispatch": DispatchConfig(max_workers=2)})
    par = run_split_validation(train, cfg=par_cfg, run_id="par")

    a = (tmp_path / "runs" / "seq" / "train" / "events_labeled.csv").read_bytes()
    b = (tmp_path / "runs" / "par" / "train" / "events_labeled.csv").read_bytes()
    assert a == b
    assert seq.ok and par.ok


def test_empty_train_inputs_is_a_phase_error(cfg):
    verdict = run_split_validation([], cfg=cfg, run_id="empty")

    assert verdict.exit_code == 1
    assert verdict.failure.phase == "train"


def test_missing_window_is_a_phase_error(cfg, tmp_path):
    verdict = run_split_validation([str(tmp_path / "nope")], cfg=cfg, run_id="missing")

    assert verdict.exit_code == 1
    assert "WindowEvalStep" in str(verdict.failure)
