import pytest
from loguru import logger

from signal_gate.observability.instrumentation import Instrumentation
from signal_gate.pipeline.pipeline import PhasePipeline
from signal_gate.pipeline.step import PipelineStep
from signal_gate.utils.errors import InputError, PhaseError


class LeafStep(PipelineStep):
    def run(self, ctx):
        with self.timed():
            with self.inst.timer(f"{ctx.phase}/leaf"):
                pass
        return ctx


class BrokenStep(PipelineStep):
    def run(self, ctx):
        raise InputError("bad window")


@pytest.fixture
def captured():
    lines = []
    sink_id = logger.add(lambda msg: lines.append(str(msg)))
    yield lines
    logger.remove(sink_id)


def test_timeline_is_per_phase(tmp_path, captured):
    inst = Instrumentation()
    pipeline = PhasePipeline(steps=[LeafStep(inst)], run_dir=tmp_path, run_id="r", inst=inst)

    pipeline.run("train", ["w1"])
    assert inst.timeline == {}

    captured.clear()
    pipeline.run("forward", ["w2"])

    report = [line for line in captured if "[Timeline]" in line]
    assert any("forward/leaf" in line for line in report)
    assert not any("train/leaf" in line for line in report)


def test_empty_inputs_is_phase_error(tmp_path):
    pipeline = PhasePipeline(steps=[LeafStep()], run_dir=tmp_path, run_id="r")

    with pytest.raises(PhaseError, match=r"\[validate\] no input files"):
        pipeline.run("validate", [])


def test_step_error_is_tagged_with_phase_and_step(tmp_path):
    pipeline = PhasePipeline(steps=[BrokenStep()], run_dir=tmp_path, run_id="r")

    with pytest.raises(PhaseError) as exc:
        pipeline.run("train", ["w1"])

    assert exc.value.phase == "train"
    assert str(exc.value) == "[train] BrokenStep: bad window"
    assert isinstance(exc.value.__cause__, InputError)
