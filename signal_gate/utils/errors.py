#!filepath: signal_gate/utils/errors.py
from __future__ import annotations


class SignalGateError(RuntimeError):
    """Root of every error raised by signal_gate."""


# ----------------------------------------------------------------------
# input errors
# ----------------------------------------------------------------------
class InputError(SignalGateError):
    """
    Raised for missing / empty / malformed input (files, headers, series).
    Should NOT print traceback.
    """


class MalformedSeries(InputError):
    """Timestamps are not non-decreasing, or column lengths disagree."""


# ----------------------------------------------------------------------
# computation errors
# ----------------------------------------------------------------------
class InvalidBatch(SignalGateError):
    """A labeling batch is not a sequence of CandidateEvent records."""


class PartitionFailed(SignalGateError):
    """One or more dispatcher partitions raised inside the worker."""

    def __init__(self, failures):
        self.failures = list(failures)
        ids = ", ".join(str(f.partition_id) for f in self.failures)
        super().__init__(f"{len(self.failures)} partition(s) failed: [{ids}]")


# ----------------------------------------------------------------------
# phase / protocol errors
# ----------------------------------------------------------------------
class PhaseError(SignalGateError):
    """A phase aborted on a structural error (input, merge, worker)."""

    def __init__(self, phase: str, reason: str):
        self.phase = phase
        self.reason = reason
        super().__init__(f"[{phase}] {reason}")


class ValidationFailure(SignalGateError):
    """
    Terminal decision failure of the multi-phase protocol.

    kind  : 稳定的失败类别名（用于区分 / 断言）
    phase : 触发失败的 phase
    """

    kind: str = "ValidationFailure"
    phase: str = ""
    default_message: str = ""

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(f"[{self.phase}] {self.kind}: {self.message}")


class NoTrainCandidates(ValidationFailure):
    kind = "NoTrainCandidates"
    phase = "train"
    default_message = "no candidates passed the strict requirements in train phase"


class AllCandidatesRejectedInValidate(ValidationFailure):
    kind = "AllCandidatesRejectedInValidate"
    phase = "validate"
    default_message = "all train candidates broke down (rejected) in validate phase"


class AllCandidatesDegradedInForward(ValidationFailure):
    kind = "AllCandidatesDegradedInForward"
    phase = "forward"
    default_message = "all candidates fell off in forward testing (>= 30% degradation or core criteria failure)"
