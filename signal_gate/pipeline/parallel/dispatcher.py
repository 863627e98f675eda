# signal_gate/pipeline/parallel/dispatcher.py
from __future__ import annotations

import os
from concurrent.futures import ProcessPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Sequence

from signal_gate.engines.labels.execution_reality_label_engine import (
    CandidateEvent,
    ExecutionRealityLabelEngine,
    Label,
    validate_batch,
)
from signal_gate.engines.tick_index import TickIndex
from signal_gate.utils.errors import PartitionFailed
from signal_gate.utils.logger import logs


@dataclass(frozen=True)
class PartitionFailure:
    partition_id: int
    size: int
    error: str


@dataclass
class DispatchResult:
    """
    labels    : 成功 partition 的 label，按原始输入顺序
    succeeded : 成功的 partition id
    failed    : 失败 partition 的结构化错误
    """

    labels: list[Label] = field(default_factory=list)
    succeeded: list[int] = field(default_factory=list)
    failed: list[PartitionFailure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed

    def raise_for_failures(self) -> None:
        if self.failed:
            raise PartitionFailed(self.failed)


# ----------------------------------------------------------------------
# worker side（进程级只读上下文）
# ----------------------------------------------------------------------
_WORKER_ENGINE: ExecutionRealityLabelEngine | None = None


def _init_worker(index: TickIndex, notional_usd: float, taker_bps: float) -> None:
    global _WORKER_ENGINE
    _WORKER_ENGINE = ExecutionRealityLabelEngine(
        index=index,
        notional_usd=notional_usd,
        taker_bps=taker_bps,
    )


def _label_partition(partition_id: int, jobs: list[CandidateEvent]) -> tuple[int, list[Label]]:
    if _WORKER_ENGINE is None:
        raise RuntimeError("worker engine not initialized")
    return partition_id, _WORKER_ENGINE.execute(jobs)


class LabelDispatcher:
    """
    LabelDispatcher

    - 固定大小的 worker 进程池
    - TickIndex + notional/taker 只在 worker 启动时下发一次（只读）
    - 输入按连续 partition 切分，每个 worker 一个
    - 结果按 partition 顺序拼回 → 与完成顺序无关
    - 单个 partition 抛错 → PartitionFailure，不影响兄弟 partition
    """

    def __init__(
            self,
            *,
            notional_usd: float,
            taker_bps: float,
            max_workers: int | None = None,
    ):
        self.notional_usd = float(notional_usd)
        self.taker_bps = float(taker_bps)
        self.max_workers = max_workers

    def run(self, index: TickIndex, events: Sequence[CandidateEvent]) -> DispatchResult:
        validate_batch(events)
        events = list(events)
        if not events:
            logs.info("[Dispatcher] no jobs to label")
            return DispatchResult()

        workers = self._resolve_workers(events, self.max_workers)
        partitions = self._partition(events, workers)

        logs.info(
            f"[Dispatcher] start jobs={len(events)} "
            f"partitions={len(partitions)} workers={workers}"
        )

        if workers == 1:
            done, failed = self._run_sequential(index, partitions)
        else:
            done, failed = self._run_parallel(index, partitions, workers)

        result = self._reassemble(done, failed)
        if result.failed:
            logs.error(
                f"[Dispatcher] {len(result.failed)}/{len(partitions)} partition(s) failed: "
                f"{[f.partition_id for f in result.failed]}"
            )
        return result

    # ---------------- internal ----------------

    @staticmethod
    def _resolve_workers(items: list, max_workers: int | None) -> int:
        cpu = os.cpu_count() or 1
        if max_workers is None:
            return max(1, min(cpu, len(items)))
        return max(1, min(max_workers, len(items)))

    @staticmethod
    def _partition(events: list[CandidateEvent], n: int) -> list[list[CandidateEvent]]:
        """连续切分为 n 份，前 len % n 份多一个"""
        size, extra = divmod(len(events), n)
        out = []
        start = 0
        for i in range(n):
            end = start + size + (1 if i < extra else 0)
            out.append(events[start:end])
            start = end
        return out

    @staticmethod
    def _reassemble(
            done: dict[int, list[Label]],
            failed: list[PartitionFailure],
    ) -> DispatchResult:
        labels: list[Label] = []
        for pid in sorted(done):
            labels.extend(done[pid])
        return DispatchResult(
            labels=labels,
            succeeded=sorted(done),
            failed=sorted(failed, key=lambda f: f.partition_id),
        )

    def _run_sequential(self, index: TickIndex, partitions):
        engine = ExecutionRealityLabelEngine(
            index=index,
            notional_usd=self.notional_usd,
            taker_bps=self.taker_bps,
        )
        done: dict[int, list[Label]] = {}
        failed: list[PartitionFailure] = []
        for pid, jobs in enumerate(partitions):
            try:
                done[pid] = engine.execute(jobs)
            except Exception as e:
                failed.append(PartitionFailure(pid, len(jobs), f"{type(e).__name__}: {e}"))
        return done, failed

    def _run_parallel(self, index: TickIndex, partitions, workers: int):
        logs.info(f"[Dispatcher] run parallel | workers={workers}")

        done: dict[int, list[Label]] = {}
        failed: list[PartitionFailure] = []

        with ProcessPoolExecutor(
                max_workers=workers,
                initializer=_init_worker,
                initargs=(index, self.notional_usd, self.taker_bps),
        ) as pool:
            futures = {
                pool.submit(_label_partition, pid, jobs): (pid, len(jobs))
                for pid, jobs in enumerate(partitions)
            }
            for fut in as_completed(futures):
                pid, size = futures[fut]
                try:
                    _, labels = fut.result()
                except Exception as e:
                    failed.append(PartitionFailure(pid, size, f"{type(e).__name__}: {e}"))
                    continue
                done[pid] = labels

        return done, failed
