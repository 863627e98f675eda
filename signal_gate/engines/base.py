#!filepath: signal_gate/engines/base.py
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Generic, TypeVar, Iterable


InEvent = TypeVar("InEvent")
OutEvent = TypeVar("OutEvent")


class BaseEngine(ABC, Generic[InEvent, OutEvent]):
    """
    Engine 抽象基类（Atomic Engine Layer）：

    - 不做任何 I/O（不读写 parquet / 文件 / socket）
    - 专注“输入事件 → 输出事件”的纯逻辑
    - 可被 Dispatcher worker / 单线程路径复用
    """

    @abstractmethod
    def process(self, event: InEvent) -> OutEvent:
        """
        处理单个事件（最小粒度单位）。
        """
        raise NotImplementedError

    def process_stream(self, events: Iterable[InEvent]) -> Iterable[OutEvent]:
        for ev in events:
            yield self.process(ev)
