"""进度更新的数据模型与剩余时间估算。"""

from __future__ import annotations

import math
import queue
from dataclasses import dataclass
from typing import Optional

SMOOTHING_PREVIOUS = 0.7
SMOOTHING_LATEST = 0.3


@dataclass(frozen=True, slots=True)
class ProgressUpdate:
    """批处理过程中的进度信息。"""

    current: int
    total: int
    percent: float
    message: str = ""

    @classmethod
    def for_file(cls, current: int, total: int, message: str) -> "ProgressUpdate":
        percent = (current / total) * 100 if total else 0.0
        return cls(current=current, total=total, percent=percent, message=message)


class EtaEstimator:
    """基于加权滚动平均的单文件耗时估算。"""

    def __init__(self) -> None:
        self.average: Optional[float] = None
        self.samples = 0

    def record(self, duration: float) -> float:
        """记录一个文件的耗时（秒），返回新的平均值。"""

        if self.average is None:
            self.average = duration
        else:
            self.average = self.average * SMOOTHING_PREVIOUS + duration * SMOOTHING_LATEST
        self.samples += 1
        return self.average

    def remaining_seconds(self, remaining_files: int) -> Optional[float]:
        if self.average is None:
            return None
        return self.average * max(remaining_files, 0)

    def describe(self, remaining_files: int) -> str:
        """生成附加在文件名后的剩余时间提示。"""

        estimate = self.remaining_seconds(remaining_files)
        if estimate is None:
            return " • calculating time..."
        if remaining_files <= 0:
            return " • finishing..."

        seconds = math.ceil(estimate)
        if seconds > 60:
            return f" • ~{math.ceil(seconds / 60)}min remaining"
        if seconds > 5:
            return f" • ~{seconds}s remaining"
        return " • almost done..."


class ProgressQueue:
    """有界的进度缓冲区：队列满时丢弃最旧的一条，生产者永不阻塞。"""

    def __init__(self, maxsize: int = 64) -> None:
        self._queue: queue.Queue[ProgressUpdate] = queue.Queue(maxsize=maxsize)
        self.dropped = 0

    def put(self, update: ProgressUpdate) -> None:
        while True:
            try:
                self._queue.put_nowait(update)
                return
            except queue.Full:
                try:
                    self._queue.get_nowait()
                    self.dropped += 1
                except queue.Empty:
                    pass

    __call__ = put

    def drain(self) -> list[ProgressUpdate]:
        """取出当前缓冲的全部更新。"""

        updates: list[ProgressUpdate] = []
        try:
            while True:
                updates.append(self._queue.get_nowait())
        except queue.Empty:
            pass
        return updates
