"""批量大小策略。"""

from __future__ import annotations

import logging
from typing import Iterator, Optional, Sequence, TypeVar

import psutil

from image_compression.core.config import STRATEGY_SEQUENTIAL, CompressionConfig

LOGGER = logging.getLogger(__name__)

# 单个文件解码与编码期间的内存预算
PER_FILE_MEMORY_BUDGET = 32 * 1024 * 1024
MEMORY_FRACTION = 0.25

T = TypeVar("T")


def estimate_batch_size(
    available_bytes: Optional[float],
    minimum: int = 10,
    maximum: int = 100,
) -> int:
    """根据可用内存估算每批文件数，结果总在 [minimum, maximum] 内。"""

    if available_bytes is None or available_bytes != available_bytes or available_bytes <= 0:
        return minimum
    if available_bytes == float("inf"):
        return maximum
    estimate = int(available_bytes * MEMORY_FRACTION // PER_FILE_MEMORY_BUDGET)
    return max(minimum, min(maximum, estimate))


def available_memory() -> int:
    return psutil.virtual_memory().available


def resolve_batch_size(config: CompressionConfig) -> int:
    """顺序策略固定为 1；批量策略优先使用显式配置，否则按可用内存估算。"""

    if config.strategy == STRATEGY_SEQUENTIAL:
        return 1
    if config.batch_size is not None:
        return config.batch_size

    size = estimate_batch_size(available_memory(), config.min_batch_size, config.max_batch_size)
    LOGGER.info("按可用内存估算批量大小: %d", size)
    return size


def chunked(items: Sequence[T], size: int) -> Iterator[Sequence[T]]:
    size = max(size, 1)
    for start in range(0, len(items), size):
        yield items[start : start + size]
