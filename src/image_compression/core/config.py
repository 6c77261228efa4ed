"""压缩任务的配置模型。"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from image_compression.core.exceptions import InvalidConfigurationError

SUPPORTED_EXTENSIONS = frozenset(
    {".jpg", ".jpeg", ".png", ".gif", ".svg", ".tiff", ".tif", ".bmp", ".webp"}
)
OUTPUT_EXTENSION = ".webp"

STRATEGY_SEQUENTIAL = "sequential"
STRATEGY_BATCHED = "batched"
STRATEGIES = (STRATEGY_SEQUENTIAL, STRATEGY_BATCHED)


@dataclass(slots=True)
class CompressionConfig:
    """单次压缩任务的配置集合。"""

    strategy: str = STRATEGY_SEQUENTIAL  # sequential | batched
    batch_size: Optional[int] = None
    min_batch_size: int = 10
    max_batch_size: int = 100
    quality: int = 75
    png_quality: int = 80
    method: int = 1
    staging_root: Optional[Path] = None
    output_extension: str = OUTPUT_EXTENSION

    def validate(self) -> None:
        """检查配置取值，不合法时抛出 InvalidConfigurationError。"""

        if self.strategy not in STRATEGIES:
            raise InvalidConfigurationError(f"未知的处理策略: {self.strategy}")
        if self.min_batch_size < 1 or self.max_batch_size < self.min_batch_size:
            raise InvalidConfigurationError(
                f"批量范围不合法: {self.min_batch_size}-{self.max_batch_size}"
            )
        if self.batch_size is not None and self.batch_size < 1:
            raise InvalidConfigurationError("批量大小必须大于 0")
        for value in (self.quality, self.png_quality):
            if not 1 <= value <= 100:
                raise InvalidConfigurationError(f"质量参数必须位于 1~100: {value}")
        if not 0 <= self.method <= 6:
            raise InvalidConfigurationError(f"WebP method 必须位于 0~6: {self.method}")
        if not self.output_extension.startswith("."):
            raise InvalidConfigurationError(f"输出扩展名必须以 . 开头: {self.output_extension}")


def describe_supported_extensions() -> str:
    """返回用于提示信息的扩展名列表，例如 "BMP, GIF, JPEG"。"""

    return ", ".join(sorted(ext.lstrip(".").upper() for ext in SUPPORTED_EXTENSIONS))
