"""压缩前后的文件大小统计。"""

from __future__ import annotations

import logging
import math
from pathlib import Path
from typing import Iterable, Optional, Sequence

from image_compression.core.config import OUTPUT_EXTENSION
from image_compression.core.exceptions import AnalysisError
from image_compression.core.models import (
    CompressionStats,
    ComparisonRow,
    FormattedStats,
    ImageFile,
    ProcessingResult,
    SizeRecord,
    SizeSnapshot,
)

LOGGER = logging.getLogger(__name__)

_UNITS = ("B", "KB", "MB", "GB")


def format_bytes(value: int) -> str:
    """以 1024 为进制格式化字节数，最多两位小数，保留负号。"""

    if value == 0:
        return "0 B"

    magnitude = abs(value)
    index = min(int(math.floor(math.log(magnitude, 1024))), len(_UNITS) - 1)
    # math.log 可能在整幂次处出现浮点误差
    if index < len(_UNITS) - 1 and magnitude >= 1024 ** (index + 1):
        index += 1
    elif index > 0 and magnitude < 1024**index:
        index -= 1
    scaled = magnitude / (1024**index)
    text = f"{scaled:.2f}".rstrip("0").rstrip(".")
    sign = "-" if value < 0 else ""
    return f"{sign}{text} {_UNITS[index]}"


def compute_stats(
    input_snapshot: Optional[SizeSnapshot],
    output_snapshot: Optional[SizeSnapshot],
) -> CompressionStats:
    """由两个快照计算统计数据。"""

    if input_snapshot is None or output_snapshot is None:
        raise AnalysisError("Must measure both input and output sizes first")

    return CompressionStats(
        input_size=input_snapshot.total_size,
        output_size=output_snapshot.total_size,
        input_files=input_snapshot.total_files,
        output_files=output_snapshot.measured_files,
    )


def format_stats(stats: CompressionStats) -> FormattedStats:
    """转换为界面展示用的字符串。"""

    percent = f"{stats.ratio_percent:.1f}%"
    saved = format_bytes(stats.savings)
    return FormattedStats(
        original_size=format_bytes(stats.input_size),
        compressed_size=format_bytes(stats.output_size),
        space_saved=saved,
        compression_percent=percent,
        files_processed=f"{stats.output_files}/{stats.input_files}",
        summary=f"Saved {saved} ({percent}) from {stats.input_files} files",
    )


def resolve_output_path(
    result: ProcessingResult,
    output_dir: Path,
    output_extension: str = OUTPUT_EXTENSION,
) -> Path:
    """定位成功结果的输出文件：显式路径 > 记录的文件名 > 按原文件名重建。"""

    output_path = getattr(result, "output_path", None)
    if output_path is not None:
        return Path(output_path)
    compressed_name = getattr(result, "compressed_name", None)
    if compressed_name:
        return output_dir / compressed_name
    return output_dir / f"{Path(result.original_name).stem}{output_extension}"


class SizeAnalyzer:
    """记录输入与输出两个快照，并据此计算压缩统计。"""

    def __init__(self, output_extension: str = OUTPUT_EXTENSION) -> None:
        self.output_extension = output_extension
        self.input_snapshot: Optional[SizeSnapshot] = None
        self.output_snapshot: Optional[SizeSnapshot] = None

    def measure_inputs(self, files: Sequence[ImageFile]) -> SizeSnapshot:
        snapshot = SizeSnapshot(total_files=len(files))
        for image in files:
            try:
                size = image.full_path.stat().st_size
            except OSError as exc:
                LOGGER.error("无法读取文件大小 %s: %s", image.name, exc)
                snapshot.files.append(
                    SizeRecord(name=image.name, path=image.full_path, byte_size=0, error=str(exc))
                )
                continue
            snapshot.files.append(SizeRecord(name=image.name, path=image.full_path, byte_size=size))
            snapshot.total_size += size
            snapshot.measured_files += 1
            LOGGER.debug("输入: %s - %s", image.name, format_bytes(size))

        LOGGER.info("输入总大小: %s", format_bytes(snapshot.total_size))
        self.input_snapshot = snapshot
        return snapshot

    def measure_outputs(self, output_dir: Path, results: Iterable[ProcessingResult]) -> SizeSnapshot:
        snapshot = SizeSnapshot()
        for result in results:
            if not result.success:
                snapshot.files.append(
                    SizeRecord(
                        name=result.original_name,
                        path=None,
                        byte_size=0,
                        error=result.message or "Processing failed",
                        original_name=result.original_name,
                    )
                )
                continue

            path = resolve_output_path(result, output_dir, self.output_extension)
            try:
                size = path.stat().st_size
            except OSError as exc:
                LOGGER.error("无法读取输出文件大小 %s: %s", result.original_name, exc)
                snapshot.files.append(
                    SizeRecord(
                        name=result.original_name,
                        path=path,
                        byte_size=0,
                        error=str(exc),
                        original_name=result.original_name,
                    )
                )
                continue

            snapshot.files.append(
                SizeRecord(name=path.name, path=path, byte_size=size, original_name=result.original_name)
            )
            snapshot.total_size += size
            snapshot.measured_files += 1

        snapshot.total_files = len(snapshot.files)
        LOGGER.info(
            "输出总大小: %s，成功 %d/%d",
            format_bytes(snapshot.total_size),
            snapshot.measured_files,
            snapshot.total_files,
        )
        self.output_snapshot = snapshot
        return snapshot

    def compute_stats(self) -> CompressionStats:
        stats = compute_stats(self.input_snapshot, self.output_snapshot)
        LOGGER.info(
            "节省 %s (%.1f%%)，处理 %d/%d 个文件",
            format_bytes(stats.savings),
            stats.ratio_percent,
            stats.output_files,
            stats.input_files,
        )
        return stats

    def detailed_comparison(self) -> list[ComparisonRow]:
        """按原文件名配对输入与输出，未匹配或出错的条目记为失败。"""

        if self.input_snapshot is None or self.output_snapshot is None:
            raise AnalysisError("Must measure both input and output sizes first")

        # 以原文件名配对：不同子目录下的同名输入共享同一个输出文件，因此对应同一条输出记录
        outputs = {
            record.original_name: record
            for record in self.output_snapshot.files
            if record.original_name is not None
        }

        rows: list[ComparisonRow] = []
        for record in self.input_snapshot.files:
            output = outputs.get(record.name)
            if output is None or output.error is not None or record.error is not None:
                error = (output.error if output else None) or record.error or "Processing failed"
                rows.append(
                    ComparisonRow(
                        filename=record.name,
                        original_size=record.byte_size,
                        compressed_size=0,
                        savings=0,
                        ratio=0.0,
                        success=False,
                        error=error,
                    )
                )
                continue

            savings = record.byte_size - output.byte_size
            ratio = savings / record.byte_size if record.byte_size > 0 else 0.0
            rows.append(
                ComparisonRow(
                    filename=record.name,
                    original_size=record.byte_size,
                    compressed_size=output.byte_size,
                    savings=savings,
                    ratio=ratio,
                    success=True,
                )
            )
        return rows

    def reset(self) -> None:
        self.input_snapshot = None
        self.output_snapshot = None
