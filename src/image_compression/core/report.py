"""报告生成工具。"""

from __future__ import annotations

import csv
from pathlib import Path
from typing import Iterable

from image_compression.core.models import ComparisonRow
from image_compression.core.size_analyzer import format_bytes

HEADER = ["filename", "original_size", "compressed_size", "savings", "ratio", "success", "error"]


def write_csv_report(rows: Iterable[ComparisonRow], report_path: Path) -> Path:
    """将逐文件对比写入 CSV 报告。"""

    report_path.parent.mkdir(parents=True, exist_ok=True)
    with report_path.open("w", newline="", encoding="utf-8") as handle:
        writer = csv.writer(handle)
        writer.writerow(HEADER)
        for row in rows:
            writer.writerow(
                [
                    row.filename,
                    format_bytes(row.original_size),
                    format_bytes(row.compressed_size) if row.success else "Failed",
                    format_bytes(row.savings),
                    _format_ratio(row.ratio),
                    "yes" if row.success else "no",
                    row.error or "",
                ]
            )
    return report_path


def _format_ratio(value: float) -> str:
    return f"{value * 100:.1f}%"
