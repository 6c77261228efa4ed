"""输出目录的命名、创建与存在性检查。"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from itertools import count
from pathlib import Path
from typing import Callable, Optional

from image_compression.core.exceptions import OutputFolderError

LOGGER = logging.getLogger(__name__)

SINGLE_FILE_OUTPUT_NAME = "compressed_images"
DIRECTORY_SUFFIX = "_compressed"

Clock = Callable[[], datetime]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def timestamp_suffix(moment: datetime) -> str:
    """ISO-8601 时间戳，去掉毫秒并把 : 与 . 替换为 -，例如 2024-05-01T08-30-00。"""

    iso = moment.astimezone(timezone.utc).replace(tzinfo=None).isoformat(timespec="seconds")
    return iso.replace(":", "-").replace(".", "-")


def derive_output_path(input_path: Path, clock: Optional[Clock] = None) -> Path:
    """计算输出目录路径；目标已存在时追加时间戳，仍冲突则继续追加序号。"""

    if input_path.is_dir():
        candidate = input_path.parent / f"{input_path.name}{DIRECTORY_SUFFIX}"
    else:
        candidate = input_path.parent / SINGLE_FILE_OUTPUT_NAME

    if not candidate.exists():
        return candidate

    stamped = candidate.with_name(f"{candidate.name}_{timestamp_suffix((clock or _utc_now)())}")
    if not stamped.exists():
        return stamped

    for idx in count(1):
        renamed = stamped.with_name(f"{stamped.name}_{idx}")
        if not renamed.exists():
            return renamed

    # 理论上不会执行到此处
    return stamped


def create_output_folder(input_path: Path, clock: Optional[Clock] = None) -> Path:
    """在输入路径旁边创建输出目录并返回其路径。"""

    output_path = derive_output_path(input_path, clock)
    try:
        output_path.mkdir(parents=True, exist_ok=False)
    except OSError as exc:
        raise OutputFolderError(f"无法创建输出目录: {output_path}: {exc}") from exc
    LOGGER.info("输出目录: %s", output_path)
    return output_path


def ensure_output_dir(output_path: Path) -> None:
    """确认输出目录仍然存在（可能已被外部删除）。"""

    if not output_path.is_dir():
        raise OutputFolderError(f"Output folder was removed: {output_path}")
