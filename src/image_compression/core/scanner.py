"""文件扫描与筛选逻辑。"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Iterator, Optional

from image_compression.core.cancellation import RunContext
from image_compression.core.config import SUPPORTED_EXTENSIONS
from image_compression.core.exceptions import ScanCancelledError, ScanError
from image_compression.core.models import ImageFile

LOGGER = logging.getLogger(__name__)


def _check_cancelled(context: Optional[RunContext]) -> None:
    if context is not None and context.cancelled:
        raise ScanCancelledError("Folder scanning was cancelled by user")


def _make_image_file(path: Path, root: Path) -> ImageFile:
    try:
        relative = path.relative_to(root)
    except ValueError:
        relative = Path(path.name)
    return ImageFile(
        name=path.name,
        full_path=path,
        extension=path.suffix.lower(),
        relative_path=relative,
    )


def _walk(directory: Path, root: Path, context: Optional[RunContext]) -> Iterator[ImageFile]:
    """逐目录遍历；每个目录与每个条目访问前都检查取消标记。"""

    _check_cancelled(context)
    try:
        with os.scandir(directory) as handle:
            entries = sorted(handle, key=lambda entry: entry.name)
    except OSError as exc:
        raise ScanError(f"Failed to scan folder: {directory}: {exc}") from exc

    for entry in entries:
        _check_cancelled(context)
        try:
            is_dir = entry.is_dir(follow_symlinks=False)
            is_file = not is_dir and entry.is_file()
        except OSError as exc:
            LOGGER.debug("无法读取条目 %s: %s", entry.path, exc)
            continue

        if is_dir:
            yield from _walk(Path(entry.path), root, context)
        elif is_file and os.path.splitext(entry.name)[1].lower() in SUPPORTED_EXTENSIONS:
            yield _make_image_file(Path(entry.path), root)


def iter_images(root: Path, context: Optional[RunContext] = None) -> Iterator[ImageFile]:
    """按需产出 root 下的受支持图片；root 为单个文件时只产出该文件。"""

    _check_cancelled(context)
    if not root.exists():
        raise ScanError(f"Selected folder does not exist: {root}")

    if root.is_file():
        if root.suffix.lower() in SUPPORTED_EXTENSIONS:
            yield _make_image_file(root, root.parent)
        return

    yield from _walk(root, root, context)


def scan_images(root: Path, context: Optional[RunContext] = None) -> list[ImageFile]:
    """递归扫描输入路径，返回匹配的图片列表。"""

    LOGGER.info("开始扫描输入路径: %s", root)
    collected = list(iter_images(root, context))
    LOGGER.info("发现 %d 个图片文件", len(collected))
    return collected
