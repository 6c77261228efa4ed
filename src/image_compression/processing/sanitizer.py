"""文件名清洗：为编码器无法处理的文件名生成安全副本，并在处理后恢复原名。"""

from __future__ import annotations

import logging
import os
import re
import secrets
import shutil
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, Optional, Sequence, Union

from image_compression.core.config import OUTPUT_EXTENSION
from image_compression.core.exceptions import StagingError
from image_compression.core.models import (
    ConversionDescriptor,
    ConversionFailure,
    ConversionSuccess,
    ImageFile,
    MappingEntry,
    ProcessingResult,
    StagedFile,
)
from image_compression.core.output_manager import timestamp_suffix

LOGGER = logging.getLogger(__name__)

PROBLEMATIC_CHARS_RE = re.compile(r"[^\w\s\-_.()\[\]]", re.ASCII)
WHITESPACE_RE = re.compile(r"\s+", re.ASCII)
MAX_BASE_LENGTH = 100
FALLBACK_BASE = "sanitized_file"
STAGING_PREFIX = "temp_imagemin_"


def needs_sanitization(name: str) -> bool:
    """文件名中是否包含安全字符集以外的字符。"""

    return PROBLEMATIC_CHARS_RE.search(name) is not None


def sanitize_file_name(name: str) -> str:
    """生成安全文件名，扩展名原样保留。"""

    base, ext = os.path.splitext(name)
    sanitized = PROBLEMATIC_CHARS_RE.sub("_", base)
    sanitized = WHITESPACE_RE.sub("_", sanitized)
    sanitized = sanitized[:MAX_BASE_LENGTH].strip("_")
    if not sanitized:
        sanitized = FALLBACK_BASE
    return sanitized + ext


def normalize_path_key(path: Union[str, Path], pathmod=os.path) -> str:
    """按宿主文件系统的规则规范化路径，用作映射表的键。"""

    return pathmod.normcase(pathmod.normpath(os.fspath(path)))


def make_staging_dir(root: Optional[Path] = None) -> Path:
    """创建一个全新的临时目录；无法创建时抛出 StagingError。"""

    prefix = f"{STAGING_PREFIX}{timestamp_suffix(datetime.now(timezone.utc))}_{secrets.token_hex(3)}_"
    try:
        if root is not None:
            root.mkdir(parents=True, exist_ok=True)
        return Path(tempfile.mkdtemp(prefix=prefix, dir=root))
    except OSError as exc:
        raise StagingError(f"无法创建临时目录于 {root}: {exc}") from exc


class FileNameSanitizer:
    """持有临时文件映射表；每次任务使用独立实例。"""

    def __init__(self) -> None:
        self.temp_file_map: dict[str, MappingEntry] = {}

    def stage_files(
        self, files: Sequence[ImageFile], staging_dir: Path
    ) -> tuple[list[StagedFile], list[ConversionFailure]]:
        """复制文件到临时目录并使用安全文件名；单个文件失败不影响其余文件。

        临时目录本身无法创建时抛出 StagingError。
        """

        try:
            staging_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise StagingError(f"无法创建临时目录 {staging_dir}: {exc}") from exc
        staged: list[StagedFile] = []
        failures: list[ConversionFailure] = []

        for image in files:
            sanitized_name = sanitize_file_name(image.name)
            temp_path = staging_dir / sanitized_name
            try:
                _copy_file(image.full_path, temp_path)
            except StagingError as exc:
                LOGGER.error("复制到临时目录失败 %s: %s", image.name, exc)
                failures.append(
                    ConversionFailure(
                        original_name=image.name,
                        error_kind=StagingError.__name__,
                        message=str(exc),
                    )
                )
                continue

            self.temp_file_map[normalize_path_key(temp_path)] = MappingEntry(
                original_path=image.full_path,
                original_name=image.name,
            )
            staged.append(
                StagedFile(
                    original_name=image.name,
                    original_path=image.full_path,
                    sanitized_name=sanitized_name,
                    temp_path=temp_path,
                    extension=image.extension,
                )
            )
            LOGGER.debug("临时文件: %s -> %s", image.name, sanitized_name)

        return staged, failures

    def lookup(self, source_path: Union[str, Path]) -> Optional[MappingEntry]:
        return self.temp_file_map.get(normalize_path_key(source_path))

    def restore_names(
        self,
        processed: Iterable[ConversionDescriptor],
        output_dir: Path,
        output_extension: str = OUTPUT_EXTENSION,
    ) -> list[ProcessingResult]:
        """将编码产物重命名为原文件名（替换扩展名）。"""

        restored: list[ProcessingResult] = []
        for descriptor in processed:
            entry = self.lookup(descriptor.source_path)
            if entry is None:
                LOGGER.error("找不到临时文件映射: %s", descriptor.source_path)
                restored.append(
                    ConversionFailure(
                        original_name=Path(descriptor.source_path).name,
                        error_kind=StagingError.__name__,
                        message="No mapping found",
                    )
                )
                continue

            final_name = f"{Path(entry.original_name).stem}{output_extension}"
            final_path = output_dir / final_name
            try:
                shutil.move(os.fspath(descriptor.destination_path), os.fspath(final_path))
            except OSError as exc:
                LOGGER.error("恢复文件名失败 %s: %s", descriptor.destination_path, exc)
                restored.append(
                    ConversionFailure(
                        original_name=entry.original_name,
                        error_kind=StagingError.__name__,
                        message=str(exc),
                    )
                )
                continue

            restored.append(
                ConversionSuccess(
                    original_name=entry.original_name,
                    compressed_name=final_name,
                    output_path=final_path,
                    sanitized=True,
                )
            )
        return restored

    def cleanup(self, staging_dir: Path) -> None:
        """删除临时目录并清空映射表，失败只记录日志。"""

        try:
            shutil.rmtree(staging_dir)
        except FileNotFoundError:
            pass
        except OSError as exc:
            LOGGER.warning("清理临时目录失败 %s: %s", staging_dir, exc)
        else:
            LOGGER.debug("已清理临时目录: %s", staging_dir)
        self.temp_file_map.clear()


def _copy_file(source: Path, destination: Path) -> None:
    try:
        shutil.copyfile(source, destination)
    except OSError as exc:
        raise StagingError(f"无法复制 {source} -> {destination}: {exc}") from exc
