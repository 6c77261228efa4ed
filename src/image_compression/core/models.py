"""核心数据模型定义。"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Union


@dataclass(frozen=True, slots=True)
class ImageFile:
    """扫描阶段得到的源图片信息，以 full_path 作为身份标识。"""

    name: str
    full_path: Path
    extension: str
    relative_path: Path


@dataclass(slots=True)
class MappingEntry:
    """临时文件与原始文件之间的对应关系。"""

    original_path: Path
    original_name: str


@dataclass(slots=True)
class StagedFile:
    """已复制到临时目录、使用安全文件名的副本。"""

    original_name: str
    original_path: Path
    sanitized_name: str
    temp_path: Path
    extension: str


@dataclass(frozen=True, slots=True)
class ConversionDescriptor:
    """编码器对单个输入产出的描述。"""

    source_path: Path
    destination_path: Path


@dataclass(slots=True)
class ConversionSuccess:
    """单个文件压缩成功。"""

    original_name: str
    compressed_name: str
    output_path: Optional[Path] = None
    sanitized: bool = False

    @property
    def success(self) -> bool:
        return True


@dataclass(slots=True)
class ConversionFailure:
    """单个文件压缩失败。"""

    original_name: str
    error_kind: str
    message: str

    @property
    def success(self) -> bool:
        return False


ProcessingResult = Union[ConversionSuccess, ConversionFailure]


@dataclass(slots=True)
class SizeRecord:
    """单个文件的字节数记录。"""

    name: str
    path: Optional[Path]
    byte_size: int
    error: Optional[str] = None
    original_name: Optional[str] = None


@dataclass(slots=True)
class SizeSnapshot:
    """某一时刻的文件大小汇总。"""

    files: list[SizeRecord] = field(default_factory=list)
    total_size: int = 0
    total_files: int = 0
    measured_files: int = 0


@dataclass(frozen=True, slots=True)
class CompressionStats:
    """压缩前后的统计结果。"""

    input_size: int
    output_size: int
    input_files: int
    output_files: int

    @property
    def savings(self) -> int:
        return self.input_size - self.output_size

    @property
    def ratio(self) -> float:
        if self.input_size <= 0:
            return 0.0
        return self.savings / self.input_size

    @property
    def ratio_percent(self) -> float:
        return self.ratio * 100

    @property
    def failed_files(self) -> int:
        return self.input_files - self.output_files


@dataclass(frozen=True, slots=True)
class FormattedStats:
    """面向界面展示的统计字符串。"""

    original_size: str
    compressed_size: str
    space_saved: str
    compression_percent: str
    files_processed: str
    summary: str


@dataclass(frozen=True, slots=True)
class ComparisonRow:
    """逐文件的压缩前后对比。"""

    filename: str
    original_size: int
    compressed_size: int
    savings: int
    ratio: float
    success: bool
    error: Optional[str] = None


@dataclass(slots=True)
class RunOutcome:
    """一次压缩任务返回给调用方的结构化结果。"""

    status: str  # completed | cancelled | failed
    message: str
    processed_files: int = 0
    total_files: int = 0
    output_path: Optional[Path] = None
    results: list[ProcessingResult] = field(default_factory=list)
    stats: Optional[CompressionStats] = None
    formatted_stats: Optional[FormattedStats] = None
    comparison: list[ComparisonRow] = field(default_factory=list)
    error: Optional[Exception] = None

    @property
    def success(self) -> bool:
        return self.status == "completed"

    @property
    def cancelled(self) -> bool:
        return self.status == "cancelled"

    def failures(self) -> list[ConversionFailure]:
        """返回失败的文件记录。"""

        return [result for result in self.results if not result.success]
