"""单个文件或单批文件的转换单元。"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Iterable, Optional, Sequence

from image_compression.core.cancellation import RunContext
from image_compression.core.config import OUTPUT_EXTENSION
from image_compression.core.exceptions import ConversionError, ProcessingAborted, StagingError
from image_compression.core.models import (
    ConversionDescriptor,
    ConversionFailure,
    ConversionSuccess,
    ImageFile,
    ProcessingResult,
)
from image_compression.processing.codec import Codec
from image_compression.processing.sanitizer import (
    FileNameSanitizer,
    make_staging_dir,
    needs_sanitization,
    normalize_path_key,
)

LOGGER = logging.getLogger(__name__)


class AttemptState(Enum):
    CONVERTED = "converted"
    REJECTED = "rejected"  # 编码器静默跳过，可改用安全文件名重试
    FAILED = "failed"


@dataclass(slots=True)
class FileAttempt:
    """一次直接编码尝试的结果。"""

    image: ImageFile
    state: AttemptState
    descriptor: Optional[ConversionDescriptor] = None
    message: Optional[str] = None


def invoke_codec(
    codec: Codec,
    sources: Sequence[Path],
    output_dir: Path,
    context: RunContext,
) -> list[ConversionDescriptor]:
    """调用编码器；调用前后检查取消标记，取消时删除本次产出。"""

    context.raise_if_cancelled("before encoding")
    try:
        descriptors = codec.convert(list(sources), output_dir)
    except Exception as exc:  # noqa: BLE001
        if context.cancelled:
            raise ProcessingAborted("Processing cancelled during encoding") from exc
        raise

    if context.cancelled:
        discard_outputs(descriptors)
        context.raise_if_cancelled("after encoding")
    return descriptors


def discard_outputs(descriptors: Iterable[ConversionDescriptor]) -> None:
    for descriptor in descriptors:
        _unlink(Path(descriptor.destination_path))


def _staging_failure(image: ImageFile, exc: StagingError) -> ConversionFailure:
    LOGGER.error("准备临时目录失败 %s: %s", image.name, exc)
    return ConversionFailure(image.name, StagingError.__name__, str(exc))


def _unlink(path: Path) -> None:
    try:
        path.unlink()
    except FileNotFoundError:
        pass
    except OSError as exc:
        LOGGER.warning("删除输出文件失败 %s: %s", path, exc)


class FileConverter:
    """执行直接编码、批量编码以及文件名清洗回退。"""

    def __init__(
        self,
        codec: Codec,
        output_dir: Path,
        context: RunContext,
        sanitizer: FileNameSanitizer,
        *,
        staging_root: Optional[Path] = None,
        output_extension: str = OUTPUT_EXTENSION,
    ) -> None:
        self.codec = codec
        self.output_dir = output_dir
        self.context = context
        self.sanitizer = sanitizer
        self.staging_root = staging_root if staging_root is not None else output_dir.parent
        self.output_extension = output_extension

    def attempt_direct(self, image: ImageFile) -> FileAttempt:
        try:
            descriptors = invoke_codec(self.codec, [image.full_path], self.output_dir, self.context)
        except ProcessingAborted:
            raise
        except Exception as exc:  # noqa: BLE001
            LOGGER.debug("直接编码失败 %s: %s", image.name, exc)
            return FileAttempt(image=image, state=AttemptState.FAILED, message=str(exc))

        if not descriptors:
            return FileAttempt(image=image, state=AttemptState.REJECTED, message="Rejected by codec")
        return FileAttempt(image=image, state=AttemptState.CONVERTED, descriptor=descriptors[0])

    def attempt_batch(self, batch: Sequence[ImageFile]) -> list[FileAttempt]:
        """整批交给编码器；缺少输出的文件标记为 REJECTED。"""

        try:
            descriptors = invoke_codec(
                self.codec, [image.full_path for image in batch], self.output_dir, self.context
            )
        except ProcessingAborted:
            raise
        except Exception as exc:  # noqa: BLE001
            LOGGER.warning("批量编码失败，改为逐个处理: %s", exc)
            return [
                FileAttempt(image=image, state=AttemptState.REJECTED, message=str(exc))
                for image in batch
            ]

        produced = {normalize_path_key(d.source_path): d for d in descriptors}
        attempts: list[FileAttempt] = []
        for image in batch:
            descriptor = produced.get(normalize_path_key(image.full_path))
            if descriptor is None:
                attempts.append(FileAttempt(image=image, state=AttemptState.REJECTED))
            else:
                attempts.append(
                    FileAttempt(image=image, state=AttemptState.CONVERTED, descriptor=descriptor)
                )

        rejected = sum(1 for attempt in attempts if attempt.state is AttemptState.REJECTED)
        if rejected:
            LOGGER.info("批量编码输出 %d/%d，其余逐个处理", len(batch) - rejected, len(batch))
        return attempts

    def finalize(self, attempt: FileAttempt) -> ConversionSuccess:
        """把直接编码的输出改为 <原文件名>.<扩展名> 并提交。"""

        assert attempt.descriptor is not None
        expected = self.output_dir / f"{attempt.image.full_path.stem}{self.output_extension}"
        produced = Path(attempt.descriptor.destination_path)
        if produced != expected:
            produced.replace(expected)
        self._commit(expected)
        return ConversionSuccess(
            original_name=attempt.image.name,
            compressed_name=expected.name,
            output_path=expected,
        )

    def convert_file(self, image: ImageFile) -> ProcessingResult:
        """直接编码一个文件，被拒绝时使用安全文件名重试。"""

        attempt = self.attempt_direct(image)
        return self.resolve(attempt)

    def resolve(self, attempt: FileAttempt) -> ProcessingResult:
        image = attempt.image
        if attempt.state is AttemptState.CONVERTED:
            try:
                return self.finalize(attempt)
            except OSError as exc:
                return ConversionFailure(image.name, ConversionError.__name__, str(exc))

        if attempt.state is AttemptState.FAILED and not needs_sanitization(image.name):
            return ConversionFailure(
                original_name=image.name,
                error_kind=ConversionError.__name__,
                message=attempt.message or "Processing failed",
            )

        LOGGER.info("编码器未处理 %s，使用安全文件名重试", image.name)
        return self.convert_sanitized(image)

    def retry_individually(self, attempt: FileAttempt) -> ProcessingResult:
        """批量中被拒绝的文件先单独直接编码一次。"""

        if attempt.state is AttemptState.CONVERTED:
            return self.resolve(attempt)
        return self.convert_file(attempt.image)

    def convert_sanitized(self, image: ImageFile) -> ProcessingResult:
        try:
            staging_dir = make_staging_dir(self.staging_root)
        except StagingError as exc:
            return _staging_failure(image, exc)

        self.context.register_staging_dir(staging_dir)
        try:
            try:
                staged, failures = self.sanitizer.stage_files([image], staging_dir / "input")
                staged_output = staging_dir / "output"
                staged_output.mkdir()
            except StagingError as exc:
                return _staging_failure(image, exc)
            except OSError as exc:
                return _staging_failure(image, StagingError(f"无法创建临时输出目录: {exc}"))
            if failures:
                return failures[0]

            try:
                descriptors = invoke_codec(
                    self.codec, [staged[0].temp_path], staged_output, self.context
                )
            except ProcessingAborted:
                raise
            except Exception as exc:  # noqa: BLE001
                LOGGER.error("安全文件名重试失败 %s: %s", image.name, exc)
                return ConversionFailure(image.name, ConversionError.__name__, str(exc))

            if not descriptors:
                return ConversionFailure(
                    original_name=image.name,
                    error_kind=ConversionError.__name__,
                    message=f"Codec rejected {image.name} after sanitizing",
                )

            result = self.sanitizer.restore_names(
                descriptors[:1], self.output_dir, self.output_extension
            )[0]
            if result.success:
                self._commit(result.output_path)
            return result
        finally:
            self.sanitizer.cleanup(staging_dir)
            self.context.release_staging_dir(staging_dir)

    def _commit(self, path: Optional[Path]) -> None:
        if not self.context.commit_output():
            if path is not None:
                _unlink(path)
            raise ProcessingAborted("Processing cancelled after encoding")
