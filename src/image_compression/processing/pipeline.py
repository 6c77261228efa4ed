"""压缩流水线：扫描、统计、逐个/批量编码、回退、取消与清理。"""

from __future__ import annotations

import logging
import threading
import time
from enum import Enum
from pathlib import Path
from typing import Callable, Optional, Sequence

from image_compression.core.cancellation import RunContext
from image_compression.core.config import CompressionConfig, describe_supported_extensions
from image_compression.core.exceptions import (
    ImageCompressionError,
    NoImagesFoundError,
    ProcessingAborted,
)
from image_compression.core.models import ImageFile, ProcessingResult, RunOutcome
from image_compression.core.output_manager import Clock, create_output_folder, ensure_output_dir
from image_compression.core.progress import EtaEstimator, ProgressUpdate
from image_compression.core.scanner import scan_images
from image_compression.core.size_analyzer import SizeAnalyzer, format_stats
from image_compression.processing.batching import chunked, resolve_batch_size
from image_compression.processing.codec import Codec, PillowWebPCodec
from image_compression.processing.sanitizer import FileNameSanitizer
from image_compression.processing.worker import AttemptState, FileAttempt, FileConverter, discard_outputs

LOGGER = logging.getLogger(__name__)

ProgressCallback = Optional[Callable[[ProgressUpdate], None]]

CANCELLED_MESSAGE = "Compression was cancelled by user"


class RunState(Enum):
    IDLE = "idle"
    SCANNING = "scanning"
    MEASURING_INPUT = "measuring-input"
    CREATING_OUTPUT = "creating-output"
    CONVERTING = "converting"
    MEASURING_OUTPUT = "measuring-output"
    DONE = "done"
    FAILED = "failed"
    CANCELLING = "cancelling"
    CLEANED_UP = "cleaned-up"


class ImageCompressor:
    """单次调用一个任务；每次 run() 都会创建全新的运行状态。

    cancel() 可以在其他线程调用，返回前完成清理。
    """

    def __init__(
        self,
        config: Optional[CompressionConfig] = None,
        codec: Optional[Codec] = None,
        *,
        timer: Callable[[], float] = time.perf_counter,
        clock: Optional[Clock] = None,
    ) -> None:
        self.config = config or CompressionConfig()
        self.config.validate()
        self.codec = codec or PillowWebPCodec(self.config)
        self.timer = timer
        self.clock = clock
        self.state = RunState.IDLE
        self._context: Optional[RunContext] = None
        self._lock = threading.Lock()
        self._running = False

    def cancel(self) -> None:
        """请求取消当前任务并立即执行清理；可重复调用。"""

        context = self._context
        if context is None:
            LOGGER.info("当前没有正在运行的压缩任务")
            return
        if context.request_cancel():
            self._set_state(RunState.CANCELLING)
        context.cleanup()

    def run(self, input_path: Path, on_progress: ProgressCallback = None) -> RunOutcome:
        """执行一次完整的压缩任务，始终返回结构化结果。"""

        with self._lock:
            if self._running:
                raise RuntimeError("ImageCompressor is already running")
            self._running = True
            self._context = RunContext()
            self.state = RunState.IDLE

        run = _Run(self, Path(input_path).expanduser().resolve(), self._context, on_progress)
        try:
            return run.execute()
        finally:
            with self._lock:
                self._running = False
                self._context = None

    def _set_state(self, state: RunState) -> None:
        LOGGER.debug("状态: %s -> %s", self.state.value, state.value)
        self.state = state


class _Run:
    """一次任务独占的可变状态。"""

    def __init__(
        self,
        owner: ImageCompressor,
        input_path: Path,
        context: RunContext,
        on_progress: ProgressCallback,
    ) -> None:
        self.owner = owner
        self.config = owner.config
        self.input_path = input_path
        self.context = context
        self.on_progress = on_progress
        self.sanitizer = FileNameSanitizer()
        self.analyzer = SizeAnalyzer(self.config.output_extension)
        self.estimator = EtaEstimator()
        self.files: list[ImageFile] = []
        self.results: list[ProcessingResult] = []
        self.output_path: Optional[Path] = None
        self.completed = 0

    def execute(self) -> RunOutcome:
        try:
            return self._execute()
        except ProcessingAborted:
            return self._cancelled_outcome()
        except (ImageCompressionError, OSError) as exc:
            if self.context.cancelled:
                return self._cancelled_outcome()
            LOGGER.error("压缩任务失败: %s", exc)
            return self._failed_outcome(exc)
        except Exception as exc:  # noqa: BLE001
            if self.context.cancelled:
                return self._cancelled_outcome()
            LOGGER.exception("压缩任务出现未预期的错误")
            return self._failed_outcome(exc)

    def _failed_outcome(self, exc: Exception) -> RunOutcome:
        """致命错误：清理临时目录，保留输出目录供排查。"""

        self.context.cleanup(remove_empty_output=False)
        self.owner._set_state(RunState.FAILED)
        return RunOutcome(
            status="failed",
            message=str(exc) or type(exc).__name__,
            processed_files=self._processed_count(),
            total_files=len(self.files),
            output_path=self.output_path,
            results=list(self.results),
            error=exc,
        )

    def _execute(self) -> RunOutcome:
        self._enter(RunState.SCANNING, "Scanning for images...")
        self.files = scan_images(self.input_path, self.context)
        self.context.raise_if_cancelled("after scanning")
        if not self.files:
            raise NoImagesFoundError(
                "No supported image files found in the selected folder. "
                f"Supported formats: {describe_supported_extensions()}"
            )
        total = len(self.files)

        self._enter(RunState.MEASURING_INPUT, "Measuring file sizes...", total=total)
        self.analyzer.measure_inputs(self.files)
        self.context.raise_if_cancelled("after measuring input")

        self._enter(RunState.CREATING_OUTPUT, "Creating output folder...", total=total)
        self.output_path = create_output_folder(self.input_path, self.owner.clock)
        self.context.register_output_dir(self.output_path)
        self.context.raise_if_cancelled("after creating output folder")

        self._enter(RunState.CONVERTING, "Compressing images...", total=total)
        self._convert_all(self.output_path)
        self.context.raise_if_cancelled("after converting")

        processed = self._processed_count()
        self._enter(
            RunState.MEASURING_OUTPUT,
            "Calculating compression statistics...",
            current=processed,
            total=total,
            percent=100.0,
        )
        self.analyzer.measure_outputs(self.output_path, self.results)
        stats = self.analyzer.compute_stats()
        formatted = format_stats(stats)
        comparison = self.analyzer.detailed_comparison()

        self.owner._set_state(RunState.DONE)
        LOGGER.info("处理完成：成功 %d/%d", processed, total)
        return RunOutcome(
            status="completed",
            message=f"Successfully compressed {processed} images!",
            processed_files=processed,
            total_files=total,
            output_path=self.output_path,
            results=list(self.results),
            stats=stats,
            formatted_stats=formatted,
            comparison=comparison,
        )

    def _convert_all(self, output_path: Path) -> None:
        converter = FileConverter(
            self.owner.codec,
            output_path,
            self.context,
            self.sanitizer,
            staging_root=self.config.staging_root,
            output_extension=self.config.output_extension,
        )
        batch_size = resolve_batch_size(self.config)
        LOGGER.info("开始处理 %d 个文件，批量大小 %d", len(self.files), batch_size)

        for batch in chunked(self.files, batch_size):
            self.context.raise_if_cancelled("before next file")
            ensure_output_dir(output_path)
            if len(batch) == 1:
                self._convert_single(converter, batch[0])
            else:
                self._convert_batch(converter, batch, output_path)

    def _convert_single(self, converter: FileConverter, image: ImageFile) -> None:
        started = self.owner.timer()
        result = converter.convert_file(image)
        self._record(image, result, self.owner.timer() - started)

    def _convert_batch(
        self, converter: FileConverter, batch: Sequence[ImageFile], output_path: Path
    ) -> None:
        started = self.owner.timer()
        attempts = converter.attempt_batch(batch)
        share = (self.owner.timer() - started) / len(batch)

        pending: list[FileAttempt] = list(attempts)
        try:
            while pending:
                attempt = pending[0]
                self.context.raise_if_cancelled("before next file")
                if attempt.state is AttemptState.CONVERTED:
                    result = converter.resolve(attempt)
                    duration = share
                else:
                    ensure_output_dir(output_path)
                    started = self.owner.timer()
                    result = converter.retry_individually(attempt)
                    duration = share + self.owner.timer() - started
                pending.pop(0)
                self._record(attempt.image, result, duration)
        finally:
            discard_outputs(
                attempt.descriptor
                for attempt in pending
                if attempt.state is AttemptState.CONVERTED and attempt.descriptor is not None
            )

    def _record(self, image: ImageFile, result: ProcessingResult, duration: float) -> None:
        if not result.success:
            # 取消清理可能导致的失败不计入结果
            self.context.raise_if_cancelled("after file")
        self.results.append(result)
        self.completed += 1
        self.estimator.record(duration)

        total = len(self.files)
        if result.success:
            LOGGER.info("[%d/%d] 已处理: %s", self.completed, total, image.name)
        else:
            LOGGER.error("[%d/%d] 处理失败 %s: %s", self.completed, total, image.name, result.message)

        eta = self.estimator.describe(total - self.completed)
        self._emit(ProgressUpdate.for_file(self.completed, total, f"{image.name}{eta}"))

    def _processed_count(self) -> int:
        return sum(1 for result in self.results if result.success)

    def _enter(
        self,
        state: RunState,
        message: str,
        *,
        current: int = 0,
        total: int = 0,
        percent: float = 0.0,
    ) -> None:
        self.context.raise_if_cancelled(state.value)
        self.owner._set_state(state)
        self._emit(ProgressUpdate(current=current, total=total, percent=percent, message=message))

    def _emit(self, update: ProgressUpdate) -> None:
        if self.on_progress is None or self.context.cancelled:
            return
        self.on_progress(update)

    def _cancelled_outcome(self) -> RunOutcome:
        self.owner._set_state(RunState.CANCELLING)
        self.context.request_cancel()
        self.context.cleanup()
        self.analyzer.reset()
        self.owner._set_state(RunState.CLEANED_UP)
        output_path = self.output_path if self.output_path and self.output_path.exists() else None
        return RunOutcome(
            status="cancelled",
            message=CANCELLED_MESSAGE,
            processed_files=self._processed_count(),
            total_files=len(self.files),
            output_path=output_path,
            results=list(self.results),
        )


def compress_images(
    input_path: Path,
    config: Optional[CompressionConfig] = None,
    progress_callback: ProgressCallback = None,
) -> RunOutcome:
    """便捷入口：使用默认编码器执行一次压缩。"""

    return ImageCompressor(config).run(input_path, progress_callback)
