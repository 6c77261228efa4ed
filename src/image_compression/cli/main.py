"""命令行入口。"""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Optional

import typer
from rich.progress import (
    BarColumn,
    Progress,
    SpinnerColumn,
    TextColumn,
    TimeElapsedColumn,
)

from image_compression.core.config import STRATEGIES, CompressionConfig
from image_compression.core.exceptions import InvalidConfigurationError
from image_compression.core.models import RunOutcome
from image_compression.core.progress import ProgressQueue, ProgressUpdate
from image_compression.core.report import write_csv_report
from image_compression.processing.pipeline import ImageCompressor
from image_compression.utils.logging import setup_logging

app = typer.Typer(help="批量将图片压缩为 WebP。")

EXIT_FAILED = 1
EXIT_CANCELLED = 130
POLL_INTERVAL = 0.1


def _apply_update(progress: Progress, task_id, update: ProgressUpdate) -> None:
    if update.total:
        progress.update(task_id, total=update.total, completed=update.current)
    if update.message:
        progress.update(task_id, description=update.message)


def _run_with_progress(compressor: ImageCompressor, input_path: Path) -> RunOutcome:
    """在工作线程中执行任务，主线程刷新进度条并把 Ctrl+C 转为取消请求。"""

    updates = ProgressQueue()
    holder: dict[str, RunOutcome] = {}

    def worker() -> None:
        holder["outcome"] = compressor.run(input_path, on_progress=updates)

    thread = threading.Thread(target=worker, name="compressor", daemon=True)
    progress = Progress(
        SpinnerColumn(),
        TextColumn("[bold blue]{task.description}"),
        BarColumn(),
        TextColumn("{task.completed}/{task.total}"),
        TimeElapsedColumn(),
    )

    with progress:
        task_id = progress.add_task("Starting...", total=None)
        thread.start()
        while thread.is_alive():
            try:
                thread.join(POLL_INTERVAL)
            except KeyboardInterrupt:
                progress.update(task_id, description="Cancelling...")
                compressor.cancel()
            for update in updates.drain():
                _apply_update(progress, task_id, update)
        for update in updates.drain():
            _apply_update(progress, task_id, update)

    outcome = holder.get("outcome")
    if outcome is None:
        raise typer.Exit(code=EXIT_FAILED)
    return outcome


@app.command("run")
def run_cli(
    source: Path = typer.Argument(..., help="要压缩的图片目录或单个图片文件"),
    strategy: str = typer.Option("sequential", "--strategy", "-s", help="处理策略 sequential/batched"),
    batch_size: Optional[int] = typer.Option(None, "--batch-size", help="批量策略下每批文件数，默认按内存估算"),
    quality: int = typer.Option(75, "--quality", "-q", help="WebP 质量 1~100"),
    png_quality: int = typer.Option(80, "--png-quality", help="PNG 输入使用的 WebP 质量"),
    staging_dir: Optional[Path] = typer.Option(None, "--staging-dir", help="临时目录所在位置，默认与输出目录同级"),
    report: Optional[Path] = typer.Option(None, "--report", help="写入逐文件对比的 CSV 报告"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="输出调试日志"),
) -> None:
    """执行批量压缩。"""

    setup_logging(logging.DEBUG if verbose else logging.INFO)
    logging.getLogger(__name__).debug("CLI 参数解析完成")

    if strategy not in STRATEGIES:
        raise typer.BadParameter(f"策略必须为 {'/'.join(STRATEGIES)}", param_hint="--strategy")

    config = CompressionConfig(
        strategy=strategy,
        batch_size=batch_size,
        quality=quality,
        png_quality=png_quality,
        staging_root=staging_dir.expanduser().resolve() if staging_dir else None,
    )
    try:
        compressor = ImageCompressor(config)
    except InvalidConfigurationError as exc:
        raise typer.BadParameter(str(exc)) from exc

    outcome = _run_with_progress(compressor, source.expanduser().resolve())

    if outcome.cancelled:
        typer.echo(f"已取消：{outcome.message}")
        raise typer.Exit(code=EXIT_CANCELLED)
    if not outcome.success:
        typer.echo(f"处理失败：{outcome.message}", err=True)
        raise typer.Exit(code=EXIT_FAILED)

    stats = outcome.formatted_stats
    typer.echo(f"处理完成：成功 {outcome.processed_files}/{outcome.total_files} 张。")
    typer.echo(f"输出目录：{outcome.output_path}")
    if stats is not None:
        typer.echo(f"原始大小 {stats.original_size}，压缩后 {stats.compressed_size}")
        typer.echo(stats.summary)
    for failure in outcome.failures():
        typer.echo(f"失败：{failure.original_name} ({failure.message})", err=True)

    if report is not None:
        write_csv_report(outcome.comparison, report.expanduser().resolve())
        typer.echo(f"报告文件：{report}")


if __name__ == "__main__":
    app()
