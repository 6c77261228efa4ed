"""单次任务的取消标记与清理登记。"""

from __future__ import annotations

import logging
import shutil
import threading
from pathlib import Path
from typing import Optional

from image_compression.core.exceptions import ProcessingAborted

LOGGER = logging.getLogger(__name__)


class RunContext:
    """一次压缩任务独占的运行上下文。

    取消标记可以在任意线程写入；输出提交与清理共用同一把锁，
    保证清理时看到的已完成数量与磁盘上的输出一致。
    """

    def __init__(self) -> None:
        self._cancelled = threading.Event()
        self._lock = threading.RLock()
        self._staging_dirs: list[Path] = []
        self._output_dir: Optional[Path] = None
        self._committed = 0
        self._cleaned_up = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    @property
    def committed(self) -> int:
        return self._committed

    def request_cancel(self) -> bool:
        """设置取消标记，返回是否为首次请求。"""

        with self._lock:
            first = not self._cancelled.is_set()
            self._cancelled.set()
        if first:
            LOGGER.info("收到取消请求")
        return first

    def raise_if_cancelled(self, stage: str = "") -> None:
        if self._cancelled.is_set():
            suffix = f" ({stage})" if stage else ""
            raise ProcessingAborted(f"Processing cancelled by user{suffix}")

    def register_output_dir(self, path: Path) -> None:
        with self._lock:
            self._output_dir = path

    def register_staging_dir(self, path: Path) -> None:
        with self._lock:
            self._staging_dirs.append(path)

    def release_staging_dir(self, path: Path) -> None:
        with self._lock:
            if path in self._staging_dirs:
                self._staging_dirs.remove(path)

    @property
    def staging_dirs(self) -> list[Path]:
        with self._lock:
            return list(self._staging_dirs)

    def commit_output(self) -> bool:
        """登记一个已完成的输出文件；若已取消则拒绝并返回 False。"""

        with self._lock:
            if self._cancelled.is_set():
                return False
            self._committed += 1
            return True

    def cleanup(self, remove_empty_output: bool = True) -> None:
        """删除登记的临时目录；若没有任何输出被提交，同时删除输出目录。

        可重复调用，失败只记录日志。
        """

        with self._lock:
            staging_dirs, self._staging_dirs = self._staging_dirs, []
            for directory in staging_dirs:
                _remove_tree(directory, "临时目录")

            if remove_empty_output and self._output_dir is not None and self._committed == 0:
                _remove_tree(self._output_dir, "空输出目录")
                self._output_dir = None

            if not self._cleaned_up:
                self._cleaned_up = True
                LOGGER.info("清理完成")


def _remove_tree(path: Path, label: str) -> None:
    try:
        shutil.rmtree(path)
    except FileNotFoundError:
        return
    except OSError as exc:
        LOGGER.warning("清理%s失败 %s: %s", label, path, exc)
        return
    LOGGER.info("已清理%s: %s", label, path)
