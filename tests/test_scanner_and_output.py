"""文件扫描、输出目录命名与取消清理登记。"""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

import pytest

from image_compression.core.cancellation import RunContext
from image_compression.core.exceptions import (
    OutputFolderError,
    ProcessingAborted,
    ScanCancelledError,
    ScanError,
)
from image_compression.core.output_manager import (
    create_output_folder,
    derive_output_path,
    ensure_output_dir,
    timestamp_suffix,
)
from image_compression.core.scanner import iter_images, scan_images

FIXED_MOMENT = datetime(2024, 5, 1, 8, 30, 0, 123000, tzinfo=timezone.utc)


def _touch(path: Path) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(b"x")
    return path


def test_scan_is_recursive_and_filters_extensions(tmp_path: Path) -> None:
    root = tmp_path / "photos"
    _touch(root / "a.jpg")
    _touch(root / "UPPER.JPEG")
    _touch(root / "notes.txt")
    _touch(root / "nested" / "deeper" / "b.webp")
    _touch(root / "nested" / "c.TIF")
    _touch(root / "nested" / "archive.zip")

    found = scan_images(root)

    assert sorted(image.name for image in found) == ["UPPER.JPEG", "a.jpg", "b.webp", "c.TIF"]
    by_name = {image.name: image for image in found}
    assert by_name["b.webp"].relative_path == Path("nested") / "deeper" / "b.webp"
    assert by_name["c.TIF"].extension == ".tif"
    assert by_name["a.jpg"].full_path == root / "a.jpg"


def test_scan_single_file_root(tmp_path: Path) -> None:
    image = _touch(tmp_path / "single.png")

    found = scan_images(image)

    assert len(found) == 1
    assert found[0].full_path == image
    assert found[0].relative_path == Path("single.png")


def test_scan_missing_root_raises(tmp_path: Path) -> None:
    with pytest.raises(ScanError):
        scan_images(tmp_path / "missing")


def test_scan_checks_cancellation_before_walking(tmp_path: Path) -> None:
    _touch(tmp_path / "a.jpg")
    context = RunContext()
    context.request_cancel()

    with pytest.raises(ScanCancelledError) as excinfo:
        scan_images(tmp_path, context)

    assert isinstance(excinfo.value, ProcessingAborted)
    assert isinstance(excinfo.value, ScanError)


def test_scan_stops_mid_walk_when_cancelled(tmp_path: Path) -> None:
    for idx in range(5):
        _touch(tmp_path / f"img{idx}.png")
    context = RunContext()

    iterator = iter_images(tmp_path, context)
    first = next(iterator)
    assert first.name == "img0.png"

    context.request_cancel()
    with pytest.raises(ScanCancelledError):
        next(iterator)


def test_timestamp_suffix_format() -> None:
    assert timestamp_suffix(FIXED_MOMENT) == "2024-05-01T08-30-00"


def test_output_path_for_directory_and_file(tmp_path: Path) -> None:
    folder = tmp_path / "photos"
    folder.mkdir()
    single = _touch(tmp_path / "one.jpg")

    assert derive_output_path(folder) == tmp_path / "photos_compressed"
    assert derive_output_path(single) == tmp_path / "compressed_images"


def test_existing_output_gets_timestamp_then_counter(tmp_path: Path) -> None:
    folder = tmp_path / "photos"
    folder.mkdir()
    (tmp_path / "photos_compressed").mkdir()

    first = create_output_folder(folder, clock=lambda: FIXED_MOMENT)
    assert first.name == "photos_compressed_2024-05-01T08-30-00"
    assert first.is_dir()

    second = create_output_folder(folder, clock=lambda: FIXED_MOMENT)
    assert second.name == "photos_compressed_2024-05-01T08-30-00_1"


def test_ensure_output_dir(tmp_path: Path) -> None:
    ensure_output_dir(tmp_path)
    with pytest.raises(OutputFolderError):
        ensure_output_dir(tmp_path / "removed")


def test_context_cleanup_removes_staging_and_empty_output(tmp_path: Path) -> None:
    staging = tmp_path / "temp_imagemin_x"
    output = tmp_path / "photos_compressed"
    staging.mkdir()
    output.mkdir()

    context = RunContext()
    context.register_staging_dir(staging)
    context.register_output_dir(output)
    assert context.request_cancel()
    assert not context.request_cancel()

    context.cleanup()
    context.cleanup()

    assert not staging.exists()
    assert not output.exists()


def test_context_keeps_output_with_committed_files(tmp_path: Path) -> None:
    output = tmp_path / "photos_compressed"
    output.mkdir()

    context = RunContext()
    context.register_output_dir(output)
    assert context.commit_output()
    context.request_cancel()
    # 取消之后不再接受新的输出
    assert not context.commit_output()

    context.cleanup()

    assert output.exists()
    assert context.committed == 1
