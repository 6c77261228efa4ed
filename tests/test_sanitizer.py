"""文件名清洗、临时复制与名称恢复。"""

from __future__ import annotations

import ntpath
import posixpath
from pathlib import Path

import pytest

from image_compression.core.exceptions import StagingError
from image_compression.core.models import ConversionDescriptor, ImageFile
from image_compression.processing.sanitizer import (
    FileNameSanitizer,
    make_staging_dir,
    needs_sanitization,
    normalize_path_key,
    sanitize_file_name,
)

NAMES = [
    "pic#1!.png",
    "my   photo.JPG",
    "###.png",
    "照片.png",
    "été.jpg",
    "_leading_and_trailing_.gif",
    "already_safe (1) [2].webp",
    "a" * 150 + ".jpg",
    "no_extension",
    "tab\there.bmp",
]


def _image(path: Path) -> ImageFile:
    return ImageFile(name=path.name, full_path=path, extension=path.suffix.lower(), relative_path=Path(path.name))


@pytest.mark.parametrize(
    ("name", "expected"),
    [
        ("pic#1!.png", "pic_1.png"),
        ("my   photo.JPG", "my_photo.JPG"),
        ("###.png", "sanitized_file.png"),
        ("照片.png", "sanitized_file.png"),
        ("été.jpg", "t.jpg"),
        ("already_safe (1) [2].webp", "already_safe_(1)_[2].webp"),
    ],
)
def test_sanitize_file_name_examples(name: str, expected: str) -> None:
    assert sanitize_file_name(name) == expected


def test_sanitize_truncates_long_base_to_100_characters() -> None:
    result = sanitize_file_name("b" * 150 + ".tiff")
    assert result == "b" * 100 + ".tiff"


@pytest.mark.parametrize("name", NAMES)
def test_sanitize_is_idempotent_and_keeps_extension(name: str) -> None:
    once = sanitize_file_name(name)
    assert sanitize_file_name(once) == once

    original_ext = Path(name).suffix
    assert Path(once).suffix == original_ext
    assert Path(once).stem


def test_needs_sanitization() -> None:
    assert needs_sanitization("pic#1!.png")
    assert needs_sanitization("照片.png")
    assert not needs_sanitization("holiday photo (2).jpg")


def test_normalize_path_key_handles_both_separator_styles() -> None:
    assert normalize_path_key("C:/Temp/stage/x.png", ntpath) == normalize_path_key(r"C:\Temp\stage\x.png", ntpath)
    assert normalize_path_key("/tmp/./stage//x.png", posixpath) == normalize_path_key("/tmp/stage/x.png", posixpath)


def test_stage_and_restore_names(tmp_path: Path) -> None:
    source_dir = tmp_path / "src"
    source_dir.mkdir()
    source = source_dir / "pic#1!.png"
    source.write_bytes(b"data")

    staging_dir = tmp_path / "staging" / "nested"
    sanitizer = FileNameSanitizer()
    staged, failures = sanitizer.stage_files([_image(source)], staging_dir)

    assert failures == []
    assert len(staged) == 1
    assert staged[0].temp_path == staging_dir / "pic_1.png"
    assert staged[0].temp_path.read_bytes() == b"data"

    # 模拟编码器输出
    codec_output = tmp_path / "codec_out"
    codec_output.mkdir()
    produced = codec_output / "pic_1.webp"
    produced.write_bytes(b"webp")
    output_dir = tmp_path / "out"
    output_dir.mkdir()

    # 使用未规范化的路径形式查找映射
    unnormalized = f"{staging_dir}/.//pic_1.png"
    results = sanitizer.restore_names(
        [ConversionDescriptor(source_path=unnormalized, destination_path=produced)], output_dir
    )

    assert len(results) == 1
    result = results[0]
    assert result.success
    assert result.original_name == "pic#1!.png"
    assert result.compressed_name == "pic#1!.webp"
    assert result.sanitized
    assert (output_dir / "pic#1!.webp").read_bytes() == b"webp"
    assert not produced.exists()
    # 映射在清理前保留
    assert sanitizer.lookup(staged[0].temp_path) is not None


def test_restore_without_mapping_reports_failure(tmp_path: Path) -> None:
    sanitizer = FileNameSanitizer()
    descriptor = ConversionDescriptor(
        source_path=tmp_path / "unknown.png",
        destination_path=tmp_path / "unknown.webp",
    )

    results = sanitizer.restore_names([descriptor], tmp_path)

    assert len(results) == 1
    assert not results[0].success
    assert results[0].message == "No mapping found"


def test_stage_files_continues_after_copy_failure(tmp_path: Path) -> None:
    present = tmp_path / "ok.png"
    present.write_bytes(b"ok")
    missing = tmp_path / "missing.png"

    sanitizer = FileNameSanitizer()
    staged, failures = sanitizer.stage_files([_image(missing), _image(present)], tmp_path / "staging")

    assert [item.original_name for item in staged] == ["ok.png"]
    assert len(failures) == 1
    assert failures[0].original_name == "missing.png"
    assert failures[0].error_kind == "StagingError"


def test_cleanup_removes_directory_and_mappings(tmp_path: Path) -> None:
    source = tmp_path / "a b.png"
    source.write_bytes(b"x")
    staging_dir = make_staging_dir(tmp_path)
    assert staging_dir.name.startswith("temp_imagemin_")

    sanitizer = FileNameSanitizer()
    sanitizer.stage_files([_image(source)], staging_dir)
    assert sanitizer.temp_file_map

    sanitizer.cleanup(staging_dir)

    assert not staging_dir.exists()
    assert sanitizer.temp_file_map == {}
    # 重复清理不会抛出异常
    sanitizer.cleanup(staging_dir)


def test_unusable_staging_root_raises_staging_error(tmp_path: Path) -> None:
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory")

    with pytest.raises(StagingError):
        make_staging_dir(blocker)
    with pytest.raises(StagingError):
        FileNameSanitizer().stage_files([], blocker / "input")
