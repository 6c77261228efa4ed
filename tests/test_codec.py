"""Pillow WebP 编码器。"""

from __future__ import annotations

from pathlib import Path

import pytest
from PIL import Image

from image_compression.core.config import CompressionConfig
from image_compression.core.exceptions import ConversionError
from image_compression.processing.codec import PillowWebPCodec


def test_single_source_failure_raises(tmp_path: Path) -> None:
    broken = tmp_path / "broken.jpg"
    broken.write_text("not an image")

    with pytest.raises(ConversionError):
        PillowWebPCodec().convert([broken], tmp_path)


def test_multi_source_failure_is_omitted(tmp_path: Path) -> None:
    good = tmp_path / "good.png"
    Image.new("RGBA", (20, 20), (255, 0, 0, 128)).save(good)
    broken = tmp_path / "broken.png"
    broken.write_text("not an image")
    output = tmp_path / "out"
    output.mkdir()

    descriptors = PillowWebPCodec().convert([broken, good], output)

    assert len(descriptors) == 1
    assert descriptors[0].source_path == good
    assert descriptors[0].destination_path == output / "good.webp"
    with Image.open(output / "good.webp") as img:
        assert img.format == "WEBP"
        assert img.mode == "RGBA"


def test_palette_and_grayscale_inputs(tmp_path: Path) -> None:
    Image.new("P", (16, 16)).save(tmp_path / "palette.gif")
    Image.new("L", (16, 16), 128).save(tmp_path / "gray.bmp")
    Image.new("CMYK", (16, 16), (0, 128, 255, 0)).save(tmp_path / "cmyk.tiff")

    codec = PillowWebPCodec()
    descriptors = codec.convert(
        [tmp_path / "palette.gif", tmp_path / "gray.bmp", tmp_path / "cmyk.tiff"], tmp_path
    )

    assert sorted(d.destination_path.name for d in descriptors) == ["cmyk.webp", "gray.webp", "palette.webp"]


def test_save_params_follow_input_format() -> None:
    codec = PillowWebPCodec(CompressionConfig(quality=70, png_quality=85))

    assert codec.save_params(".jpg")["quality"] == 70
    assert codec.save_params(".PNG")["quality"] == 85
    assert codec.save_params(".svg")["lossless"] is True
