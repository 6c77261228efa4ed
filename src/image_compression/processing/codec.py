"""编码器协议与基于 Pillow 的 WebP 实现。"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Protocol, Sequence

from PIL import Image, ImageOps, UnidentifiedImageError

from image_compression.core.config import CompressionConfig
from image_compression.core.exceptions import ConversionError
from image_compression.core.models import ConversionDescriptor

LOGGER = logging.getLogger(__name__)


class Codec(Protocol):
    """外部编码器约定。

    对每个成功处理的输入返回一个描述；缺失的描述表示该输入被静默拒绝。
    """

    def convert(self, sources: Sequence[Path], output_dir: Path) -> list[ConversionDescriptor]:
        ...


class PillowWebPCodec:
    """使用 Pillow 将图片编码为 WebP。

    单个输入失败时抛出 ConversionError；多个输入时失败项只记录日志并从结果中省略。
    """

    def __init__(self, config: CompressionConfig | None = None) -> None:
        self.config = config or CompressionConfig()

    def save_params(self, extension: str) -> dict:
        """按输入格式选择 WebP 参数。"""

        params = {"quality": self.config.quality, "method": self.config.method, "lossless": False}
        extension = extension.lower()
        if extension == ".png":
            params["quality"] = self.config.png_quality
        elif extension == ".svg":
            params["lossless"] = True
        return params

    def convert(self, sources: Sequence[Path], output_dir: Path) -> list[ConversionDescriptor]:
        descriptors: list[ConversionDescriptor] = []
        for source in sources:
            try:
                descriptors.append(self.convert_one(Path(source), output_dir))
            except ConversionError as exc:
                if len(sources) == 1:
                    raise
                LOGGER.warning("批量编码跳过 %s: %s", source, exc)
        return descriptors

    def convert_one(self, source: Path, output_dir: Path) -> ConversionDescriptor:
        destination = output_dir / f"{source.stem}{self.config.output_extension}"
        try:
            with Image.open(source) as img:
                animated = getattr(img, "is_animated", False)
                image_to_save = img if animated else _normalize_mode(ImageOps.exif_transpose(img))
                image_to_save.save(
                    destination,
                    format="WEBP",
                    save_all=animated,
                    **self.save_params(source.suffix),
                )
        except FileNotFoundError as exc:
            raise ConversionError(f"File not found: {source.name}") from exc
        except UnidentifiedImageError as exc:
            raise ConversionError(f"Unsupported format in {source.name}") from exc
        except Image.DecompressionBombError as exc:
            raise ConversionError(f"Image too large: {source.name}") from exc
        except (OSError, ValueError) as exc:
            _discard(destination)
            raise ConversionError(f"Encoding failed for {source.name}: {exc}") from exc
        return ConversionDescriptor(source_path=source, destination_path=destination)


def _normalize_mode(img: Image.Image) -> Image.Image:
    """WebP 只接受 RGB/RGBA。"""

    if img.mode in {"RGB", "RGBA"}:
        return img
    if img.mode in {"LA", "PA"} or "transparency" in img.info:
        return img.convert("RGBA")
    return img.convert("RGB")


def _discard(path: Path) -> None:
    try:
        path.unlink()
    except FileNotFoundError:
        pass
    except OSError as exc:
        LOGGER.warning("删除不完整的输出失败 %s: %s", path, exc)
