"""Pillow-backed decode, fit-to-width resize and re-encode."""

from pathlib import Path
from typing import Any

from PIL import Image, UnidentifiedImageError

from app.services.exceptions import ImageDecodeError, ImageWriteError, SourceNotFound

# Formats Pillow reads under one name but writes under another
SAVE_FORMAT_ALIASES = {"MPO": "JPEG"}


def target_size(size: tuple[int, int], width: int) -> tuple[int, int]:
    """Size that fits within ``width`` keeping the aspect ratio. Never enlarges."""
    src_width, src_height = size
    if src_width <= width:
        return src_width, src_height
    height = max(1, round(src_height * width / src_width))
    return width, height


def save_options(image_format: str, quality: int) -> dict[str, Any]:
    if image_format in {"JPEG", "WEBP"}:
        return {"quality": quality, "optimize": True}
    if image_format == "PNG":
        return {"optimize": True}
    return {}


def resize_image(
    source: str | Path, destination: str | Path, width: int, quality: int = 85
) -> tuple[int, int]:
    """Write a copy of ``source`` no wider than ``width`` to ``destination``.

    The output keeps the source's container format. Returns the output size.
    """
    try:
        image = Image.open(source)
        image.load()
    except FileNotFoundError as exc:
        raise SourceNotFound(f"File does not exist. Cannot locate file: {source}") from exc
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, SyntaxError, ValueError) as exc:
        raise ImageDecodeError(
            f"Input file contains unsupported image format: {source} ({exc})"
        ) from exc

    with image:
        image_format = SAVE_FORMAT_ALIASES.get(image.format, image.format)
        if not image_format:
            raise ImageDecodeError(f"Input file contains unsupported image format: {source}")

        size = target_size(image.size, width)
        if size == image.size:
            output = image.copy()
        else:
            output = image.resize(size, Image.Resampling.LANCZOS)

        try:
            output.save(destination, format=image_format, **save_options(image_format, quality))
        except (KeyError, ValueError) as exc:
            # Pillow can read this format but has no encoder for it
            raise ImageDecodeError(
                f"Input file contains unsupported image format: {source} ({exc})"
            ) from exc
        except OSError as exc:
            Path(destination).unlink(missing_ok=True)
            raise ImageWriteError(f"Failed to write image: {destination} ({exc})") from exc

    return output.size
