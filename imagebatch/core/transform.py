"""
Format-aware recompression.

``recompress`` is a pure function: raw bytes in, recompressed bytes of the
same container family out. It is what pool workers run for every blob.
"""

from __future__ import annotations

from dataclasses import dataclass
from io import BytesIO

from PIL import Image, UnidentifiedImageError

from imagebatch.core.errors import DecodeError, UnsupportedFormat

DEFAULT_QUALITY = 60

JPEG_FAMILY = {"jpeg", "jpg", "mpo"}

CONTENT_TYPES = {
    "jpeg": "image/jpeg",
    "png": "image/png",
}


@dataclass(frozen=True)
class TransformResult:
    data: bytes
    fmt: str

    @property
    def content_type(self) -> str:
        return CONTENT_TYPES[self.fmt]


def _open(data: bytes) -> Image.Image:
    try:
        image = Image.open(BytesIO(data))
        image.load()
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError, ValueError) as exc:
        raise DecodeError(f"Invalid image data: {exc}") from exc
    return image


def recompress(data: bytes, quality: int = DEFAULT_QUALITY) -> TransformResult:
    """
    Re-encode ``data`` at ``quality`` keeping its format family.

    Raises:
        DecodeError: when the bytes cannot be decoded.
        UnsupportedFormat: when the decoded image is not JPEG or PNG.
    """
    image = _open(data)
    sniffed = (image.format or "").lower()

    buf = BytesIO()
    if sniffed in JPEG_FAMILY:
        # Multi-picture JPEGs keep only their first frame.
        if image.mode not in {"RGB", "L", "CMYK"}:
            image = image.convert("RGB")
        image.save(buf, format="JPEG", quality=quality, optimize=True)
        return TransformResult(buf.getvalue(), "jpeg")
    if sniffed == "png":
        # PNG is lossless in Pillow; quality only selects the strongest deflate setting.
        image.save(buf, format="PNG", optimize=True, compress_level=9)
        return TransformResult(buf.getvalue(), "png")
    raise UnsupportedFormat(f"Unsupported image format: {sniffed or 'unknown'}")
