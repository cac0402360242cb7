"""Thumbnail encoding using Pillow."""

from __future__ import annotations

import io

from PIL import Image, ImageOps

THUMBNAIL_CONTENT_TYPE = "image/jpeg"


def detect_image_content_type(data: bytes) -> str | None:
    """Detect image content type from magic bytes.

    Returns ``None`` if the data does not match a known image signature.
    """
    if data[:3] == b"\xff\xd8\xff":
        return "image/jpeg"
    if data[:8] == b"\x89PNG\r\n\x1a\n":
        return "image/png"
    if data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return "image/webp"
    if data[:6] in (b"GIF87a", b"GIF89a"):
        return "image/gif"
    return None


def open_image(data: bytes) -> Image.Image:
    """Decode *data* and apply its EXIF orientation."""
    img = Image.open(io.BytesIO(data))
    img.load()
    return ImageOps.exif_transpose(img) or img


def image_dimensions(data: bytes) -> tuple[int, int]:
    """Intrinsic ``(width, height)`` as stored, before any EXIF rotation."""
    with Image.open(io.BytesIO(data)) as img:
        return img.size


def encode_thumbnail(
    img: Image.Image,
    max_width: int = 400,
    max_height: int = 400,
    quality: int = 85,
) -> bytes:
    """Fit *img* within the box and encode it as an RGB JPEG.

    Preserves aspect ratio. Does not upscale images already inside the box.
    """
    img = img.copy()
    img.thumbnail((max_width, max_height), Image.LANCZOS)

    if img.mode != "RGB":
        if img.mode in ("RGBA", "LA") or (img.mode == "P" and "transparency" in img.info):
            # Flatten transparency onto white rather than black
            rgba = img.convert("RGBA")
            background = Image.new("RGB", rgba.size, (255, 255, 255))
            background.paste(rgba, mask=rgba.split()[-1])
            img = background
        else:
            img = img.convert("RGB")

    buf = io.BytesIO()
    img.save(buf, format="JPEG", quality=quality, optimize=True)
    return buf.getvalue()


def make_thumbnail(
    data: bytes,
    max_width: int = 400,
    max_height: int = 400,
    quality: int = 85,
) -> bytes:
    """Decode raw image bytes and return an EXIF-aware JPEG thumbnail."""
    return encode_thumbnail(open_image(data), max_width, max_height, quality)
