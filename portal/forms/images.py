"""
Image helpers shared by photo uploads, estimates and EagleView extraction.

Photos from phones arrive as multi-megabyte JPEG/HEIC. Everything we keep is
re-encoded to WebP and capped on its longest edge.
"""

import io
import logging

from PIL import Image, ImageOps

log = logging.getLogger("lava.images")

PHOTO_MAX_EDGE = 1200
ESTIMATE_MAX_EDGE = 1400
WEBP_QUALITY = 80

IMAGE_MIME_TYPES = ("image/png", "image/jpeg", "image/jpg", "image/webp",
                    "image/gif", "image/heic", "image/heif")


def is_image(mime_type: str) -> bool:
    return bool(mime_type) and mime_type.lower().startswith("image/")


def fit_within(width: int, height: int, max_edge: int) -> tuple:
    """Scale (width, height) so the longest edge is at most max_edge."""
    if width <= max_edge and height <= max_edge:
        return width, height
    if width > height:
        return max_edge, round(height * max_edge / width)
    return round(width * max_edge / height), max_edge


def _to_webp(img, max_edge: int, quality: int) -> bytes:
    img = ImageOps.exif_transpose(img)
    if img.mode not in ("RGB", "RGBA"):
        img = img.convert("RGBA" if "A" in img.getbands() else "RGB")
    size = fit_within(img.width, img.height, max_edge)
    if size != (img.width, img.height):
        img = img.resize(size, Image.LANCZOS)
    out = io.BytesIO()
    img.save(out, format="WEBP", quality=quality)
    return out.getvalue()


def compress_to_webp(data: bytes, max_edge: int = PHOTO_MAX_EDGE,
                     quality: int = WEBP_QUALITY) -> bytes:
    """Decode any Pillow-readable image and return WebP bytes.

    Raises ValueError when the bytes are not an image.
    """
    try:
        with Image.open(io.BytesIO(data)) as img:
            img.load()
            return _to_webp(img, max_edge, quality)
    except (OSError, Image.DecompressionBombError) as e:
        raise ValueError(f"Not a readable image: {e}") from e


def image_to_webp(img, max_edge: int = PHOTO_MAX_EDGE, quality: int = WEBP_QUALITY) -> bytes:
    """Same as compress_to_webp for an already-open PIL image."""
    return _to_webp(img, max_edge, quality)


def pdf_first_page(data: bytes, resolution: int = 144):
    """Rasterise page 1 of a PDF. Returns a PIL image.

    pypdf checks the document opens and has pages; pdfplumber renders it.
    """
    import pdfplumber
    from pypdf import PdfReader
    from pypdf.errors import PdfReadError

    try:
        reader = PdfReader(io.BytesIO(data))
        page_count = len(reader.pages)
    except PdfReadError as e:
        raise ValueError(f"Could not read PDF: {e}") from e
    if page_count == 0:
        raise ValueError("PDF has no pages")

    with pdfplumber.open(io.BytesIO(data)) as pdf:
        page_image = pdf.pages[0].to_image(resolution=resolution)
        img = page_image.original.copy()
    log.debug("Rasterised PDF page 1/%d at %d dpi → %dx%d",
              page_count, resolution, img.width, img.height)
    return img
