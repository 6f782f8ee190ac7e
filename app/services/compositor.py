# app/services/compositor.py
import io
import logging
from dataclasses import dataclass

from PIL import Image, ImageOps, UnidentifiedImageError

from app.errors import DecodeFailed

logger = logging.getLogger("compositor")

THUMBNAIL_BOX = (400, 400)


@dataclass(frozen=True)
class ImageMetadata:
    width: int
    height: int
    format: str
    mime_type: str

    @property
    def is_portrait(self) -> bool:
        return self.height > self.width


@dataclass(frozen=True)
class RenderedVariants:
    preview: bytes
    thumbnail: bytes
    width: int
    height: int
    size: int
    preview_content_type: str
    branded: bool


def _open(data: bytes) -> Image.Image:
    """Decode bytes into an upright image (EXIF orientation applied)."""
    try:
        img = Image.open(io.BytesIO(data))
        img.load()
    except (UnidentifiedImageError, OSError, SyntaxError, EOFError, ValueError, Image.DecompressionBombError) as e:
        raise DecodeFailed(str(e)) from e
    fmt = img.format or "JPEG"
    img = ImageOps.exif_transpose(img)
    img.format = fmt
    return img


def read_metadata(data: bytes) -> ImageMetadata:
    img = _open(data)
    return ImageMetadata(
        width=img.width,
        height=img.height,
        format=img.format,
        mime_type=Image.MIME.get(img.format, "image/jpeg"),
    )


def _open_asset(data: bytes | None, label: str) -> Image.Image | None:
    if data is None:
        return None
    try:
        return _open(data).convert("RGBA")
    except DecodeFailed as e:
        logger.warning(f"Ignoring undecodable {label}: {e.reason}")
        return None


def fit_within(size: tuple[int, int], box: tuple[int, int]) -> tuple[int, int]:
    """Largest size with the same aspect ratio fitting in ``box``, never upscaled."""
    w, h = size
    scale = min(box[0] / w, box[1] / h, 1.0)
    return max(1, round(w * scale)), max(1, round(h * scale))


def _encode_jpeg(img: Image.Image, quality: int) -> bytes:
    buf = io.BytesIO()
    img.convert("RGB").save(buf, format="JPEG", quality=quality)
    return buf.getvalue()


def apply_branding(base: Image.Image, frame: Image.Image | None, watermark: Image.Image | None) -> Image.Image:
    canvas = base.convert("RGBA")
    w, h = canvas.size

    if frame is not None:
        # Frames are authored for the event's aspect, so stretch to fill
        frame = frame.resize((w, h), Image.Resampling.LANCZOS)
        canvas = Image.alpha_composite(canvas, frame)

    if watermark is not None:
        mark_size = fit_within(watermark.size, (w, h))
        if mark_size != watermark.size:
            watermark = watermark.resize(mark_size, Image.Resampling.LANCZOS)
        offset = ((w - mark_size[0]) // 2, (h - mark_size[1]) // 2)
        canvas.alpha_composite(watermark, dest=offset)

    return canvas


def make_thumbnail(img: Image.Image, quality: int) -> bytes:
    thumb = img.copy()
    thumb.thumbnail(THUMBNAIL_BOX, Image.Resampling.LANCZOS)
    return _encode_jpeg(thumb, quality)


def render_variants(
    original: bytes,
    frame: bytes | None = None,
    watermark: bytes | None = None,
    preview_quality: int = 80,
    thumb_quality: int = 60,
) -> RenderedVariants:
    """Produce the branded preview and the thumbnail of one photo.

    The preview is the original byte-for-byte when neither asset could be
    loaded; otherwise it is a JPEG of the composite. The thumbnail is always
    derived from the unbranded original.
    """
    img = _open(original)
    frame_img = _open_asset(frame, "frame")
    watermark_img = _open_asset(watermark, "watermark")

    branded = frame_img is not None or watermark_img is not None
    if branded:
        preview = _encode_jpeg(apply_branding(img, frame_img, watermark_img), preview_quality)
        preview_content_type = "image/jpeg"
    else:
        preview = original
        preview_content_type = Image.MIME.get(img.format, "image/jpeg")

    return RenderedVariants(
        preview=preview,
        thumbnail=make_thumbnail(img, thumb_quality),
        width=img.width,
        height=img.height,
        size=len(original),
        preview_content_type=preview_content_type,
        branded=branded,
    )
