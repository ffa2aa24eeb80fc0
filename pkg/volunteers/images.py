"""
Image helpers for keeping volunteer photos under the storage quota.

Images live inline as data URLs, so their cost is the length of the URL
string. Compression is a fixed sequence of downscale / re-encode attempts,
each tried only if the previous result is still too large.
"""
import base64
import binascii
import io
import logging
import math
from typing import Tuple

from PIL import Image, UnidentifiedImageError

from .schema import Attachment, new_id, utc_now

logger = logging.getLogger(__name__)

MAX_IMAGE_SIZE = 400 * 1024          # chars of data URL
COMPRESS_ON_SAVE_SIZE = 750 * 1024   # cards with bigger images are compressed when saved
CLEANUP_SIZE = 200 * 1024            # storage cleanup only touches images above this
MAX_UPLOAD_BYTES = 15 * 1024 * 1024
ATTACHMENT_MAX_DIMENSION = 400
AGGRESSIVE_MAX_DIMENSION = 300
THUMBNAIL_WIDTH = 300


class ImageCompressionError(Exception):
    """Raised when an image cannot be decoded or re-encoded."""
    pass


class UploadTooLargeError(Exception):
    """Raised when an uploaded file is over the upload limit."""
    pass


def parse_data_url(data_url: str) -> Tuple[str, bytes]:
    """Split a base64 data URL into (mime type, raw bytes)."""
    if not isinstance(data_url, str) or not data_url.startswith("data:"):
        raise ImageCompressionError("Not a data URL")
    header, _, payload = data_url.partition(",")
    mime = header[5:].split(";")[0] or "application/octet-stream"
    try:
        if ";base64" in header:
            return mime, base64.b64decode(payload)
        return mime, payload.encode("utf-8")
    except (binascii.Error, ValueError) as e:
        raise ImageCompressionError(f"Invalid data URL payload: {e}")


def to_data_url(raw: bytes, mime: str) -> str:
    return f"data:{mime};base64,{base64.b64encode(raw).decode('ascii')}"


def get_data_url_size_kb(data_url: str) -> int:
    """Rough decoded size in KB (base64 carries 4 chars per 3 bytes)."""
    return round(len(data_url) * 3 / 4 / 1024)


def _load(data_url: str) -> Image.Image:
    _, raw = parse_data_url(data_url)
    try:
        img = Image.open(io.BytesIO(raw))
        img.load()
        return img
    except (UnidentifiedImageError, OSError) as e:
        raise ImageCompressionError(f"Failed to load image for compression: {e}")


def _encode_jpeg(img: Image.Image, width: int, height: int, quality: float) -> str:
    """Draw img at width x height and encode as a JPEG data URL."""
    size = (max(1, int(width)), max(1, int(height)))
    frame = img.resize(size, Image.LANCZOS) if size != img.size else img
    if frame.mode in ("RGBA", "LA", "P"):
        # JPEG has no alpha: flatten onto white
        frame = frame.convert("RGBA")
        background = Image.new("RGB", frame.size, (255, 255, 255))
        background.paste(frame, mask=frame.split()[3])
        frame = background
    elif frame.mode != "RGB":
        frame = frame.convert("RGB")
    buf = io.BytesIO()
    frame.save(buf, "JPEG", quality=max(1, int(round(quality * 100))))
    return to_data_url(buf.getvalue(), "image/jpeg")


def compress_image_for_storage(data_url: str, max_size: int = MAX_IMAGE_SIZE) -> str:
    """
    Re-encode an image data URL until it fits in max_size characters.

    Steps, each only if still too large:
      1. JPEG at quality 0.5 (0.4 plus a downscale for >2x, 0.3 and a further
         0.6 downscale for >4x)
      2. quality 0.3
      3. half the dimensions at quality 0.3
      4. a 300px wide thumbnail
    """
    if len(data_url) <= max_size:
        return data_url

    img = _load(data_url)
    width, height = img.size
    quality = 0.5

    if len(data_url) > max_size * 2:
        scale = min(1.0, math.sqrt(max_size / len(data_url)) * 2.5)
        width = math.floor(width * scale)
        height = math.floor(height * scale)
        quality = 0.4

    if len(data_url) > max_size * 4:
        width = math.floor(width * 0.6)
        height = math.floor(height * 0.6)
        quality = 0.3

    compressed = _encode_jpeg(img, width, height, quality)

    if len(compressed) > max_size:
        compressed = _encode_jpeg(img, width, height, 0.3)

    if len(compressed) > max_size:
        compressed = _encode_jpeg(img, math.floor(width * 0.5), math.floor(height * 0.5), 0.3)

    if len(compressed) > max_size:
        thumb_w = min(width, THUMBNAIL_WIDTH)
        thumb_h = min(height, THUMBNAIL_WIDTH * (height / max(width, 1)))
        compressed = _encode_jpeg(img, thumb_w, thumb_h, 0.3)

    logger.debug(
        f"Compressed image {get_data_url_size_kb(data_url)}KB -> "
        f"{get_data_url_size_kb(compressed)}KB"
    )
    return compressed


def fit_within(width: int, height: int, max_dimension: int) -> Tuple[int, int]:
    """Scale (width, height) so the longer side is at most max_dimension."""
    if width > height:
        if width > max_dimension:
            height = math.floor(height * (max_dimension / width))
            width = max_dimension
    elif height > max_dimension:
        width = math.floor(width * (max_dimension / height))
        height = max_dimension
    return width, height


def resize_to_max_dimension(data_url: str, max_dimension: int, quality: float = 0.3) -> str:
    """Downscale to max_dimension on the longer side and re-encode as JPEG."""
    img = _load(data_url)
    width, height = fit_within(img.width, img.height, max_dimension)
    return _encode_jpeg(img, width, height, quality)


def prepare_attachment(name: str, mime: str, raw: bytes) -> Attachment:
    """
    Build an attachment from an uploaded file.

    Images are shrunk to 400px on the longer side at quality 0.4; if that
    fails the original is kept.
    """
    if len(raw) > MAX_UPLOAD_BYTES:
        raise UploadTooLargeError("File is too large. Maximum size is 15MB.")

    mime = mime or "application/octet-stream"
    attachment = Attachment(
        id=new_id(),
        name=name,
        type=mime,
        url=to_data_url(raw, mime),
        uploaded_at=utc_now(),
    )

    if mime.startswith("image/"):
        original_kb = round(len(attachment.url) / 1024)
        try:
            attachment.url = resize_to_max_dimension(
                attachment.url, ATTACHMENT_MAX_DIMENSION, quality=0.4
            )
            logger.info(
                f"Compressed image attachment {name}: {original_kb}KB -> "
                f"{round(len(attachment.url) / 1024)}KB"
            )
        except ImageCompressionError as e:
            logger.error(f"Error compressing image {name}: {e}")

    return attachment
