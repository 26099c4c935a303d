import hashlib
import io
from PIL import Image as PILImage, UnidentifiedImageError


EXTENSIONS = {
    "PNG": "png",
    "JPEG": "jpg",
    "WEBP": "webp",
    "GIF": "gif",
}


def content_hash(image_bytes):
    """SHA-256 hex digest of raw image bytes, used for deduplication."""
    return hashlib.sha256(image_bytes).hexdigest()


def describe_image(image_bytes):
    """Identify a downloaded image without re-encoding it.

    Stored bytes must stay identical to the downloaded ones, otherwise the
    content hash would not match what is in storage.

    Returns:
        dict with content_type, extension, width, height

    Raises:
        ValueError if the bytes are not a supported image
    """
    try:
        img = PILImage.open(io.BytesIO(image_bytes))
        img.verify()
    except (UnidentifiedImageError, OSError, SyntaxError) as e:
        raise ValueError("Invalid image file") from e

    fmt = (img.format or "").upper()
    if fmt not in EXTENSIONS:
        raise ValueError(f"Unsupported image format: {fmt or 'unknown'}")

    width, height = img.size
    return {
        "content_type": PILImage.MIME.get(fmt, "application/octet-stream"),
        "extension": EXTENSIONS[fmt],
        "width": width,
        "height": height,
    }
