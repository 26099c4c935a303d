"""Download images from time-limited provider URLs."""
import logging
import time
import httpx
from flask import current_app
from app.errors import FetchError

logger = logging.getLogger(__name__)


def _short(url):
    # Provider URLs carry signatures in the query string
    return url if len(url) <= 60 else url[:60] + "..."


def fetch_image(source_url, timeout=None, max_bytes=None):
    """Fetch image bytes from ``source_url``.

    No retries: a failed fetch is reported and the caller decides.

    Returns:
        (bytes, elapsed_ms)

    Raises:
        FetchError on non-2xx responses and transport failures
    """
    if timeout is None:
        timeout = current_app.config["IMAGE_FETCH_TIMEOUT"]
    if max_bytes is None:
        max_bytes = current_app.config["IMAGE_MAX_BYTES"]

    start = time.monotonic()
    try:
        resp = httpx.get(source_url, timeout=timeout, follow_redirects=True)
    except httpx.TransportError as e:
        elapsed_ms = int((time.monotonic() - start) * 1000)
        logger.warning(
            "Image fetch failed for %s after %dms: %s", _short(source_url), elapsed_ms, e
        )
        raise FetchError(
            f"{type(e).__name__}: {e}", status_code=None, url=source_url
        ) from e

    elapsed_ms = int((time.monotonic() - start) * 1000)

    if not resp.is_success:
        logger.warning(
            "Image fetch for %s returned HTTP %d", _short(source_url), resp.status_code
        )
        raise FetchError(
            f"HTTP {resp.status_code}", status_code=resp.status_code, url=source_url
        )

    data = resp.content
    if max_bytes and len(data) > max_bytes:
        raise FetchError(
            f"payload too large: {len(data)} bytes (max {max_bytes})",
            status_code=resp.status_code,
            url=source_url,
        )

    logger.info(
        "Downloaded %d bytes from %s in %dms", len(data), _short(source_url), elapsed_ms
    )
    return data, elapsed_ms
