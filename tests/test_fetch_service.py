"""Tests for downloading provider URLs."""
import httpx
import pytest
from app.errors import FetchError
from app.services.fetch_service import fetch_image

URL = "https://provider.test/img/abc.png?sig=xyz"


def test_fetch_returns_bytes_and_elapsed(app, remote_images, make_png):
    body = make_png()
    remote_images.serve(URL, body)

    data, elapsed_ms = fetch_image(URL)

    assert data == body
    assert isinstance(elapsed_ms, int) and elapsed_ms >= 0


def test_fetch_uses_configured_timeout(app, remote_images):
    remote_images.serve(URL, b"x")
    fetch_image(URL)
    _, kwargs = remote_images.calls[0]
    assert kwargs["timeout"] == app.config["IMAGE_FETCH_TIMEOUT"]
    assert kwargs["follow_redirects"] is True


def test_fetch_non_2xx_raises_with_status(app, remote_images):
    remote_images.serve(URL, b"expired", status=403)
    with pytest.raises(FetchError) as exc:
        fetch_image(URL)
    assert exc.value.status_code == 403
    assert exc.value.reason == "HTTP 403"


def test_fetch_transport_error_has_no_status(app, remote_images):
    remote_images.fail(URL, httpx.ConnectError("connection reset"))
    with pytest.raises(FetchError) as exc:
        fetch_image(URL)
    assert exc.value.status_code is None
    assert "ConnectError" in exc.value.reason


def test_fetch_timeout(app, remote_images):
    remote_images.fail(URL, httpx.ReadTimeout("timed out"))
    with pytest.raises(FetchError) as exc:
        fetch_image(URL, timeout=1)
    assert "ReadTimeout" in exc.value.reason


def test_fetch_rejects_oversized_payload(app, remote_images):
    remote_images.serve(URL, b"x" * 100)
    with pytest.raises(FetchError) as exc:
        fetch_image(URL, max_bytes=10)
    assert "too large" in exc.value.reason
