import io
import httpx
import pytest
from PIL import Image as PILImage
from app import create_app
from app.extensions import db as _db
from app.services import fetch_service
from app.services.storage_service import LocalStorageBackend


@pytest.fixture(scope="session")
def app():
    """Create application for testing."""
    app = create_app("testing")
    with app.app_context():
        yield app


@pytest.fixture
def db(app):
    """Fresh schema per test; ledger operations commit."""
    _db.create_all()
    yield _db
    _db.session.remove()
    _db.drop_all()


@pytest.fixture
def client(app, db):
    return app.test_client()


@pytest.fixture
def storage(app, tmp_path):
    """Local storage backend rooted in a temp dir."""
    backend = LocalStorageBackend(str(tmp_path / "media"), "/media")
    app.extensions["image_storage"] = backend
    yield backend
    app.extensions.pop("image_storage", None)


@pytest.fixture
def make_png():
    def _make_png(color=(255, 0, 0), size=(8, 8)):
        buffer = io.BytesIO()
        PILImage.new("RGB", size, color).save(buffer, format="PNG")
        return buffer.getvalue()

    return _make_png


class RemoteImages:
    """Canned responses for provider URLs."""

    def __init__(self):
        self.responses = {}
        self.calls = []

    def serve(self, url, body, status=200):
        self.responses[url] = (status, body)

    def fail(self, url, exc):
        self.responses[url] = exc

    def get(self, url, **kwargs):
        self.calls.append((url, kwargs))
        outcome = self.responses[url]
        if isinstance(outcome, Exception):
            raise outcome
        status, body = outcome
        return httpx.Response(status, content=body, request=httpx.Request("GET", url))


@pytest.fixture
def remote_images(monkeypatch):
    remote = RemoteImages()
    monkeypatch.setattr(fetch_service.httpx, "get", remote.get)
    return remote
