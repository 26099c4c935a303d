"""End-to-end pipeline scenarios with a fake provider and local storage."""
import os
from unittest.mock import MagicMock
import httpx
import pytest
from app.errors import FetchError, StorageError
from app.models.image_version import ImageVersion
from app.services.image_version_service import (
    get_current_image,
    get_image_history,
    request_image_version,
)

URL_A = "https://provider.test/gen/a.png?sig=1"
URL_B = "https://provider.test/gen/b.png?sig=2"


def test_first_generation_becomes_current(db, storage, remote_images, make_png):
    remote_images.serve(URL_A, make_png((255, 0, 0)))

    version = request_image_version("nft-42", URL_A, {"prompt": "red wizard"})

    current = get_current_image("nft-42")
    assert current.id == version.id
    assert current.status == "stored"
    assert current.is_current is True
    assert current.storage_backend == "local"
    assert current.content_type == "image/png"
    assert current.prompt_used == "red wizard"
    assert current.storage_path.startswith("nft-images/unknown-collection/nft-42/")
    assert os.path.exists(os.path.join(storage.root, current.storage_path))


def test_second_generation_replaces_current(db, storage, remote_images, make_png):
    remote_images.serve(URL_A, make_png((255, 0, 0)))
    remote_images.serve(URL_B, make_png((0, 255, 0)))

    first = request_image_version("nft-42", URL_A)
    second = request_image_version("nft-42", URL_B)

    history = get_image_history("nft-42")
    assert [v.id for v in history] == [second.id, first.id]
    assert history[0].is_current is True
    assert history[1].is_current is False
    assert get_current_image("nft-42").id == second.id


def test_identical_bytes_are_not_stored_twice(db, storage, remote_images, make_png):
    same = make_png((10, 20, 30))
    remote_images.serve(URL_A, same)
    remote_images.serve(URL_B, same)
    first = request_image_version("nft-42", URL_A)
    backend = MagicMock(wraps=storage)
    backend.name = storage.name

    again = request_image_version("nft-42", URL_B, backend=backend)

    assert again.id == first.id
    backend.store.assert_not_called()
    assert len(get_image_history("nft-42")) == 1
    assert ImageVersion.query.filter_by(status="stored").count() == 1


def test_fetch_failure_keeps_previous_current(db, storage, remote_images, make_png):
    remote_images.serve(URL_A, make_png())
    before = request_image_version("nft-42", URL_A)
    remote_images.fail(URL_B, httpx.ConnectTimeout("timed out"))

    with pytest.raises(FetchError):
        request_image_version("nft-42", URL_B)

    assert get_current_image("nft-42").id == before.id
    history = get_image_history("nft-42")
    assert len(history) == 2
    assert history[0].status == "failed"
    assert "ConnectTimeout" in history[0].error_message
    assert history[0].is_current is False


def test_non_image_payload_is_a_fetch_failure(db, storage, remote_images):
    remote_images.serve(URL_A, b"<html>link expired</html>")

    with pytest.raises(FetchError) as exc:
        request_image_version("nft-42", URL_A)

    assert "invalid image payload" in exc.value.reason
    assert get_image_history("nft-42")[0].status == "failed"
    assert get_current_image("nft-42") is None


def test_storage_failure_is_recorded_and_raised(db, remote_images, make_png):
    remote_images.serve(URL_A, make_png())
    backend = MagicMock()
    backend.name = "s3"
    backend.store.side_effect = StorageError("quota exceeded", backend="s3")

    with pytest.raises(StorageError):
        request_image_version("nft-42", URL_A, backend=backend)

    (attempt,) = get_image_history("nft-42")
    assert attempt.status == "failed"
    assert attempt.error_message == "quota exceeded"
    assert attempt.content_hash is not None
    assert get_current_image("nft-42") is None


def test_retry_after_failure_creates_new_record(db, storage, remote_images, make_png):
    remote_images.serve(URL_A, b"oops", status=500)
    with pytest.raises(FetchError):
        request_image_version("nft-42", URL_A)

    remote_images.serve(URL_A, make_png())
    version = request_image_version("nft-42", URL_A)

    history = get_image_history("nft-42")
    assert [v.status for v in history] == ["stored", "failed"]
    assert get_current_image("nft-42").id == version.id


def test_continue_recorded_attempt(db, storage, remote_images, make_png):
    from app.services import ledger_service

    remote_images.serve(URL_A, make_png())
    attempt = ledger_service.record_attempt("nft-42", URL_A, {"collection_id": "wizards"})

    version = request_image_version("nft-42", URL_A, version_id=attempt.id)

    assert version.id == attempt.id
    assert version.storage_path.startswith("nft-images/wizards/nft-42/")
    assert len(get_image_history("nft-42")) == 1
