"""Turn a provider image URL into a stored, versioned NFT image."""
import logging
import time
from app.extensions import db
from app.errors import FetchError, InvalidImageVersion, StorageError
from app.services import fetch_service, image_service, ledger_service, storage_service

logger = logging.getLogger(__name__)


def request_image_version(subject_id, source_url, prompt_metadata=None, backend=None,
                          version_id=None):
    """Download, deduplicate, store and record one generated image.

    A ``pending`` row is committed first so failed attempts stay auditable.
    Pass ``version_id`` to continue an attempt that was recorded earlier
    (the queued path).

    Returns:
        the current ImageVersion for the subject after this attempt; for a
        duplicate download that is the existing stored version

    Raises:
        FetchError, StorageError after recording the attempt as failed
    """
    start = time.monotonic()

    if version_id is None:
        attempt = ledger_service.record_attempt(subject_id, source_url, prompt_metadata)
    else:
        attempt = ledger_service.get_version(version_id)
        if attempt.status != "pending":
            raise InvalidImageVersion(
                f"Image version {version_id} is {attempt.status}, expected pending"
            )
    version_id = attempt.id
    collection_id = attempt.collection_id

    try:
        data, download_ms = fetch_service.fetch_image(source_url)
        try:
            info = image_service.describe_image(data)
        except ValueError as e:
            raise FetchError(
                f"invalid image payload: {e}", status_code=None, url=source_url
            ) from e

        digest = image_service.content_hash(data)
        ledger_service.mark_downloaded(version_id, digest, len(data), download_ms, info)

        duplicate = ledger_service.find_stored_duplicate(subject_id, digest)
        if duplicate is not None:
            # Identical bytes are already stored; skip the upload
            return ledger_service.finalize_success(
                subject_id,
                digest,
                duplicate.stored_url,
                duplicate.storage_path,
                duplicate.size_bytes,
                version_id=version_id,
            )

        if backend is None:
            backend = storage_service.get_backend()
        stored_url, storage_path, storage_ms = storage_service.upload(
            data,
            subject_id,
            collection_id=collection_id,
            content_type=info["content_type"],
            extension=info["extension"],
            backend=backend,
        )
    except (FetchError, StorageError) as e:
        ledger_service.finalize_failure(subject_id, e.reason, version_id=version_id)
        raise
    except Exception as e:
        logger.exception("Unexpected error storing image for %s", subject_id)
        db.session.rollback()
        ledger_service.finalize_failure(subject_id, f"internal error: {e}", version_id=version_id)
        raise

    version = ledger_service.finalize_success(
        subject_id,
        digest,
        stored_url,
        storage_path,
        len(data),
        version_id=version_id,
        storage_backend=backend.name,
        storage_ms=storage_ms,
    )
    if version.id != version_id:
        logger.warning(
            "Upload %s duplicated version %s stored concurrently; blob left in place",
            storage_path,
            version.id,
        )

    logger.info(
        "Image pipeline for %s finished in %dms",
        subject_id,
        int((time.monotonic() - start) * 1000),
    )
    return version


def get_current_image(subject_id):
    return ledger_service.get_current(subject_id)


def get_image_history(subject_id, limit=None):
    return ledger_service.get_history(subject_id, limit=limit)
