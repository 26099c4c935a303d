"""RQ worker job: download and store a generated NFT image."""
import logging
from flask import current_app, has_app_context
from app import create_app
from app.errors import FetchError, StorageError
from app.services import image_version_service

logger = logging.getLogger(__name__)

_worker_app = None


def _get_app():
    """Return an app instance for worker execution.

    Reuse the current app when already inside an app context (tests/CLI),
    otherwise lazily create the worker app once.
    """
    global _worker_app
    if has_app_context():
        return current_app._get_current_object()
    if _worker_app is None:
        _worker_app = create_app()
    return _worker_app


def store_image_version(subject_id, source_url, prompt_metadata=None, version_id=None):
    """Run the image pipeline for an attempt recorded by the API.

    Enqueued without an rq Retry: a failed attempt stays ``failed`` in the
    ledger and a retry is a new request.
    """
    app = _get_app()
    with app.app_context():
        try:
            version = image_version_service.request_image_version(
                subject_id,
                source_url,
                prompt_metadata,
                version_id=version_id,
            )
        except (FetchError, StorageError) as e:
            logger.warning("Image job for %s failed: %s", subject_id, e.reason)
            raise

        logger.info(
            "Image job for %s finished: version %s [%s]",
            subject_id,
            version.id,
            version.status,
        )
        return version.id
