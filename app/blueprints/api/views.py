"""JSON endpoints for requesting and browsing NFT image versions."""
import hmac
import logging
from functools import wraps
from urllib.parse import urlsplit
from flask import current_app, request
import app.extensions as ext
from app.blueprints.api import api_bp
from app.errors import (
    FetchError,
    ImageVersionNotFound,
    InvalidImageVersion,
    StorageError,
)
from app.models.audit_log import AuditLog
from app.services import image_version_service, ledger_service
from app.workers.image_storage import store_image_version

logger = logging.getLogger(__name__)

MAX_HISTORY = 200


def admin_required(view):
    """Require X-Admin-Token to match ADMIN_API_TOKEN."""

    @wraps(view)
    def wrapped(*args, **kwargs):
        expected = current_app.config["ADMIN_API_TOKEN"]
        supplied = request.headers.get("X-Admin-Token", "")
        if not expected or not hmac.compare_digest(supplied, expected):
            return {"error": "forbidden"}, 403
        return view(*args, **kwargs)

    return wrapped


@api_bp.errorhandler(ImageVersionNotFound)
def version_not_found(e):
    return {"error": str(e)}, 404


@api_bp.errorhandler(InvalidImageVersion)
def invalid_version(e):
    return {"error": str(e)}, 409


def _is_absolute_url(url):
    parts = urlsplit(url)
    return parts.scheme in ("http", "https") and bool(parts.netloc)


@api_bp.route("/nfts/<subject_id>/images", methods=["POST"])
def create_image_version(subject_id):
    """Store the image behind a provider URL as a new version.

    Body: {"source_url": ..., "prompt": ..., "async": bool, ...metadata}
    """
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        payload = {}
    source_url = str(payload.pop("source_url", "") or "").strip()
    if not _is_absolute_url(source_url):
        return {"error": "source_url must be an absolute http(s) URL"}, 400

    run_async = bool(payload.pop("async", current_app.config["IMAGE_JOBS_ASYNC"]))
    attempt = ledger_service.record_attempt(subject_id, source_url, payload)

    if run_async:
        job = ext.task_queue.enqueue(
            store_image_version,
            subject_id,
            source_url,
            None,
            attempt.id,
            job_timeout=300,
        )
        if job is not None:
            return {"version": attempt.to_dict(), "job_id": job.id}, 202
        logger.warning("Queue unavailable, storing image for %s inline", subject_id)

    try:
        version = image_version_service.request_image_version(
            subject_id, source_url, version_id=attempt.id
        )
    except FetchError as e:
        return {
            "error": "Could not download the generated image",
            "reason": e.reason,
            "version_id": attempt.id,
        }, 502
    except StorageError:
        return {
            "error": "Could not store the generated image",
            "version_id": attempt.id,
        }, 502

    return {"version": version.to_dict(), "duplicate": version.id != attempt.id}, 201


@api_bp.route("/nfts/<subject_id>/images/current")
def current_image(subject_id):
    version = image_version_service.get_current_image(subject_id)
    if version is None:
        return {"error": f"No current image for {subject_id}"}, 404
    return {"version": version.to_dict()}


@api_bp.route("/nfts/<subject_id>/images")
def image_history(subject_id):
    limit = request.args.get("limit", MAX_HISTORY, type=int)
    limit = max(1, min(limit, MAX_HISTORY))
    versions = image_version_service.get_image_history(subject_id, limit=limit)
    return {
        "subject_id": subject_id,
        "count": len(versions),
        "versions": [v.to_dict() for v in versions],
    }


@api_bp.route("/nfts/<subject_id>/images/<version_id>/current", methods=["POST"])
@admin_required
def mark_image_current(subject_id, version_id):
    previous = ledger_service.get_current(subject_id)
    previous_id = previous.id if previous else None

    version = ledger_service.mark_current(version_id, subject_id)

    ext.db.session.add(
        AuditLog(
            actor="api",
            action="MARK_CURRENT",
            subject_id=subject_id,
            image_version_id=version.id,
            payload={"previous_version_id": previous_id},
        )
    )
    ext.db.session.commit()
    return {"version": version.to_dict(), "previous_version_id": previous_id}


@api_bp.route("/images/stats")
@admin_required
def storage_stats():
    return ledger_service.get_storage_stats()
