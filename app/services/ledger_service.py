"""Append-only history of NFT image versions.

Every change to which version is current runs in one transaction that first
locks the subject's ``image_subjects`` row, so concurrent finalizers for the
same subject queue up and the last one to commit wins. The partial unique
index on ``image_versions`` backs this up at the database level.
"""
import logging
import uuid
from datetime import datetime, timedelta, timezone
from flask import current_app
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from app.extensions import db
from app.errors import ConcurrencyConflict, ImageVersionNotFound, InvalidImageVersion
from app.models.image_subject import ImageSubject
from app.models.image_version import ImageVersion

logger = logging.getLogger(__name__)

# Metadata keys copied onto their own columns; everything else lands in
# metadata_snapshot.
COLUMN_KEYS = (
    "nft_id",
    "collection_id",
    "generation_request_id",
    "model_used",
    "quality",
    "rarity_score",
    "generation_duration_ms",
    "traits_snapshot",
    "power_levels_snapshot",
    "player_info_snapshot",
)

OPEN_STATUSES = ("pending", "downloaded")


def _utcnow():
    return datetime.now(timezone.utc)


def _lock_subject(subject_id):
    """Get-or-create the subject row and hold a row lock on it."""
    query = ImageSubject.query.filter_by(subject_id=subject_id)
    subject = query.with_for_update().populate_existing().one_or_none()
    if subject is None:
        try:
            with db.session.begin_nested():
                db.session.add(ImageSubject(subject_id=subject_id))
        except IntegrityError:
            logger.info("Subject %s was created by a concurrent writer", subject_id)
        subject = query.with_for_update().populate_existing().one()
    return subject


def _clear_current(subject_id, keep_id, now):
    """Unset is_current on every other version of the subject in one UPDATE."""
    return (
        ImageVersion.query.filter(
            ImageVersion.subject_id == subject_id,
            ImageVersion.is_current.is_(True),
            ImageVersion.id != keep_id,
        ).update(
            {"is_current": False, "updated_at": now},
            synchronize_session="fetch",
        )
    )


def _reload_version(version_id):
    """Read a version from the database, overwriting any copy the session holds."""
    return ImageVersion.query.filter_by(id=version_id).populate_existing().one_or_none()


def _load_attempt(subject_id, version_id=None):
    """The named version, or the newest still-open attempt for the subject."""
    if version_id is None:
        return (
            ImageVersion.query.filter(
                ImageVersion.subject_id == subject_id,
                ImageVersion.status.in_(OPEN_STATUSES),
            )
            .order_by(ImageVersion.generated_at.desc())
            .populate_existing()
            .first()
        )

    version = _reload_version(version_id)
    if version is None:
        raise ImageVersionNotFound(f"Image version {version_id} not found")
    if version.subject_id != subject_id:
        raise InvalidImageVersion(
            f"Image version {version_id} belongs to {version.subject_id}, not {subject_id}"
        )
    return version


def record_attempt(subject_id, source_url, metadata=None):
    """Create and commit a ``pending`` version before any download starts."""
    metadata = dict(metadata or {})
    now = _utcnow()

    prompt = metadata.pop("prompt_used", None)
    prompt = metadata.pop("prompt", prompt)

    version = ImageVersion(
        id=str(uuid.uuid4()),
        subject_id=subject_id,
        source_url=source_url,
        prompt_used=prompt or "",
        status="pending",
        is_current=False,
        generated_at=now,
        source_url_expires_at=now + timedelta(days=current_app.config["SOURCE_URL_TTL_DAYS"]),
    )
    for key in COLUMN_KEYS:
        if metadata.get(key) is not None:
            setattr(version, key, metadata.pop(key))
        else:
            metadata.pop(key, None)

    snapshot = metadata.pop("metadata_snapshot", None) or {}
    version.metadata_snapshot = {**metadata, **snapshot}

    db.session.add(version)
    db.session.commit()

    logger.info("Recorded image attempt %s for subject %s", version.id, subject_id)
    return version


def mark_downloaded(version_id, content_hash, size_bytes, download_ms=None, image_info=None):
    """Move a pending attempt to ``downloaded``."""
    version = db.session.get(ImageVersion, version_id)
    if version is None:
        raise ImageVersionNotFound(f"Image version {version_id} not found")
    if version.status != "pending":
        raise InvalidImageVersion(
            f"Image version {version_id} is {version.status}, expected pending"
        )

    image_info = image_info or {}
    version.status = "downloaded"
    version.content_hash = content_hash
    version.size_bytes = size_bytes
    version.download_duration_ms = download_ms
    version.content_type = image_info.get("content_type")
    version.width = image_info.get("width")
    version.height = image_info.get("height")
    version.downloaded_at = _utcnow()
    db.session.commit()
    return version


def find_stored_duplicate(subject_id, content_hash):
    """A stored version of the subject with identical bytes, if any."""
    return (
        ImageVersion.query.filter_by(
            subject_id=subject_id, content_hash=content_hash, status="stored"
        )
        .order_by(ImageVersion.generated_at.asc())
        .first()
    )


def finalize_success(
    subject_id,
    content_hash,
    stored_url,
    storage_path,
    size_bytes,
    version_id=None,
    storage_backend=None,
    storage_ms=None,
    source_url=None,
):
    """Mark an upload as stored and make it the subject's current image.

    If a stored version with the same hash exists it is returned unchanged,
    the in-flight attempt row is discarded and no currency flag moves.
    With no open attempt to finalize, a new row is inserted.

    Raises:
        ConcurrencyConflict if the one-current-per-subject index is violated
    """
    try:
        subject = _lock_subject(subject_id)

        attempt = _load_attempt(subject_id, version_id)
        duplicate = find_stored_duplicate(subject_id, content_hash)
        if duplicate is not None:
            if attempt is not None and attempt.id != duplicate.id and not attempt.is_terminal:
                db.session.delete(attempt)
            db.session.commit()
            logger.info(
                "Duplicate image for %s (hash %s), keeping version %s",
                subject_id,
                content_hash[:12],
                duplicate.id,
            )
            return duplicate

        if attempt is None:
            attempt = ImageVersion(
                id=str(uuid.uuid4()),
                subject_id=subject_id,
                source_url=source_url or stored_url,
                generated_at=_utcnow(),
            )
            db.session.add(attempt)
        elif attempt.is_terminal:
            raise InvalidImageVersion(
                f"Image version {attempt.id} is already {attempt.status}"
            )

        now = _utcnow()
        _clear_current(subject_id, attempt.id, now)

        attempt.status = "stored"
        attempt.content_hash = content_hash
        attempt.stored_url = stored_url
        attempt.storage_path = storage_path
        attempt.size_bytes = size_bytes
        attempt.storage_backend = storage_backend
        attempt.storage_duration_ms = storage_ms
        attempt.error_message = None
        attempt.stored_at = now
        attempt.marked_current_at = now
        attempt.is_current = True
        subject.current_version_id = attempt.id

        db.session.commit()
    except IntegrityError as e:
        db.session.rollback()
        logger.exception("Current-image invariant violated for %s", subject_id)
        raise ConcurrencyConflict(
            f"Concurrent finalize for subject {subject_id}"
        ) from e
    except Exception:
        db.session.rollback()
        raise

    logger.info("Image version %s is now current for %s", attempt.id, subject_id)
    return attempt


def finalize_failure(subject_id, reason, version_id=None):
    """Mark an open attempt ``failed``. Never touches is_current."""
    version = _load_attempt(subject_id, version_id)
    if version is None:
        logger.warning("No open image attempt for %s to mark failed", subject_id)
        return None
    if version.is_terminal:
        logger.warning(
            "Image version %s already %s, not marking failed", version.id, version.status
        )
        return version

    version.status = "failed"
    version.error_message = str(reason)[:2000]
    db.session.commit()

    logger.info("Image attempt %s for %s failed: %s", version.id, subject_id, reason)
    return version


def get_current(subject_id):
    return ImageVersion.query.filter_by(subject_id=subject_id, is_current=True).first()


def get_history(subject_id, limit=None):
    """All versions of a subject, newest first, failed attempts included."""
    query = ImageVersion.query.filter_by(subject_id=subject_id).order_by(
        ImageVersion.generated_at.desc(), ImageVersion.created_at.desc()
    )
    if limit:
        query = query.limit(limit)
    return query.all()


def mark_current(version_id, subject_id):
    """Administrative override: make a historical stored version current."""
    try:
        subject = _lock_subject(subject_id)

        version = _reload_version(version_id)
        if version is None or version.subject_id != subject_id:
            raise ImageVersionNotFound(
                f"Image version {version_id} not found for {subject_id}"
            )
        if version.status != "stored":
            raise InvalidImageVersion(
                f"Image version {version_id} is {version.status}; only stored images can be current"
            )

        now = _utcnow()
        _clear_current(subject_id, version.id, now)
        if not version.is_current:
            version.marked_current_at = now
        version.is_current = True
        subject.current_version_id = version.id

        db.session.commit()
    except IntegrityError as e:
        db.session.rollback()
        logger.exception("Current-image invariant violated for %s", subject_id)
        raise ConcurrencyConflict(
            f"Concurrent mark-current for subject {subject_id}"
        ) from e
    except Exception:
        db.session.rollback()
        raise

    logger.info("Marked image version %s current for %s", version_id, subject_id)
    return version


def _to_mb(size_bytes):
    return round((size_bytes or 0) / (1024 * 1024), 2)


def get_storage_stats():
    """Totals across the whole ledger."""
    total = db.session.query(func.count(ImageVersion.id)).scalar()

    by_status = dict(
        db.session.query(ImageVersion.status, func.count(ImageVersion.id))
        .group_by(ImageVersion.status)
        .all()
    )

    stored_bytes = (
        db.session.query(func.sum(ImageVersion.size_bytes))
        .filter(ImageVersion.status == "stored")
        .scalar()
    )

    collections = (
        db.session.query(
            ImageVersion.collection_id,
            func.count(ImageVersion.id),
            func.sum(ImageVersion.size_bytes),
        )
        .filter(ImageVersion.status == "stored")
        .group_by(ImageVersion.collection_id)
        .order_by(func.count(ImageVersion.id).desc())
        .all()
    )

    return {
        "total_images": total,
        "stored_images": by_status.get("stored", 0),
        "total_size_mb": _to_mb(stored_bytes),
        "by_status": by_status,
        "by_collection": [
            {
                "collection_id": collection_id or "unknown-collection",
                "count": count,
                "size_mb": _to_mb(size),
            }
            for collection_id, count, size in collections
        ],
    }


def get_version(version_id):
    version = db.session.get(ImageVersion, version_id)
    if version is None:
        raise ImageVersionNotFound(f"Image version {version_id} not found")
    return version
