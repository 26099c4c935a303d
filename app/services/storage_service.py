"""Permanent storage for downloaded NFT images.

The backend is picked once per app from STORAGE_BACKEND and cached in
``app.extensions``; callers only ever see ``upload()``.
"""
import logging
import os
import re
import secrets
import time
import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError
from flask import current_app
from app.errors import StorageError

logger = logging.getLogger(__name__)

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]")


class StorageBackend:
    """Write bytes at a storage path and return a URL for them."""

    name = "base"

    def store(self, data, storage_path, content_type):
        raise NotImplementedError


class S3StorageBackend(StorageBackend):
    """S3-compatible object storage (AWS, R2, MinIO, GCS interop)."""

    name = "s3"

    def __init__(
        self,
        bucket,
        endpoint_url=None,
        access_key=None,
        secret_key=None,
        region=None,
        public_url="",
        signed_url_expires=604800,
        client=None,
    ):
        self.bucket = bucket
        self.public_url = public_url
        self.signed_url_expires = signed_url_expires
        self._client = client or boto3.client(
            "s3",
            endpoint_url=endpoint_url or None,
            aws_access_key_id=access_key,
            aws_secret_access_key=secret_key,
            region_name=region,
            config=BotoConfig(signature_version="s3v4"),
        )

    @classmethod
    def from_config(cls, config):
        return cls(
            bucket=config["S3_BUCKET_NAME"],
            endpoint_url=config["S3_ENDPOINT_URL"],
            access_key=config["S3_ACCESS_KEY"],
            secret_key=config["S3_SECRET_KEY"],
            region=config["S3_REGION"],
            public_url=config["S3_PUBLIC_URL"],
            signed_url_expires=config["S3_SIGNED_URL_EXPIRES"],
        )

    def store(self, data, storage_path, content_type):
        try:
            self._client.put_object(
                Bucket=self.bucket,
                Key=storage_path,
                Body=data,
                ContentType=content_type,
            )
        except (ClientError, BotoCoreError) as e:
            raise StorageError(
                f"S3 upload failed: {e}", backend=self.name, storage_path=storage_path
            ) from e
        return self.url_for(storage_path)

    def url_for(self, storage_path):
        """Public CDN URL when configured, otherwise a pre-signed URL."""
        if self.public_url:
            return f"{self.public_url.rstrip('/')}/{storage_path}"
        try:
            return self._client.generate_presigned_url(
                "get_object",
                Params={"Bucket": self.bucket, "Key": storage_path},
                ExpiresIn=self.signed_url_expires,
            )
        except (ClientError, BotoCoreError) as e:
            raise StorageError(
                f"Could not sign URL: {e}", backend=self.name, storage_path=storage_path
            ) from e


class LocalStorageBackend(StorageBackend):
    """Files under a local directory, served from LOCAL_STORAGE_URL."""

    name = "local"

    def __init__(self, root, base_url="/media"):
        self.root = os.path.abspath(root)
        self.base_url = base_url.rstrip("/")

    @classmethod
    def from_config(cls, config):
        return cls(config["LOCAL_STORAGE_DIR"], config["LOCAL_STORAGE_URL"])

    def store(self, data, storage_path, content_type):
        target = os.path.abspath(os.path.join(self.root, storage_path))
        if os.path.commonpath([self.root, target]) != self.root:
            raise StorageError(
                "Storage path escapes storage root",
                backend=self.name,
                storage_path=storage_path,
            )

        tmp_path = f"{target}.{secrets.token_hex(4)}.tmp"
        try:
            os.makedirs(os.path.dirname(target), exist_ok=True)
            with open(tmp_path, "wb") as fh:
                fh.write(data)
            os.replace(tmp_path, target)
        except OSError as e:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise StorageError(
                f"Local write failed: {e}", backend=self.name, storage_path=storage_path
            ) from e
        return f"{self.base_url}/{storage_path}"


BACKENDS = {
    S3StorageBackend.name: S3StorageBackend,
    LocalStorageBackend.name: LocalStorageBackend,
}


def get_backend(app=None):
    """Return the app's storage backend, building it on first use."""
    if app is None:
        app = current_app._get_current_object()
    backend = app.extensions.get("image_storage")
    if backend is None:
        name = app.config["STORAGE_BACKEND"]
        backend_cls = BACKENDS.get(name)
        if backend_cls is None:
            raise ValueError(f"Unknown STORAGE_BACKEND: {name!r}")
        backend = backend_cls.from_config(app.config)
        app.extensions["image_storage"] = backend
        logger.info("Using %s image storage backend", name)
    return backend


def _safe_segment(value, default):
    cleaned = _UNSAFE_CHARS.sub("_", str(value or "")).strip("._")
    return cleaned or default


def build_storage_path(subject_id, collection_id=None, extension="png", prefix=None):
    """Build ``<prefix>/<collection>/<subject>/<epoch_ms>_<rand>.<ext>``.

    Every version of a subject shares the ``<prefix>/<collection>/<subject>/``
    prefix.
    """
    if prefix is None:
        prefix = current_app.config["STORAGE_PREFIX"]
    collection = _safe_segment(collection_id, "unknown-collection")
    subject = _safe_segment(subject_id, "unknown-subject")
    file_name = f"{int(time.time() * 1000)}_{secrets.token_hex(4)}.{extension}"
    return f"{prefix}/{collection}/{subject}/{file_name}"


def upload(data, subject_id, collection_id=None, content_type="image/png",
           extension="png", backend=None):
    """Upload image bytes for a subject.

    Returns:
        (stored_url, storage_path, elapsed_ms)

    Raises:
        StorageError if the backend rejects the write
    """
    if backend is None:
        backend = get_backend()
    storage_path = build_storage_path(subject_id, collection_id, extension)

    start = time.monotonic()
    try:
        stored_url = backend.store(data, storage_path, content_type)
    except StorageError:
        logger.exception(
            "Upload of %d bytes to %s failed (%s)", len(data), storage_path, backend.name
        )
        raise
    elapsed_ms = int((time.monotonic() - start) * 1000)

    logger.info(
        "Stored %d bytes at %s via %s in %dms",
        len(data),
        storage_path,
        backend.name,
        elapsed_ms,
    )
    return stored_url, storage_path, elapsed_ms
