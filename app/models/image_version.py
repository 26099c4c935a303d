import uuid
from datetime import datetime, timezone
from app.extensions import db


def _utcnow():
    return datetime.now(timezone.utc)


def _isoformat(value):
    return value.isoformat() if value else None


class ImageVersion(db.Model):
    """One generated-image attempt for an NFT token.

    Rows are append-only. A retry or a replacement image is a new row; at
    most one row per subject has ``is_current`` set.
    """

    __tablename__ = "image_versions"

    id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    subject_id = db.Column(db.String(255), nullable=False, index=True)
    nft_id = db.Column(db.String(255))
    collection_id = db.Column(db.String(255), index=True)
    generation_request_id = db.Column(db.String(255))

    # Generation details
    prompt_used = db.Column(db.Text, nullable=False, default="")
    model_used = db.Column(db.String(50), default="dall-e-3")
    quality = db.Column(db.String(20), default="standard")  # standard, hd

    # Image data
    source_url = db.Column(db.Text, nullable=False)
    source_url_expires_at = db.Column(db.DateTime(timezone=True))
    stored_url = db.Column(db.Text)
    storage_path = db.Column(db.String(1024))
    storage_backend = db.Column(db.String(20))
    content_hash = db.Column(db.String(64), index=True)  # sha256 hex
    size_bytes = db.Column(db.Integer)
    content_type = db.Column(db.String(50))
    width = db.Column(db.Integer)
    height = db.Column(db.Integer)

    # NFT state at generation time
    metadata_snapshot = db.Column(db.JSON, default=dict)
    traits_snapshot = db.Column(db.JSON, default=dict)
    power_levels_snapshot = db.Column(db.JSON, default=dict)
    player_info_snapshot = db.Column(db.JSON, default=dict)
    rarity_score = db.Column(db.Numeric(10, 4))

    is_current = db.Column(db.Boolean, nullable=False, default=False, index=True)
    status = db.Column(db.String(20), nullable=False, default="pending", index=True)
    error_message = db.Column(db.Text)

    generated_at = db.Column(
        db.DateTime(timezone=True), nullable=False, default=_utcnow, index=True
    )
    downloaded_at = db.Column(db.DateTime(timezone=True))
    stored_at = db.Column(db.DateTime(timezone=True))
    marked_current_at = db.Column(db.DateTime(timezone=True))

    # Analytics
    generation_duration_ms = db.Column(db.Integer)
    download_duration_ms = db.Column(db.Integer)
    storage_duration_ms = db.Column(db.Integer)

    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    __table_args__ = (
        # At most one current image per subject, enforced by the database
        db.Index(
            "uq_image_versions_current",
            "subject_id",
            unique=True,
            postgresql_where=db.text("is_current"),
            sqlite_where=db.text("is_current = 1"),
        ),
        db.Index("ix_image_versions_subject_hash", "subject_id", "content_hash"),
    )

    STATUSES = {"pending", "downloaded", "stored", "failed"}
    TERMINAL_STATUSES = {"stored", "failed"}

    @property
    def is_terminal(self):
        return self.status in self.TERMINAL_STATUSES

    def to_dict(self):
        return {
            "id": self.id,
            "subject_id": self.subject_id,
            "nft_id": self.nft_id,
            "collection_id": self.collection_id,
            "generation_request_id": self.generation_request_id,
            "prompt_used": self.prompt_used,
            "model_used": self.model_used,
            "quality": self.quality,
            "source_url": self.source_url,
            "source_url_expires_at": _isoformat(self.source_url_expires_at),
            "stored_url": self.stored_url,
            "storage_path": self.storage_path,
            "storage_backend": self.storage_backend,
            "content_hash": self.content_hash,
            "size_bytes": self.size_bytes,
            "content_type": self.content_type,
            "width": self.width,
            "height": self.height,
            "metadata_snapshot": self.metadata_snapshot or {},
            "traits_snapshot": self.traits_snapshot or {},
            "power_levels_snapshot": self.power_levels_snapshot or {},
            "player_info_snapshot": self.player_info_snapshot or {},
            "rarity_score": str(self.rarity_score) if self.rarity_score is not None else None,
            "is_current": bool(self.is_current),
            "status": self.status,
            "error_message": self.error_message,
            "generated_at": _isoformat(self.generated_at),
            "downloaded_at": _isoformat(self.downloaded_at),
            "stored_at": _isoformat(self.stored_at),
            "marked_current_at": _isoformat(self.marked_current_at),
            "download_duration_ms": self.download_duration_ms,
            "storage_duration_ms": self.storage_duration_ms,
            "generation_duration_ms": self.generation_duration_ms,
        }

    def __repr__(self):
        flag = " current" if self.is_current else ""
        return f"<ImageVersion {self.subject_id} {self.id[:8]} [{self.status}]{flag}>"
