from datetime import datetime, timezone
from app.extensions import db


class ImageSubject(db.Model):
    """One row per NFT token that has ever had an image attempt.

    Serves as the lock row for currency changes and mirrors the current
    version id.
    """

    __tablename__ = "image_subjects"

    subject_id = db.Column(db.String(255), primary_key=True)
    current_version_id = db.Column(
        db.String(36),
        db.ForeignKey("image_versions.id", ondelete="SET NULL"),
        nullable=True,
    )
    created_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    current_version = db.relationship("ImageVersion", lazy="select")

    def __repr__(self):
        return f"<ImageSubject {self.subject_id} -> {self.current_version_id}>"
