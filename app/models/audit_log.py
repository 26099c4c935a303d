from datetime import datetime, timezone
from app.extensions import db


class AuditLog(db.Model):
    __tablename__ = "audit_log"

    id = db.Column(db.Integer, primary_key=True)
    actor = db.Column(db.String(100), nullable=False, index=True)  # "api", "cli"
    action = db.Column(db.String(50), nullable=False)
    subject_id = db.Column(db.String(255), nullable=True, index=True)
    image_version_id = db.Column(
        db.String(36),
        db.ForeignKey("image_versions.id", ondelete="SET NULL"),
        nullable=True,
    )
    payload = db.Column(db.JSON)
    created_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        index=True,
    )

    ACTIONS = {
        "MARK_CURRENT",
    }

    def __repr__(self):
        return f"<AuditLog {self.action} by {self.actor}>"
