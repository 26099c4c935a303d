from app.models.image_version import ImageVersion
from app.models.image_subject import ImageSubject
from app.models.audit_log import AuditLog

__all__ = ["ImageVersion", "ImageSubject", "AuditLog"]
