import os
from flask import Flask
from dotenv import load_dotenv

load_dotenv()


def _config_name():
    name = os.environ.get("FLASK_ENV")
    if name:
        return name
    # Managed platforms set PORT; never fall back to debug settings there
    if os.environ.get("RAILWAY_ENVIRONMENT") or os.environ.get("PORT"):
        return "production"
    return "development"


def create_app(config_name=None):
    flask_app = Flask(__name__)

    from app.config import config_map

    config_cls = config_map.get(config_name or _config_name(), config_map["development"])
    flask_app.config.from_object(config_cls)
    if hasattr(config_cls, "init_app"):
        config_cls.init_app(flask_app)

    from app.extensions import db, migrate, init_redis, init_storage

    db.init_app(flask_app)
    migrate.init_app(flask_app, db)
    init_redis(flask_app)
    init_storage(flask_app)

    # Ledger tables must be registered before Alembic autogenerate runs
    from app.models import ImageVersion, ImageSubject, AuditLog  # noqa: F401

    from app.blueprints.api import api_bp

    flask_app.register_blueprint(api_bp, url_prefix="/api")

    from app.cli import register_cli

    register_cli(flask_app)
    _register_health(flask_app)

    return flask_app


def _register_health(flask_app):
    @flask_app.route("/health")
    def health():
        import app.extensions as ext
        from app.services.storage_service import get_backend

        checks = {"status": "ok"}
        try:
            ext.db.session.execute(ext.db.text("SELECT 1"))
            checks["db"] = "ok"
        except Exception:
            flask_app.logger.exception("Health check: ledger database unreachable")
            checks["db"] = "error"
            checks["status"] = "degraded"

        if ext.redis_client is None:
            checks["queue"] = "inline"
        else:
            try:
                ext.redis_client.ping()
                checks["queue"] = "ok"
            except Exception:
                flask_app.logger.exception("Health check: image queue unreachable")
                checks["queue"] = "error"
                checks["status"] = "degraded"

        checks["storage"] = get_backend(flask_app).name
        return checks, 200 if checks["status"] == "ok" else 503
