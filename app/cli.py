"""Flask CLI commands for admin operations."""
import json
import click


def register_cli(app):
    @app.cli.command("init-db")
    def init_db():
        """Create all tables (use migrations in production)."""
        from app.extensions import db

        db.create_all()
        click.echo("Database initialized.")

    @app.cli.command("request-image")
    @click.argument("subject_id")
    @click.argument("source_url")
    @click.option("--prompt", default="", help="Prompt used to generate the image")
    @click.option("--collection", default=None, help="Collection id for the storage path")
    def request_image(subject_id, source_url, prompt, collection):
        """Download SOURCE_URL and store it as a new version of SUBJECT_ID."""
        from app.errors import FetchError, StorageError
        from app.services.image_version_service import request_image_version

        metadata = {"prompt": prompt, "collection_id": collection}
        try:
            version = request_image_version(subject_id, source_url, metadata)
        except (FetchError, StorageError) as e:
            raise click.ClickException(f"Image not stored: {e.reason}")
        click.echo(f"{version.id} [{version.status}] {version.stored_url}")

    @app.cli.command("image-history")
    @click.argument("subject_id")
    @click.option("--limit", default=20, type=int)
    def image_history(subject_id, limit):
        """List image versions for a subject, newest first."""
        from app.services.ledger_service import get_history

        versions = get_history(subject_id, limit=limit)
        if not versions:
            click.echo(f"No image versions for {subject_id}.")
            return
        for v in versions:
            marker = "*" if v.is_current else " "
            click.echo(
                f"{marker} {v.id}  {v.status:<10} {v.generated_at:%Y-%m-%d %H:%M:%S}  "
                f"{v.stored_url or v.error_message or ''}"
            )

    @app.cli.command("mark-current")
    @click.argument("subject_id")
    @click.argument("version_id")
    def mark_current(subject_id, version_id):
        """Make a stored historical version the current image."""
        from app.errors import ImageVersionNotFound, InvalidImageVersion
        from app.extensions import db
        from app.models.audit_log import AuditLog
        from app.services import ledger_service

        previous = ledger_service.get_current(subject_id)
        try:
            version = ledger_service.mark_current(version_id, subject_id)
        except (ImageVersionNotFound, InvalidImageVersion) as e:
            raise click.ClickException(str(e))

        db.session.add(
            AuditLog(
                actor="cli",
                action="MARK_CURRENT",
                subject_id=subject_id,
                image_version_id=version.id,
                payload={"previous_version_id": previous.id if previous else None},
            )
        )
        db.session.commit()
        click.echo(f"{version.id} is now current for {subject_id}")

    @app.cli.command("storage-stats")
    def storage_stats():
        """Show image storage statistics."""
        from app.services.ledger_service import get_storage_stats

        click.echo(json.dumps(get_storage_stats(), indent=2))
