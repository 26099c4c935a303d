"""Tests for admin CLI commands."""
import json
from app.models.audit_log import AuditLog
from app.services import ledger_service

URL = "https://provider.test/gen/a.png?sig=1"


def _stored(subject_id, content_hash):
    attempt = ledger_service.record_attempt(subject_id, URL)
    return ledger_service.finalize_success(
        subject_id, content_hash, f"/media/{content_hash}.png", f"p/{content_hash}.png", 10,
        version_id=attempt.id,
    )


def test_request_image(app, db, storage, remote_images, make_png):
    remote_images.serve(URL, make_png())
    result = app.test_cli_runner().invoke(
        args=["request-image", "nft-42", URL, "--prompt", "mage"]
    )
    assert result.exit_code == 0, result.output
    assert "[stored]" in result.output
    assert ledger_service.get_current("nft-42").prompt_used == "mage"


def test_request_image_failure(app, db, storage, remote_images):
    remote_images.serve(URL, b"", status=500)
    result = app.test_cli_runner().invoke(args=["request-image", "nft-42", URL])
    assert result.exit_code != 0
    assert "HTTP 500" in result.output


def test_image_history(app, db):
    first = _stored("nft-42", "h1")
    second = _stored("nft-42", "h2")

    result = app.test_cli_runner().invoke(args=["image-history", "nft-42"])

    assert result.exit_code == 0, result.output
    lines = result.output.strip().splitlines()
    assert lines[0].startswith(f"* {second.id}")
    assert lines[1].startswith(f"  {first.id}")


def test_image_history_empty(app, db):
    result = app.test_cli_runner().invoke(args=["image-history", "nft-none"])
    assert "No image versions" in result.output


def test_mark_current(app, db):
    first = _stored("nft-42", "h1")
    _stored("nft-42", "h2")

    result = app.test_cli_runner().invoke(args=["mark-current", "nft-42", first.id])

    assert result.exit_code == 0, result.output
    assert ledger_service.get_current("nft-42").id == first.id
    assert AuditLog.query.filter_by(actor="cli", action="MARK_CURRENT").count() == 1


def test_mark_current_unknown(app, db):
    result = app.test_cli_runner().invoke(args=["mark-current", "nft-42", "missing"])
    assert result.exit_code != 0
    assert "not found" in result.output


def test_storage_stats(app, db):
    _stored("nft-42", "h1")
    result = app.test_cli_runner().invoke(args=["storage-stats"])
    assert result.exit_code == 0
    assert json.loads(result.output)["stored_images"] == 1
