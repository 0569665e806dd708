"""Tests for the credential audit log."""

import json
from datetime import datetime, timezone

from portalauth.auth.audit import AuditEvent, AuditLogger


def _event(**overrides):
    data = dict(
        action="token_refresh",
        status="failed",
        account_id=123,
        app_id=42,
        detail="unavailable",
        timestamp=datetime(2024, 5, 1, tzinfo=timezone.utc),
    )
    data.update(overrides)
    return AuditEvent(**data)


def test_records_are_chained_and_verifiable(tmp_path):
    audit = AuditLogger(tmp_path)

    audit.record(_event())
    audit.record(_event(app_id=43))

    events = list(audit.iter_events())
    assert [e["app_id"] for e in events] == [42, 43]
    assert events[0]["chain_prev"] is None
    assert events[1]["chain_prev"] == events[0]["chain_hash"]
    assert audit.verify()


def test_tampering_breaks_the_chain(tmp_path):
    audit = AuditLogger(tmp_path)
    audit.record(_event())
    audit.record(_event(app_id=43))

    lines = audit.path.read_text().splitlines()
    first = json.loads(lines[0])
    first["status"] = "succeeded"
    lines[0] = json.dumps(first, separators=(",", ":"))
    audit.path.write_text("\n".join(lines) + "\n")

    assert not audit.verify()


def test_record_refresh_failure(tmp_path):
    audit = AuditLogger(tmp_path)

    audit.record_refresh_failure(account_id=1, app_id=2, detail="boom", recoverable=True)

    (event,) = list(audit.iter_events())
    assert event["action"] == "token_refresh"
    assert event["status"] == "failed"
    assert event["metadata"] == {"recoverable": True}


def test_rotation_starts_a_new_chain(tmp_path):
    audit = AuditLogger(tmp_path, max_bytes=10)

    audit.record(_event())
    audit.record(_event(app_id=43))

    rotated = sorted(tmp_path.glob("credentials-audit-*.log"))
    assert rotated
    assert not audit.path.exists() or audit.verify()
    manifest = json.loads((tmp_path / "audit_manifest.json").read_text())
    assert manifest["last_hash"] is None
    assert manifest["rotated"]


def test_missing_log_iterates_nothing(tmp_path):
    audit = AuditLogger(tmp_path)

    assert list(audit.iter_events()) == []
    assert audit.verify()
