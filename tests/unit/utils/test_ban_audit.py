from datetime import UTC, datetime

from share_guard.utils import ban_audit


def test_disabled_audit_writes_nothing(tmp_path):
    path = tmp_path / "banned.log"
    ban_audit.configure_ban_audit(str(path), enabled=False)
    ban_audit.record_ban("user@x", ["198.51.100.1"], "r", None)
    assert not path.exists()


def test_audit_line_format(tmp_path):
    path = tmp_path / "nested" / "banned.log"
    ban_audit.configure_ban_audit(str(path))

    ban_audit.record_ban(
        "user@x",
        ["198.51.100.1", "198.51.100.2"],
        "exceeded address limit: 5 (max 3)",
        datetime(2025, 9, 4, 10, 5, tzinfo=UTC),
    )
    ban_audit.record_ban("user@y", [], "manual", None)

    first, second = path.read_text().splitlines()
    assert first.endswith(
        "BANNED identity=user@x addresses=2 [198.51.100.1, 198.51.100.2] "
        "until=2025-09-04 10:05:00 reason=exceeded address limit: 5 (max 3)"
    )
    assert "until=unlimited" in second


def test_reconfigure_replaces_handler(tmp_path):
    ban_audit.configure_ban_audit(str(tmp_path / "a.log"))
    ban_audit.configure_ban_audit(str(tmp_path / "b.log"))
    ban_audit.record_ban("user@x", [], "r", None)
    assert (tmp_path / "b.log").read_text()
    assert (tmp_path / "a.log").read_text() == ""
