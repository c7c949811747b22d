"""Configuration loading, overrides, validation and logging setup."""

import configparser
import logging

import pytest

from share_guard.config.config import ShareGuardConfig, setup_logging
from share_guard.config.getters import parse_size
from share_guard.config.loader import load_config
from share_guard.exceptions import ConfigError
from share_guard.utils import ban_audit

VALID = """
[policy]
max_addresses = 2
check_interval_seconds = 30

[panel]
url = https://panel.example:2053/base/
username = admin
inbound_id = 4

[ledger]
path = {tmp}/data/bans.json

[logs]
access_log = {tmp}/access.log
accumulated_log = {tmp}/data/accumulated.log

[logging]
log_file = {tmp}/logs/service.log
banned_users_log = {tmp}/logs/banned.log
"""


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "share_guard.conf"
    path.write_text(VALID.format(tmp=tmp_path))
    return path


def test_missing_file_is_written_with_defaults(tmp_path):
    path = tmp_path / "conf" / "share_guard.conf"
    cfg = ShareGuardConfig(str(path))

    assert path.exists()
    written = configparser.ConfigParser(interpolation=None)
    written.read(path)
    assert written.get("policy", "max_addresses") == "3"
    assert cfg.get_policy_config()["ban_duration_minutes"] == 5.0


def test_missing_file_not_written_when_disabled(tmp_path):
    path = tmp_path / "share_guard.conf"
    ShareGuardConfig(str(path), save_missing=False)
    assert not path.exists()


def test_file_values_and_defaults(config_file):
    cfg = ShareGuardConfig(str(config_file))
    policy = cfg.get_policy_config()

    assert policy["max_addresses"] == 2
    assert policy["check_interval_seconds"] == 30.0
    assert policy["grace_period_seconds"] == 0.0
    assert cfg.get_panel_config()["inbound_id"] == 4
    assert cfg.get_firewall_config() == {
        "enabled": True,
        "chain": "INPUT",
        "iptables": "iptables",
        "ip6tables": "ip6tables",
    }
    assert cfg.get_monitoring_config()["enabled"] is False


def test_config_env_var_selects_file(config_file, tmp_path, monkeypatch):
    monkeypatch.setenv("SHARE_GUARD_CONFIG", str(config_file))
    cfg = ShareGuardConfig(str(tmp_path / "other.conf"))
    assert cfg.config_file == str(config_file)
    assert cfg.get_policy_config()["max_addresses"] == 2


def test_env_fills_only_unset_keys(config_file, monkeypatch):
    monkeypatch.setenv("SHARE_GUARD_POLICY_MAX_ADDRESSES", "9")
    monkeypatch.setenv("SHARE_GUARD_POLICY_BAN_DURATION_MINUTES", "0")
    cfg = load_config(str(config_file))

    assert cfg.get("policy", "max_addresses") == "2"
    assert cfg.get("policy", "ban_duration_minutes") == "0"


def test_short_panel_variables(tmp_path, monkeypatch):
    monkeypatch.setenv("PANEL_URL", "http://127.0.0.1:2053/")
    monkeypatch.setenv("PANEL_USER", "ops")
    monkeypatch.setenv("INBOUND_ID", "12")
    monkeypatch.setenv("PANEL_PASS", "hunter2")

    panel = ShareGuardConfig(str(tmp_path / "x.conf"), save_missing=False).get_panel_config()

    assert panel["url"] == "http://127.0.0.1:2053/"
    assert panel["username"] == "ops"
    assert panel["inbound_id"] == 12
    assert panel["password"] == "hunter2"


def test_password_never_written_to_file(tmp_path, monkeypatch):
    monkeypatch.setenv("PANEL_PASS", "hunter2")
    path = tmp_path / "share_guard.conf"
    cfg = ShareGuardConfig(str(path))

    assert "hunter2" not in path.read_text()
    assert cfg.get_config_summary()["panel"]["password"] == "***"


def test_unparseable_file_raises_config_error(tmp_path):
    path = tmp_path / "broken.conf"
    path.write_text("no section header\nkey = value\n")
    with pytest.raises(ConfigError):
        ShareGuardConfig(str(path))


def test_valid_config_has_no_issues(config_file, monkeypatch):
    monkeypatch.setenv("PANEL_PASS", "secret")
    assert ShareGuardConfig(str(config_file)).validate_config() == []


def test_validation_reports_every_problem(tmp_path):
    path = tmp_path / "bad.conf"
    path.write_text(
        "[policy]\nmax_addresses = 0\n"
        "[panel]\nurl = ftp://panel\n"
        "[logging]\nlog_level = LOUD\n"
        "[logs]\naccess_log = same.log\naccumulated_log = same.log\n"
    )

    issues = ShareGuardConfig(str(path), save_missing=False).validate_config()
    text = "\n".join(issues)

    assert "policy.max_addresses" in text
    assert "panel.url" in text
    assert "logging.log_level" in text
    assert "panel.username is not configured" in text
    assert "panel.inbound_id must be a positive integer" in text
    assert "PANEL_PASS" in text
    assert "logs.accumulated_log must differ from logs.access_log" in text


@pytest.mark.parametrize(
    "raw, expected",
    [("10MB", 10 * 1024 * 1024), ("512kb", 512 * 1024), ("1GB", 1024**3), ("2048", 2048), ("junk", 10 * 1024 * 1024)],
)
def test_parse_size(raw, expected):
    assert parse_size(raw) == expected


def test_setup_logging_creates_files(config_file, tmp_path):
    cfg = ShareGuardConfig(str(config_file))
    root = logging.getLogger()
    before = list(root.handlers)
    try:
        setup_logging(cfg)
        assert (tmp_path / "logs" / "service.log").exists()
        ban_audit.record_ban("user@x", [], "r", None)
        assert "BANNED identity=user@x" in (tmp_path / "logs" / "banned.log").read_text()
    finally:
        for handler in list(root.handlers):
            if handler not in before:
                root.removeHandler(handler)
                handler.close()


def test_setup_logging_unwritable_path(tmp_path):
    blocker = tmp_path / "blocker"
    blocker.write_text("x")
    path = tmp_path / "share_guard.conf"
    path.write_text(f"[logging]\nlog_file = {blocker}/service.log\n")
    with pytest.raises(ConfigError):
        setup_logging(ShareGuardConfig(str(path)))
