"""Centralized default configuration values."""

from __future__ import annotations

from typing import Any

from .constants import (
    SECTION_FIREWALL,
    SECTION_LEDGER,
    SECTION_LOGGING,
    SECTION_LOGS,
    SECTION_MONITORING,
    SECTION_PANEL,
    SECTION_POLICY,
)

# Policy
DEFAULT_MAX_ADDRESSES = 3  # distinct source addresses allowed per identity
DEFAULT_CHECK_INTERVAL_SECONDS = 60  # reconciliation tick
DEFAULT_GRACE_PERIOD_SECONDS = 0
DEFAULT_BAN_DURATION_MINUTES = 5  # <= 0 bans without expiry
DEFAULT_BAN_RETENTION_MINUTES = 1440  # expired ban history kept for a day

# Storage
DEFAULT_LEDGER_PATH = "data/ip_bans.json"
DEFAULT_ACCESS_LOG = "/var/log/xray/access.log"
DEFAULT_ACCUMULATED_LOG = "data/accumulated_access.log"
DEFAULT_SAVE_INTERVAL_SECONDS = 60
DEFAULT_LOG_RETENTION_MINUTES = 60
DEFAULT_LOG_CLEANUP_INTERVAL_SECONDS = 3600
DEFAULT_LOG_CLEANUP_INITIAL_DELAY_SECONDS = 3600

# Panel
DEFAULT_PANEL_TIMEOUT = 30
DEFAULT_PANEL_PHASE_DELAY_SECONDS = 1.0
DEFAULT_PANEL_REMARK_DELAY_SECONDS = 0.5
DEFAULT_PANEL_MAX_RETRIES = 3

# Logging
DEFAULT_LOG_FILE = "logs/share_guard.log"
DEFAULT_LOG_LEVEL = "INFO"
DEFAULT_BANNED_USERS_LOG = "logs/banned_users.log"

# Monitoring
DEFAULT_MONITORING_HOST = "127.0.0.1"
DEFAULT_MONITORING_PORT = 8088


def populate_defaults(parser: Any) -> None:
    """Fill every section/option that is still unset with its default."""

    for section, values in CONFIG_DEFAULTS.items():
        if not parser.has_section(section):
            parser.add_section(section)
        for key, val in values.items():
            if not parser.has_option(section, key):
                parser.set(section, key, str(val))


CONFIG_DEFAULTS = {
    SECTION_POLICY: {
        "max_addresses": str(DEFAULT_MAX_ADDRESSES),
        "check_interval_seconds": str(DEFAULT_CHECK_INTERVAL_SECONDS),
        "grace_period_seconds": str(DEFAULT_GRACE_PERIOD_SECONDS),
        "ban_duration_minutes": str(DEFAULT_BAN_DURATION_MINUTES),
        "ban_retention_minutes": str(DEFAULT_BAN_RETENTION_MINUTES),
    },
    SECTION_LEDGER: {
        "path": DEFAULT_LEDGER_PATH,
    },
    SECTION_LOGS: {
        "access_log": DEFAULT_ACCESS_LOG,
        "accumulated_log": DEFAULT_ACCUMULATED_LOG,
        "save_interval_seconds": str(DEFAULT_SAVE_INTERVAL_SECONDS),
        "retention_minutes": str(DEFAULT_LOG_RETENTION_MINUTES),
        "cleanup_interval_seconds": str(DEFAULT_LOG_CLEANUP_INTERVAL_SECONDS),
        "cleanup_initial_delay_seconds": str(
            DEFAULT_LOG_CLEANUP_INITIAL_DELAY_SECONDS
        ),
    },
    SECTION_PANEL: {
        "url": "",
        "username": "",
        "inbound_id": "0",
        "timeout": str(DEFAULT_PANEL_TIMEOUT),
        "verify_tls": "true",
        "phase_delay_seconds": str(DEFAULT_PANEL_PHASE_DELAY_SECONDS),
        "remark_delay_seconds": str(DEFAULT_PANEL_REMARK_DELAY_SECONDS),
        "max_retries": str(DEFAULT_PANEL_MAX_RETRIES),
    },
    SECTION_FIREWALL: {
        "enabled": "true",
        "chain": "INPUT",
        "iptables": "iptables",
        "ip6tables": "ip6tables",
    },
    SECTION_LOGGING: {
        "log_file": DEFAULT_LOG_FILE,
        "log_level": DEFAULT_LOG_LEVEL,
        "log_rotation": "true",
        "max_log_size": "10MB",
        "backup_count": "5",
        "banned_users_log": DEFAULT_BANNED_USERS_LOG,
        "log_banned_users": "true",
    },
    SECTION_MONITORING: {
        "enabled": "false",
        "host": DEFAULT_MONITORING_HOST,
        "port": str(DEFAULT_MONITORING_PORT),
    },
}
