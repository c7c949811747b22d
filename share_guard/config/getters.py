"""Configuration getter functions.

All getters are pure functions: ConfigParser → dict, except that the panel
password is read from the environment (it never lives in the file).
"""

from __future__ import annotations

import configparser
import os
from typing import Any

from .constants import (
    ENV_PANEL_PASS,
    SECTION_FIREWALL,
    SECTION_LEDGER,
    SECTION_LOGGING,
    SECTION_LOGS,
    SECTION_MONITORING,
    SECTION_PANEL,
    SECTION_POLICY,
)

_TRUE = {"1", "true", "yes", "on"}


def _bool(value: Any) -> bool:
    return str(value).strip().lower() in _TRUE


def parse_size(size_str: str) -> int:
    """Parse human readable size strings like '10MB' -> bytes.

    Examples:
        >>> parse_size('10MB')
        10485760
        >>> parse_size('512KB')
        524288
    """
    try:
        s = size_str.strip().upper()
        if s.endswith("KB"):
            return int(float(s[:-2]) * 1024)
        if s.endswith("MB"):
            return int(float(s[:-2]) * 1024 * 1024)
        if s.endswith("GB"):
            return int(float(s[:-2]) * 1024 * 1024 * 1024)
        return int(s)
    except (AttributeError, ValueError):
        return 10 * 1024 * 1024


def get_policy_config(config: configparser.ConfigParser) -> dict[str, Any]:
    p = config[SECTION_POLICY]
    return {
        "max_addresses": int(p.get("max_addresses")),
        "check_interval_seconds": float(p.get("check_interval_seconds")),
        "grace_period_seconds": float(p.get("grace_period_seconds")),
        "ban_duration_minutes": float(p.get("ban_duration_minutes")),
        "ban_retention_minutes": float(p.get("ban_retention_minutes")),
    }


def get_ledger_config(config: configparser.ConfigParser) -> dict[str, Any]:
    return {"path": os.path.expandvars(config.get(SECTION_LEDGER, "path"))}


def get_logs_config(config: configparser.ConfigParser) -> dict[str, Any]:
    s = config[SECTION_LOGS]
    return {
        "access_log": os.path.expandvars(s.get("access_log")),
        "accumulated_log": os.path.expandvars(s.get("accumulated_log")),
        "save_interval_seconds": float(s.get("save_interval_seconds")),
        "retention_minutes": float(s.get("retention_minutes")),
        "cleanup_interval_seconds": float(s.get("cleanup_interval_seconds")),
        "cleanup_initial_delay_seconds": float(
            s.get("cleanup_initial_delay_seconds")
        ),
    }


def get_panel_config(config: configparser.ConfigParser) -> dict[str, Any]:
    """Panel connection settings; the password comes from PANEL_PASS."""
    s = config[SECTION_PANEL]
    return {
        "url": s.get("url", "").strip(),
        "username": s.get("username", "").strip(),
        "password": os.environ.get(ENV_PANEL_PASS, ""),
        "inbound_id": int(s.get("inbound_id") or 0),
        "timeout": float(s.get("timeout")),
        "verify_tls": _bool(s.get("verify_tls")),
        "phase_delay_seconds": float(s.get("phase_delay_seconds")),
        "remark_delay_seconds": float(s.get("remark_delay_seconds")),
        "max_retries": int(s.get("max_retries")),
    }


def get_firewall_config(config: configparser.ConfigParser) -> dict[str, Any]:
    s = config[SECTION_FIREWALL]
    return {
        "enabled": _bool(s.get("enabled")),
        "chain": s.get("chain"),
        "iptables": s.get("iptables"),
        "ip6tables": s.get("ip6tables"),
    }


def get_logging_config(config: configparser.ConfigParser) -> dict[str, Any]:
    s = config[SECTION_LOGGING]
    return {
        "log_file": s.get("log_file", ""),
        "log_level": s.get("log_level", "INFO"),
        "log_rotation": _bool(s.get("log_rotation")),
        "max_log_size": s.get("max_log_size", "10MB"),
        "backup_count": int(s.get("backup_count", 5)),
        "banned_users_log": s.get("banned_users_log", ""),
        "log_banned_users": _bool(s.get("log_banned_users")),
    }


def get_monitoring_config(config: configparser.ConfigParser) -> dict[str, Any]:
    s = config[SECTION_MONITORING]
    return {
        "enabled": _bool(s.get("enabled")),
        "host": s.get("host"),
        "port": int(s.get("port")),
    }


def get_config_summary(config: configparser.ConfigParser) -> dict[str, Any]:
    """Every section as a dict, with the panel password masked."""
    summary = {section: dict(config[section]) for section in config.sections()}
    summary[SECTION_PANEL]["password"] = (
        "***" if os.environ.get(ENV_PANEL_PASS) else ""
    )
    return summary
