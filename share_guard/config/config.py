"""
Configuration management

``ShareGuardConfig`` loads the INI file (writing it out with defaults on
first start), applies environment overrides and exposes typed per-section
getters. ``setup_logging`` wires the service log and the ban audit log.
"""

from __future__ import annotations

import configparser
import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from typing import Any

from share_guard.exceptions import ConfigError
from share_guard.utils.ban_audit import configure_ban_audit
from share_guard.utils.logger import configure as configure_logging
from share_guard.utils.logger import get_logger

from .constants import DEFAULT_CONFIG_PATH, ENV_SHARE_GUARD_CONFIG
from .getters import (
    get_config_summary,
    get_firewall_config,
    get_ledger_config,
    get_logging_config,
    get_logs_config,
    get_monitoring_config,
    get_panel_config,
    get_policy_config,
    parse_size,
)
from .loader import load_config
from .validators import validate_config

logger = get_logger(__name__)


class ShareGuardConfig:
    """Service configuration manager."""

    def __init__(self, config_file: str | None = None, *, save_missing: bool = True):
        """
        Args:
            config_file: Path to the INI file; SHARE_GUARD_CONFIG wins when set
            save_missing: Write a defaults file when none exists yet
        """
        env_source = os.environ.get(ENV_SHARE_GUARD_CONFIG)
        self.config_file = env_source or config_file or DEFAULT_CONFIG_PATH
        existed = os.path.exists(self.config_file)
        self.config: configparser.ConfigParser = load_config(self.config_file)

        if not existed and save_missing:
            try:
                self.save_config()
            except ConfigError as exc:
                logger.error(
                    "Failed to save initial config",
                    event="share_guard.config.save.error",
                    error=str(exc),
                )

        logger.info(
            "Configuration loaded successfully",
            event="share_guard.config.loaded",
            source=self.config_file,
        )

    def save_config(self) -> None:
        try:
            cfg_dir = os.path.dirname(self.config_file)
            if cfg_dir:
                os.makedirs(cfg_dir, exist_ok=True)
            with open(self.config_file, "w", encoding="utf-8") as fh:
                self.config.write(fh)
        except OSError as exc:
            raise ConfigError(
                f"Configuration save failed: {exc}", {"path": self.config_file}
            ) from exc

    # Getter delegations
    def get_policy_config(self) -> dict[str, Any]:
        return get_policy_config(self.config)

    def get_ledger_config(self) -> dict[str, Any]:
        return get_ledger_config(self.config)

    def get_logs_config(self) -> dict[str, Any]:
        return get_logs_config(self.config)

    def get_panel_config(self) -> dict[str, Any]:
        return get_panel_config(self.config)

    def get_firewall_config(self) -> dict[str, Any]:
        return get_firewall_config(self.config)

    def get_logging_config(self) -> dict[str, Any]:
        return get_logging_config(self.config)

    def get_monitoring_config(self) -> dict[str, Any]:
        return get_monitoring_config(self.config)

    def get_config_summary(self) -> dict[str, Any]:
        return get_config_summary(self.config)

    def validate_config(self) -> list[str]:
        return validate_config(self.config)


def setup_logging(config: ShareGuardConfig) -> None:
    """Setup logging based on configuration."""
    log_config = config.get_logging_config()
    log_file = log_config["log_file"]
    log_level = getattr(logging, log_config["log_level"].upper(), logging.INFO)
    max_bytes = parse_size(log_config["max_log_size"])
    backup_count = log_config["backup_count"]
    handlers: list[logging.Handler] = []

    # Console only when interactive; under a supervisor the file is enough
    if getattr(sys.stdout, "isatty", lambda: False)() or not log_file:
        handlers.append(logging.StreamHandler())

    if log_file:
        log_dir = os.path.dirname(log_file)
        try:
            if log_dir:
                os.makedirs(log_dir, exist_ok=True)
            if log_config["log_rotation"]:
                file_handler: logging.Handler = RotatingFileHandler(
                    log_file, maxBytes=max_bytes, backupCount=backup_count
                )
            else:
                file_handler = logging.FileHandler(log_file)
        except OSError as exc:
            raise ConfigError(
                f"Cannot open log file {log_file}: {exc}", {"path": log_file}
            ) from exc
        handlers.append(file_handler)

    configure_logging(level=log_level, handlers=handlers)

    try:
        configure_ban_audit(
            log_config["banned_users_log"],
            enabled=log_config["log_banned_users"],
            max_bytes=max_bytes,
            backup_count=backup_count,
        )
    except OSError as exc:
        raise ConfigError(
            f"Cannot open banned users log {log_config['banned_users_log']}: {exc}",
            {"path": log_config["banned_users_log"]},
        ) from exc

    logger.info(
        "Logging configured",
        event="share_guard.logging.configured",
        log_level=log_config["log_level"],
        log_file=log_file or "console-only",
        banned_users_log=log_config["banned_users_log"]
        if log_config["log_banned_users"]
        else "disabled",
    )
