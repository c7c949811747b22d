"""Configuration validation.

``validate_config`` runs the pydantic schema over every section and adds the
checks that need more than one value or the environment. It returns a list
of human readable issues, empty when the configuration is usable.
"""

from __future__ import annotations

import configparser
import os
from typing import Any

from pydantic import ValidationError

from share_guard.utils.logger import get_logger

from .constants import ENV_PANEL_PASS
from .defaults import CONFIG_DEFAULTS
from .schema import validate_config_file

logger = get_logger(__name__)


def _format_validation_error(exc: ValidationError) -> list[str]:
    issues = []
    for err in exc.errors():
        location = ".".join(str(part) for part in err.get("loc", ()))
        issues.append(f"{location}: {err.get('msg', 'invalid value')}")
    return issues


def validate_config(config: configparser.ConfigParser) -> list[str]:
    """Validate full configuration and return list of issues.

    Args:
        config: ConfigParser instance to validate

    Returns:
        List of validation issue strings (empty if valid)
    """
    issues: list[str] = []
    payload: dict[str, dict[str, Any]] = {
        section: dict(config[section]) if config.has_section(section) else {}
        for section in CONFIG_DEFAULTS
    }

    try:
        validate_config_file(payload)
    except ValidationError as exc:
        issues.extend(_format_validation_error(exc))

    issues.extend(_validate_panel_config(config))
    issues.extend(_validate_paths(config))

    if issues:
        logger.error(
            "Configuration validation failed",
            event="share_guard.config.validation.failed",
            issues=issues,
        )
    else:
        logger.info(
            "Configuration validation passed",
            event="share_guard.config.validation.passed",
        )
    return issues


def _validate_panel_config(config: configparser.ConfigParser) -> list[str]:
    issues = []
    if not config.get("panel", "url", fallback="").strip():
        issues.append("panel.url is not configured (set it or PANEL_URL)")
    if not config.get("panel", "username", fallback="").strip():
        issues.append("panel.username is not configured (set it or PANEL_USER)")
    try:
        inbound_id = int(config.get("panel", "inbound_id", fallback="0") or 0)
    except ValueError:
        inbound_id = -1
    if inbound_id <= 0:
        issues.append("panel.inbound_id must be a positive integer (or INBOUND_ID)")
    if not os.environ.get(ENV_PANEL_PASS):
        issues.append(f"Panel password missing: set the {ENV_PANEL_PASS} environment variable")
    return issues


def _validate_paths(config: configparser.ConfigParser) -> list[str]:
    issues = []
    source = config.get("logs", "access_log", fallback="")
    accumulated = config.get("logs", "accumulated_log", fallback="")
    if source and accumulated and os.path.abspath(source) == os.path.abspath(
        accumulated
    ):
        issues.append("logs.accumulated_log must differ from logs.access_log")
    ledger_path = config.get("ledger", "path", fallback="")
    if ledger_path and accumulated and os.path.abspath(ledger_path) == os.path.abspath(
        accumulated
    ):
        issues.append("ledger.path must differ from logs.accumulated_log")
    return issues
