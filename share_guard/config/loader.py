"""Unified configuration loading.

Load order: config file → environment variables → defaults.
Environment values only fill keys the file leaves unset. The panel password
is never read from or written to the file; see ``getters.get_panel_config``.
"""

from __future__ import annotations

import configparser
import os

from share_guard.exceptions import ConfigError
from share_guard.utils.logger import get_logger

from .constants import (
    ENV_INBOUND_ID,
    ENV_PANEL_URL,
    ENV_PANEL_USER,
    ENV_PREFIX,
    SECTION_PANEL,
)
from .defaults import CONFIG_DEFAULTS, populate_defaults

logger = get_logger(__name__)


def apply_env_overrides(
    config: configparser.ConfigParser,
    section: str,
    key: str,
    env_var: str | None = None,
) -> None:
    """Set ``section.key`` from the environment when the file did not.

    Args:
        config: ConfigParser instance
        section: Section name
        key: Key name
        env_var: Optional custom variable name; defaults to
            SHARE_GUARD_<SECTION>_<KEY>
    """
    if env_var is None:
        env_var = f"{ENV_PREFIX}{section.upper()}_{key.upper()}"

    value = os.environ.get(env_var)
    if value is None:
        return
    if not config.has_section(section):
        config.add_section(section)
    if config.has_option(section, key):
        logger.debug(
            "Skipping environment override because config already defines the value",
            event="share_guard.config.loader.env_override_skipped",
            section=section,
            key=key,
        )
        return
    config.set(section, key, value)
    logger.debug(
        "Applied environment override for config key",
        event="share_guard.config.loader.env_override_applied",
        section=section,
        key=key,
        env_var=env_var,
    )


def apply_all_env_overrides(config: configparser.ConfigParser) -> None:
    """Apply SHARE_GUARD_<SECTION>_<KEY> for every known key, then the
    short panel variables (PANEL_URL, PANEL_USER, INBOUND_ID)."""
    for section, values in CONFIG_DEFAULTS.items():
        for key in values:
            apply_env_overrides(config, section, key)

    apply_env_overrides(config, SECTION_PANEL, "url", ENV_PANEL_URL)
    apply_env_overrides(config, SECTION_PANEL, "username", ENV_PANEL_USER)
    apply_env_overrides(config, SECTION_PANEL, "inbound_id", ENV_INBOUND_ID)


def load_config(source: str) -> configparser.ConfigParser:
    """Load configuration with unified precedence.

    Args:
        source: Configuration file path (may not exist yet)

    Returns:
        ConfigParser with every known section and key populated
    """
    config = configparser.ConfigParser(interpolation=None)

    if os.path.exists(source):
        logger.info(
            "Loading configuration from file",
            event="share_guard.config.loader.file_load",
            source=source,
        )
        try:
            config.read(source, encoding="utf-8")
        except configparser.Error as exc:
            raise ConfigError(
                f"Cannot parse configuration file {source}: {exc}",
                {"source": source},
            ) from exc
    else:
        logger.warning(
            "Configuration file does not exist; using defaults and environment",
            event="share_guard.config.loader.missing_file",
            source=source,
        )

    apply_all_env_overrides(config)
    populate_defaults(config)
    return config
