"""Configuration constants: section names and environment variables."""

# Section names
SECTION_POLICY = "policy"
SECTION_LEDGER = "ledger"
SECTION_LOGS = "logs"
SECTION_PANEL = "panel"
SECTION_FIREWALL = "firewall"
SECTION_LOGGING = "logging"
SECTION_MONITORING = "monitoring"

# Environment variable prefix for SHARE_GUARD_<SECTION>_<KEY> overrides
ENV_PREFIX = "SHARE_GUARD_"

# Meta-configuration
ENV_SHARE_GUARD_CONFIG = "SHARE_GUARD_CONFIG"
DEFAULT_CONFIG_PATH = "config/share_guard.conf"

# Panel connection (PANEL_PASS is environment only)
ENV_PANEL_URL = "PANEL_URL"
ENV_PANEL_USER = "PANEL_USER"
ENV_PANEL_PASS = "PANEL_PASS"
ENV_INBOUND_ID = "INBOUND_ID"
