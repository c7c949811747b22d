"""Access controller: host firewall block set."""

from .base import AccessController, DryRunAccessController, normalize_address
from .iptables import IptablesAccessController

__all__ = [
    "AccessController",
    "DryRunAccessController",
    "IptablesAccessController",
    "normalize_address",
]
