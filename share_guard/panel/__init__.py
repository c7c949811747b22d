"""Gateway proxy: remote panel that owns identity enable state."""

from .base import GatewayProxy
from .client import PanelGatewayProxy
from .models import RemoteIdentity

__all__ = ["GatewayProxy", "PanelGatewayProxy", "RemoteIdentity"]
