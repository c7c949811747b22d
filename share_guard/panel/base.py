"""
Abstract gateway proxy: the remote panel that owns identity enable state.
"""

from abc import ABC, abstractmethod

from .models import RemoteIdentity


class GatewayProxy(ABC):
    """Operations the reconciliation engine issues against the gateway.

    Identities are addressed by their email-like key only. Implementations
    raise PanelError (or a subclass) on any failure.
    """

    def __init__(self, name: str):
        self.name = name

    @abstractmethod
    def list_identities(self) -> list[RemoteIdentity]:
        """Return the full roster with each identity's enabled flag."""

    @abstractmethod
    def lookup_by_email(self, identity: str) -> RemoteIdentity:
        """Resolve an identity key to its panel record.

        Raises:
            IdentityNotFoundError: no such identity on the panel
        """

    @abstractmethod
    def enable(self, identity: str) -> None:
        """Enable the identity."""

    @abstractmethod
    def disable(self, identity: str) -> None:
        """Disable the identity."""

    def status(self, identity: str) -> bool:
        """Return whether the identity is currently enabled."""
        return self.lookup_by_email(identity).enabled

    @abstractmethod
    def aggressive_reset(self, identity: str) -> str:
        """Disable, mark exhausted and rotate the credential of ``identity``.

        Active sessions are cut without restarting the proxy. The call is
        safe to repeat as a whole; it is never resumed mid-way. Returns the
        new credential.
        """

    def close(self) -> None:
        """Release network resources (optional)."""
