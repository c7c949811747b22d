"""iptables-backed access controller."""

from __future__ import annotations

import ipaddress
import re
import subprocess

from share_guard.exceptions import FirewallError
from share_guard.utils.logger import get_logger

from .base import AccessController

logger = get_logger(__name__)

# "-A INPUT -s 203.0.113.5/32 -j DROP" as printed by `iptables -S`
_DROP_RULE_RE = re.compile(
    r"^-A (?P<chain>\S+) -s (?P<address>[0-9A-Fa-f:.]+?)(?:/(?:32|128))? -j DROP$"
)


class IptablesAccessController(AccessController):
    """Drops traffic from blocked addresses with an INPUT rule.

    IPv6 addresses go through ``ip6tables``. Commands are run with argument
    lists, never through a shell, and only after the address was validated.
    """

    def __init__(
        self,
        chain: str = "INPUT",
        iptables: str = "iptables",
        ip6tables: str = "ip6tables",
        timeout: float = 10.0,
    ):
        super().__init__("iptables")
        self.chain = chain
        self.iptables = iptables
        self.ip6tables = ip6tables
        self.timeout = timeout

    def _binary(self, address: str) -> str:
        if ipaddress.ip_address(address).version == 6:
            return self.ip6tables
        return self.iptables

    def _run(self, flag: str, address: str) -> None:
        cmd = [self._binary(address), flag, self.chain, "-s", address, "-j", "DROP"]
        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=self.timeout,
                check=False,
            )
        except (OSError, subprocess.SubprocessError) as exc:
            raise FirewallError(
                f"Failed to run {cmd[0]}: {exc}", {"command": cmd}
            ) from exc
        if result.returncode != 0:
            logger.error(
                "Firewall command failed",
                event="share_guard.firewall.command_failed",
                command=" ".join(cmd),
                returncode=result.returncode,
                stderr=(result.stderr or "").strip(),
            )
            raise FirewallError(
                f"{cmd[0]} exited with status {result.returncode}",
                {"command": cmd, "stderr": (result.stderr or "").strip()},
            )

    def _discover(self) -> list[str]:
        addresses: list[str] = []
        for binary in (self.iptables, self.ip6tables):
            cmd = [binary, "-S", self.chain]
            try:
                result = subprocess.run(
                    cmd,
                    capture_output=True,
                    text=True,
                    timeout=self.timeout,
                    check=False,
                )
            except (OSError, subprocess.SubprocessError) as exc:
                logger.warning(
                    "Cannot list firewall rules",
                    event="share_guard.firewall.list_failed",
                    command=" ".join(cmd),
                    error=str(exc),
                )
                continue
            if result.returncode != 0:
                logger.warning(
                    "Cannot list firewall rules",
                    event="share_guard.firewall.list_failed",
                    command=" ".join(cmd),
                    returncode=result.returncode,
                )
                continue
            for line in result.stdout.splitlines():
                match = _DROP_RULE_RE.match(line.strip())
                if match and match.group("chain") == self.chain:
                    addresses.append(match.group("address"))
        return addresses

    def _apply_block(self, address: str) -> None:
        self._run("-I", address)

    def _apply_unblock(self, address: str) -> None:
        self._run("-D", address)
