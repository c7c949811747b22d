"""
share-guard service entry point

Builds the ledger, the log accumulator, the panel client, the firewall
backend and the reconciliation engine from configuration. Runs them until a
shutdown signal arrives, then stops them in dependency order.
"""

import argparse
import signal
import sys
import time
from typing import Any

from share_guard.activity.accumulator import LogAccumulator
from share_guard.activity.aggregator import ActivityAggregator
from share_guard.config.config import ShareGuardConfig, setup_logging
from share_guard.engine.reconciler import ReconciliationEngine
from share_guard.exceptions import ShareGuardError
from share_guard.firewall.base import AccessController, DryRunAccessController
from share_guard.firewall.iptables import IptablesAccessController
from share_guard.ledger.store import BanLedger
from share_guard.panel.client import PanelGatewayProxy
from share_guard.utils.logger import get_logger
from share_guard.web.status_api import StatusServer, create_app

logger = get_logger(__name__)


def build_access_controller(firewall_config: dict[str, Any]) -> AccessController:
    if not firewall_config["enabled"]:
        return DryRunAccessController()
    return IptablesAccessController(
        chain=firewall_config["chain"],
        iptables=firewall_config["iptables"],
        ip6tables=firewall_config["ip6tables"],
    )


def build_ledger(config: ShareGuardConfig) -> BanLedger:
    return BanLedger(
        config.get_ledger_config()["path"],
        config.get_policy_config()["ban_duration_minutes"],
    )


class ShareGuardManager:
    """Wires the reconciliation service together and runs it."""

    def __init__(self, config_file: str | None = None):
        self.config = ShareGuardConfig(config_file)
        self.ledger: BanLedger | None = None
        self.accumulator: LogAccumulator | None = None
        self.aggregator: ActivityAggregator | None = None
        self.gateway: PanelGatewayProxy | None = None
        self.access_controller: AccessController | None = None
        self.engine: ReconciliationEngine | None = None
        self.status_server: StatusServer | None = None
        self.running = False
        self._started = False

    def build(self) -> ReconciliationEngine:
        """Construct every component. Raises ShareGuardError on failure."""
        policy = self.config.get_policy_config()
        logs = self.config.get_logs_config()

        self.ledger = build_ledger(self.config)
        self.accumulator = LogAccumulator(
            logs["access_log"],
            logs["accumulated_log"],
            save_interval=logs["save_interval_seconds"],
            retention_minutes=logs["retention_minutes"],
            cleanup_interval=logs["cleanup_interval_seconds"],
            cleanup_initial_delay=logs["cleanup_initial_delay_seconds"],
        )
        self.aggregator = ActivityAggregator(logs["accumulated_log"])
        try:
            self.gateway = PanelGatewayProxy(self.config.get_panel_config())
        except ValueError as exc:
            raise ShareGuardError(f"Invalid panel configuration: {exc}") from exc
        self.access_controller = build_access_controller(
            self.config.get_firewall_config()
        )
        self.engine = ReconciliationEngine(
            self.aggregator,
            self.gateway,
            self.ledger,
            self.access_controller,
            max_addresses=policy["max_addresses"],
            check_interval=policy["check_interval_seconds"],
            grace_period=policy["grace_period_seconds"],
            ban_retention_minutes=policy["ban_retention_minutes"],
        )
        return self.engine

    def setup(self) -> bool:
        """Setup logging and components; False when startup must abort."""
        try:
            setup_logging(self.config)
        except ShareGuardError as exc:
            print(f"Failed to configure logging: {exc}", file=sys.stderr)
            return False
        issues = self.config.validate_config()
        if issues:
            logger.error("Configuration validation failed:")
            for issue in issues:
                logger.error("  - %s", issue)
            return False
        try:
            self.build()
        except ShareGuardError as exc:
            logger.error(
                "Failed to initialize components",
                event="share_guard.startup.failed",
                error=exc.message,
                details=exc.details,
            )
            return False
        return True

    def start(self) -> bool:
        """Start the service and block until a shutdown signal arrives."""
        if not self.setup():
            return False
        signal.signal(signal.SIGINT, self._signal_handler)
        signal.signal(signal.SIGTERM, self._signal_handler)
        try:
            self.running = True
            self._started = True
            self._print_startup_info()
            if self.access_controller is not None:
                try:
                    self.access_controller.load_existing()
                except ShareGuardError as exc:
                    logger.warning(
                        "Could not load existing firewall rules",
                        event="share_guard.startup.firewall_load_failed",
                        error=str(exc),
                    )
            if self.accumulator is None or self.engine is None:
                raise ShareGuardError("Service components were not built")
            self.accumulator.start()
            self.engine.start()
            monitoring = self.config.get_monitoring_config()
            if monitoring["enabled"] and self.ledger is not None:
                self.status_server = StatusServer(
                    create_app(self.engine, self.ledger),
                    host=monitoring["host"],
                    port=monitoring["port"],
                )
                self.status_server.start()

            # The engine and accumulator run in their own threads
            while self.running:
                time.sleep(0.2)

        except KeyboardInterrupt:
            logger.info("Received interrupt signal")
        except ShareGuardError as exc:
            logger.error("Service error: %s", exc)
            return False
        finally:
            self.stop()
        return True

    def stop(self) -> None:
        """Stop the engine (after its in-flight cycle), then the accumulator."""
        if not self._started:
            return
        self._started = False
        self.running = False
        logger.info("Shutting down", event="share_guard.shutdown")
        if self.engine is not None:
            self.engine.stop()
        if self.accumulator is not None:
            self.accumulator.stop()
        if self.status_server is not None:
            self.status_server.stop()
        if self.gateway is not None:
            self.gateway.close()
        logger.info("Service stopped", event="share_guard.stopped")

    def _signal_handler(self, signum, frame):
        logger.info(f"Received signal {signum}")
        self.running = False

    def _print_startup_info(self):
        policy = self.config.get_policy_config()
        logs = self.config.get_logs_config()
        panel = self.config.get_panel_config()
        logger.info("=" * 50)
        logger.info("share-guard starting")
        logger.info("=" * 50)
        logger.info(f"Configuration: {self.config.config_file}")
        logger.info(f"Panel: {panel['url']} (inbound {panel['inbound_id']})")
        logger.info(f"Access log: {logs['access_log']}")
        logger.info(f"Accumulated log: {logs['accumulated_log']}")
        logger.info(f"Ban ledger: {self.config.get_ledger_config()['path']}")
        logger.info(
            f"Policy: max {policy['max_addresses']} addresses, "
            f"check every {policy['check_interval_seconds']}s, "
            f"ban {policy['ban_duration_minutes']}min"
        )
        if policy["grace_period_seconds"]:
            logger.info(
                "Grace period configured (reported only, not applied)",
                event="share_guard.startup.grace_period",
                grace_period=policy["grace_period_seconds"],
            )
        if self.access_controller is not None:
            logger.info(f"Firewall backend: {self.access_controller.name}")


def main(argv: list[str] | None = None) -> int:
    """Main entry point"""
    parser = argparse.ArgumentParser(
        prog="share-guard", description="Connection-sharing policy enforcement"
    )
    parser.add_argument("-c", "--config", default=None, help="Configuration file path")
    parser.add_argument(
        "--validate-config", action="store_true", help="Validate configuration and exit"
    )
    parser.add_argument("--version", action="version", version="share-guard 1.0")
    args = parser.parse_args(argv)

    if args.validate_config:
        try:
            config = ShareGuardConfig(args.config, save_missing=False)
            issues = config.validate_config()
        except ShareGuardError as exc:
            print(f"Error validating configuration: {exc}")
            return 1
        if issues:
            print("Configuration validation failed:")
            for issue in issues:
                print(f"  - {issue}")
            return 1
        print("Configuration is valid")
        return 0

    try:
        manager = ShareGuardManager(args.config)
    except ShareGuardError as exc:
        print(f"Failed to start service: {exc}")
        return 1
    return 0 if manager.start() else 1


if __name__ == "__main__":
    sys.exit(main())
