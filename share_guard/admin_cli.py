from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from typing import Any, Protocol, cast
from urllib.parse import quote

import requests

from share_guard.activity.aggregator import ActivityAggregator
from share_guard.config.config import ShareGuardConfig
from share_guard.config.constants import DEFAULT_CONFIG_PATH, ENV_SHARE_GUARD_CONFIG
from share_guard.engine.reconciler import activity_breakdown
from share_guard.exceptions import ShareGuardError
from share_guard.main import ShareGuardManager, build_access_controller, build_ledger
from share_guard.utils.logger import configure

# A running service holds the ledger in memory and rewrites the whole file on
# its next change, so ledger commands go through its status API when it
# answers. The file is only touched directly when no service is reachable.
SERVICE_TIMEOUT = 5.0


def _load_config(args: argparse.Namespace) -> ShareGuardConfig:
    return ShareGuardConfig(args.config, save_missing=False)


def _service_url(cfg: ShareGuardConfig) -> str | None:
    monitoring = cfg.get_monitoring_config()
    if not monitoring["enabled"]:
        return None
    host = monitoring["host"]
    if host in ("", "0.0.0.0"):
        host = "127.0.0.1"
    elif host == "::":
        host = "::1"
    if ":" in host:
        host = f"[{host}]"
    return f"http://{host}:{monitoring['port']}"


def _ask_service(
    cfg: ShareGuardConfig, method: str, path: str
) -> requests.Response | None:
    """Send ``method path`` to the running service; None if none answers."""
    base = _service_url(cfg)
    if base is None:
        return None
    try:
        return requests.request(method, base + path, timeout=SERVICE_TIMEOUT)
    except requests.ConnectionError:
        return None
    except requests.RequestException as exc:
        raise ShareGuardError(f"Service at {base} did not answer: {exc}") from exc


def _offline_notice(cfg: ShareGuardConfig) -> None:
    if _service_url(cfg) is None:
        hint = "enable [monitoring] to act on a running service"
    else:
        hint = "no service answered on the status API"
    print(
        f"Note: using {cfg.get_ledger_config()['path']} directly ({hint}). "
        "A running share-guard keeps its own copy and overwrites this file "
        "on its next change.",
        file=sys.stderr,
    )


def _error_text(resp: requests.Response) -> str:
    try:
        body = resp.json()
    except ValueError:
        return resp.text or f"HTTP {resp.status_code}"
    return str(body.get("message") or body.get("detail") or body)


def cmd_check_config(args: argparse.Namespace) -> int:
    cfg = _load_config(args)
    issues = cfg.validate_config()
    if issues:
        print("Configuration validation failed:")
        for i in issues:
            print(f"  - {i}")
        return 1
    print("Configuration is valid")
    return 0


def _local_bans(cfg: ShareGuardConfig) -> dict[str, Any]:
    ledger = build_ledger(cfg)
    bans = ledger.active_bans()
    return {
        "stats": ledger.stats(),
        "bans": [bans[k].to_dict() for k in sorted(bans)],
    }


def cmd_bans(args: argparse.Namespace) -> int:
    cfg = _load_config(args)
    resp = _ask_service(cfg, "GET", "/bans")
    if resp is None:
        _offline_notice(cfg)
        body = _local_bans(cfg)
    elif resp.ok:
        body = resp.json()
    else:
        print(f"Listing bans failed: {_error_text(resp)}", file=sys.stderr)
        return 1

    if args.json:
        print(json.dumps(body, indent=2))
        return 0
    stats = body["stats"]
    duration = (
        "unlimited" if stats["unlimited"] else f"{stats['ban_duration_minutes']} min"
    )
    print(f"Active bans: {stats['total']} (expiring within 1h: "
          f"{stats['expiring_within_hour']}, duration: {duration})")
    for rec in body["bans"]:
        until = rec["expires_at"] or "unlimited"
        print(f"  {rec['identity']}  until {until}  "
              f"addresses={len(rec['addresses'])}  {rec['reason']}")
    return 0


def cmd_unban(args: argparse.Namespace) -> int:
    cfg = _load_config(args)
    resp = _ask_service(cfg, "DELETE", f"/bans/{quote(args.identity, safe='')}")
    if resp is not None:
        if resp.status_code == 404:
            print(f"No active ban for {args.identity}")
            return 1
        if not resp.ok:
            print(f"Unban failed: {_error_text(resp)}", file=sys.stderr)
            return 1
        print(f"Unbanned {args.identity}")
        return 0

    _offline_notice(cfg)
    ledger = build_ledger(cfg)
    try:
        removed = ledger.unban(args.identity)
    except ShareGuardError as exc:
        print(f"Unbanned {args.identity}, but the ledger write failed: {exc}",
              file=sys.stderr)
        return 1
    if not removed:
        print(f"No active ban for {args.identity}")
        return 1
    print(f"Unbanned {args.identity}")
    return 0


def cmd_stats(args: argparse.Namespace) -> int:
    cfg = _load_config(args)
    resp = _ask_service(cfg, "GET", "/stats")
    if resp is None:
        _offline_notice(cfg)
        aggregator = ActivityAggregator(cfg.get_logs_config()["accumulated_log"])
        breakdown = activity_breakdown(
            aggregator.analyze_log(),
            build_ledger(cfg),
            cfg.get_policy_config()["max_addresses"],
        )
    elif resp.ok:
        breakdown = resp.json()
    else:
        print(f"Reading stats failed: {_error_text(resp)}", file=sys.stderr)
        return 1

    if args.json:
        print(json.dumps(breakdown, indent=2))
        return 0
    rows = breakdown["identities"]
    suspicious = sum(1 for r in rows if r["state"] == "suspicious")
    print("Current Activity")
    print("================")
    print(f"Identities:     {len(rows)}")
    print(f"Suspicious:     {suspicious}")
    print(f"Normal:         {len(rows) - suspicious}")
    print(f"Max addresses:  {breakdown['max_addresses']}")
    for row in rows:
        marker = " [BANNED]" if row["banned"] else ""
        print(f"  {row['identity']}: {row['distinct_address_count']} addresses "
              f"({row['state']}){marker}")
        for address, info in row["addresses"].items():
            print(f"      {address}  x{info['count']}  last {info['last_seen'] or '-'}")
    return 0


def _firewall(args: argparse.Namespace):
    controller = build_access_controller(_load_config(args).get_firewall_config())
    controller.load_existing()
    return controller


def cmd_block(args: argparse.Namespace) -> int:
    try:
        changed = _firewall(args).block(args.address)
    except ShareGuardError as exc:
        print(f"Block failed: {exc}", file=sys.stderr)
        return 1
    print(f"Blocked {args.address}" if changed else f"{args.address} already blocked")
    return 0


def cmd_unblock(args: argparse.Namespace) -> int:
    try:
        changed = _firewall(args).unblock(args.address)
    except ShareGuardError as exc:
        print(f"Unblock failed: {exc}", file=sys.stderr)
        return 1
    print(f"Unblocked {args.address}" if changed else f"{args.address} was not blocked")
    return 0


def cmd_check_once(args: argparse.Namespace) -> int:
    manager = ShareGuardManager(args.config)
    issues = manager.config.validate_config()
    if issues:
        print("Configuration validation failed:")
        for i in issues:
            print(f"  - {i}")
        return 1
    try:
        engine = manager.build()
        summary = engine.run_cycle()
    except ShareGuardError as exc:
        print(f"Check failed: {exc}", file=sys.stderr)
        return 1
    finally:
        if manager.gateway is not None:
            manager.gateway.close()
    print(json.dumps(summary.to_dict(), indent=2))
    return 1 if summary.aborted else 0


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="share-guard-admin", description="Operator CLI for share-guard"
    )
    p.add_argument(
        "--config",
        "-c",
        default=os.environ.get(ENV_SHARE_GUARD_CONFIG, DEFAULT_CONFIG_PATH),
        help="Path to config file",
    )
    sub = p.add_subparsers(dest="cmd", required=True)

    sub_check = sub.add_parser(
        "check-config", help="Validate configuration and report issues"
    )
    sub_check.set_defaults(func=cmd_check_config)

    sub_bans = sub.add_parser("bans", help="List active bans")
    sub_bans.add_argument("--json", action="store_true", help="JSON output")
    sub_bans.set_defaults(func=cmd_bans)

    sub_unban = sub.add_parser("unban", help="Remove the ban of an identity")
    sub_unban.add_argument("identity", help="Identity (email) to unban")
    sub_unban.set_defaults(func=cmd_unban)

    sub_stats = sub.add_parser(
        "stats", help="Show per-identity activity from the accumulated log"
    )
    sub_stats.add_argument("--json", action="store_true", help="JSON output")
    sub_stats.set_defaults(func=cmd_stats)

    sub_block = sub.add_parser("block", help="Drop traffic from an address")
    sub_block.add_argument("address", help="IPv4 or IPv6 address")
    sub_block.set_defaults(func=cmd_block)

    sub_unblock = sub.add_parser("unblock", help="Remove the block of an address")
    sub_unblock.add_argument("address", help="IPv4 or IPv6 address")
    sub_unblock.set_defaults(func=cmd_unblock)

    sub_once = sub.add_parser(
        "check-once", help="Run a single reconciliation cycle and print its summary"
    )
    sub_once.set_defaults(func=cmd_check_once)

    return p


class _Cmd(Protocol):
    def __call__(self, args: argparse.Namespace) -> int: ...


def main(argv: list[str] | None = None) -> int:
    configure(level=logging.WARNING)
    parser = build_parser()
    args = parser.parse_args(argv)
    func = cast(_Cmd, getattr(args, "func"))
    try:
        return func(args)
    except ShareGuardError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
