#!/usr/bin/env python3
"""Command-line interface for SafeNest operators.

Usage:
    python -m safenest.cli --help
    python -m safenest.cli check-url https://988lifeline.org --channel screenshot
    python -m safenest.cli allowlist --category suicide --region us
    python -m safenest.cli sweep --once
    python -m safenest.cli queue-status
    python -m safenest.cli process-queue

Stores and streams are chosen from the environment, exactly as the HTTP
services choose them (SIGNAL_STORE, SAFE_ESCAPE_STORE, ...).
"""
import argparse
import asyncio
import json
import logging
import sys
import threading

from safenest.services.crisis_guard import (
    CrisisCategory,
    CrisisGuard,
    MonitoringChannel,
    Region,
    get_default_matcher,
)

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


def setup_parser() -> argparse.ArgumentParser:
    """Set up argument parser."""
    parser = argparse.ArgumentParser(
        description="SafeNest operator CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    check_parser = subparsers.add_parser(
        "check-url", help="Check whether monitoring must skip a URL"
    )
    check_parser.add_argument("url", help="URL to check")
    check_parser.add_argument(
        "--channel",
        choices=[channel.value for channel in MonitoringChannel],
        help="Monitoring channel (default: all)"
    )

    allowlist_parser = subparsers.add_parser("allowlist", help="List crisis resources")
    allowlist_parser.add_argument(
        "--category", choices=[category.value for category in CrisisCategory],
        help="Filter by category"
    )
    allowlist_parser.add_argument(
        "--region", choices=[region.value for region in Region],
        help="Filter by region"
    )

    sweep_parser = subparsers.add_parser(
        "sweep", help="Send Safe Escape notifications whose silent window has passed"
    )
    sweep_parser.add_argument(
        "--once", action="store_true",
        help="Run a single sweep and exit"
    )
    sweep_parser.add_argument(
        "--interval", type=float,
        help="Seconds between sweeps (default from SAFE_ESCAPE_SWEEP_INTERVAL_SECONDS)"
    )

    subparsers.add_parser("queue-status", help="Show safety signal queue status")
    subparsers.add_parser("process-queue", help="Retry due safety signals now")

    return parser


def cmd_check_url(args) -> int:
    """Print only the verdict; the URL itself is never echoed or logged."""
    guard = CrisisGuard(get_default_matcher())
    if args.channel:
        blocked = guard.should_block_channel(args.url, MonitoringChannel(args.channel))
    else:
        blocked = guard.should_block(args.url)

    print("blocked" if blocked else "allowed")
    return 0


def cmd_allowlist(args) -> int:
    matcher = get_default_matcher()
    if args.category:
        entries = matcher.get_resources_by_category(CrisisCategory(args.category))
    else:
        entries = matcher.get_crisis_allowlist()
    if args.region:
        entries = [entry for entry in entries if entry.region == Region(args.region)]

    print(f"Crisis allowlist v{matcher.version}: {len(entries)} resources")
    for entry in entries:
        print(f"  {entry.domain:<32} {entry.category.value:<16} {entry.region.value:<14} {entry.name}")
    return 0


def cmd_sweep(args) -> int:
    from safenest.services.safe_escape import EscapeNotificationSweeper
    from safenest.services.safe_escape.handler import controller

    sweeper = EscapeNotificationSweeper(controller, interval_seconds=args.interval)
    if args.once:
        sent = sweeper.run_once()
        print(f"Notifications sent: {sent}")
        return 0

    stop_event = threading.Event()
    try:
        sweeper.run_forever(stop_event)
    except KeyboardInterrupt:
        stop_event.set()
    return 0


def cmd_queue_status(args) -> int:
    from safenest.services.safety_signal.handler import pipeline

    print(json.dumps(pipeline.get_queue_status(), indent=2))
    return 0


def cmd_process_queue(args) -> int:
    from safenest.services.safety_signal.handler import pipeline

    handed_off = asyncio.run(pipeline.process_queue())
    print(f"Signals handed off: {handed_off}")
    print(json.dumps(pipeline.get_queue_status(), indent=2))
    return 0


def main(argv=None) -> int:
    """Main entry point."""
    parser = setup_parser()
    args = parser.parse_args(argv)

    if args.command == "check-url":
        return cmd_check_url(args)
    elif args.command == "allowlist":
        return cmd_allowlist(args)
    elif args.command == "sweep":
        return cmd_sweep(args)
    elif args.command == "queue-status":
        return cmd_queue_status(args)
    elif args.command == "process-queue":
        return cmd_process_queue(args)
    else:
        parser.print_help()
        return 0


if __name__ == "__main__":
    sys.exit(main())
