#!/usr/bin/env python3
"""CLI for secret to ShootState synchronisation."""

import argparse
import asyncio
import json
import logging
import sys
from contextlib import AsyncExitStack
from pathlib import Path

from shootstate_sync.client import KubeClient
from shootstate_sync.config import SyncConfig
from shootstate_sync.errors import StoreError
from shootstate_sync.logging_config import setup_logging
from shootstate_sync.lookup import get_shoot_state_for_cluster
from shootstate_sync.managed_resources import (
    cleanup_legacy_priority_classes,
    delete_managed_resources,
    keep_objects_for_managed_resources,
    wait_until_managed_resources_deleted,
)
from shootstate_sync.reconciler import SecretReconciler
from shootstate_sync.state import ShootState

logger = logging.getLogger(__name__)


def load_config(args: argparse.Namespace) -> SyncConfig:
    """Load configuration from --config or the environment."""
    if args.config:
        return SyncConfig.from_yaml(args.config)
    return SyncConfig()


def print_results(results: list[dict], format_type: str = "text") -> None:
    """Print reconciliation results."""
    if format_type == "json":
        print(json.dumps(results, indent=2))
        return

    print("\n=== Reconciliation Results ===")
    for item in results:
        if item.get("error"):
            print(f"  ✗ {item['key']}: {item['error']}")
        else:
            requeue = f" (requeue after {item['requeue_after']}s)" if item["requeue_after"] else ""
            print(f"  ✓ {item['key']}: {item['outcome']}{requeue}")


def print_shoot_state(shoot_state: ShootState, format_type: str = "text") -> None:
    """Print the gardener data list of a ShootState."""
    if format_type == "json":
        print(json.dumps(shoot_state.gardener.to_list(), indent=2))
        return

    print(f"\n=== ShootState {shoot_state.namespace}/{shoot_state.name} ===")
    if not len(shoot_state.gardener):
        print("No gardener resource data")
        return

    for entry in shoot_state.gardener:
        labels = ", ".join(f"{k}={v}" for k, v in sorted((entry.labels or {}).items()))
        label_str = f" [{labels}]" if labels else ""
        print(f"  {entry.type or '?':<8} {entry.name}{label_str}")


async def open_clients(config: SyncConfig, stack: AsyncExitStack) -> tuple[KubeClient, KubeClient]:
    """Create garden and seed clients that close with the stack."""
    garden = await stack.enter_async_context(KubeClient.from_config(config.garden))
    seed = await stack.enter_async_context(KubeClient.from_config(config.seed))
    return garden, seed


async def cmd_handle(args: argparse.Namespace, config: SyncConfig) -> int:
    """Reconcile one or more secrets once."""
    results = []
    failed = False

    async with AsyncExitStack() as stack:
        garden, seed = await open_clients(config, stack)
        reconciler = SecretReconciler(garden, seed, config)

        for key in args.keys:
            try:
                result = await reconciler.handle(key)
                results.append(result.to_dict())
            except (StoreError, ValueError) as e:
                logger.error("Reconciliation failed", extra={"error": str(e)})
                results.append({"key": key, "error": str(e)})
                failed = True

    print_results(results, args.format)
    return 1 if failed else 0


async def cmd_state(args: argparse.Namespace, config: SyncConfig) -> int:
    """Show the ShootState belonging to a seed namespace."""
    async with AsyncExitStack() as stack:
        garden, seed = await open_clients(config, stack)
        try:
            shoot_state_obj, _ = await get_shoot_state_for_cluster(garden, seed, args.namespace)
        except StoreError as e:
            print(f"Error: {e}", file=sys.stderr)
            return 1

    print_shoot_state(ShootState.from_dict(shoot_state_obj), args.format)
    return 0


async def cmd_managed_resources(args: argparse.Namespace, config: SyncConfig) -> int:
    """Delete, wait for or keep objects of gardener ManagedResources."""
    async with AsyncExitStack() as stack:
        _, seed = await open_clients(config, stack)
        try:
            if args.action == "delete":
                await delete_managed_resources(seed, args.namespace)
                print(f"Deleted managed resources in {args.namespace}")
            elif args.action == "wait":
                await wait_until_managed_resources_deleted(
                    seed, args.namespace, interval=args.interval, timeout=args.timeout
                )
                print(f"No managed resources left in {args.namespace}")
            else:
                count = await keep_objects_for_managed_resources(seed, args.namespace)
                print(f"Marked {count} managed resources to keep their objects")
        except StoreError as e:
            print(f"Error: {e}", file=sys.stderr)
            return 1

    return 0


async def cmd_cleanup_priority_classes(args: argparse.Namespace, config: SyncConfig) -> int:
    """Delete legacy PriorityClasses from the seed."""
    async with AsyncExitStack() as stack:
        _, seed = await open_clients(config, stack)
        try:
            deleted = await cleanup_legacy_priority_classes(seed)
        except StoreError as e:
            print(f"Error: {e}", file=sys.stderr)
            return 1

    if deleted:
        print(f"Deleted: {', '.join(deleted)}")
    else:
        print("No legacy priority classes found")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Mirror seed secrets into gardener ShootStates",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  shootstate-sync handle shoot--dev--foo/ca            # Reconcile a secret once
  shootstate-sync state shoot--dev--foo                # Show the ShootState data list
  shootstate-sync managed-resources keep shoot--dev--foo
  shootstate-sync cleanup-priority-classes
        """,
    )
    parser.add_argument(
        "--format",
        "-f",
        choices=["text", "json"],
        default="text",
        help="Output format",
    )
    parser.add_argument(
        "--config",
        "-c",
        help="Path to YAML configuration file",
    )
    parser.add_argument(
        "--log-level",
        help="Log level, overrides logLevel from the config (default: INFO)",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    handle_parser = subparsers.add_parser("handle", help="Reconcile secrets once")
    handle_parser.add_argument("keys", nargs="+", metavar="NAMESPACE/NAME")
    handle_parser.set_defaults(func=cmd_handle)

    state_parser = subparsers.add_parser("state", help="Show ShootState for a seed namespace")
    state_parser.add_argument("namespace")
    state_parser.set_defaults(func=cmd_state)

    mr_parser = subparsers.add_parser(
        "managed-resources", help="Manage gardener ManagedResources of a namespace"
    )
    mr_parser.add_argument("action", choices=["delete", "wait", "keep"])
    mr_parser.add_argument("namespace")
    mr_parser.add_argument(
        "-i",
        "--interval",
        type=float,
        default=5.0,
        help="Poll interval in seconds for wait (default: 5)",
    )
    mr_parser.add_argument(
        "-t",
        "--timeout",
        type=float,
        default=600.0,
        help="Timeout in seconds for wait (default: 600)",
    )
    mr_parser.set_defaults(func=cmd_managed_resources)

    pc_parser = subparsers.add_parser(
        "cleanup-priority-classes", help="Delete legacy PriorityClasses"
    )
    pc_parser.set_defaults(func=cmd_cleanup_priority_classes)

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.config and not Path(args.config).exists():
        print(f"Error: Config file not found: {args.config}", file=sys.stderr)
        return 1

    config = load_config(args)
    setup_logging(
        level=args.log_level or config.log_level,
        json_format=config.log_json or args.format == "json",
    )
    try:
        return asyncio.run(args.func(args, config))
    except StoreError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
