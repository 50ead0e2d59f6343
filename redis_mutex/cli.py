"""
Redis Mutex - Maintenance CLI

Usage:
    python -m redis_mutex sweep [--redis-url URL] [--namespace NS] [--window SECONDS] [--json]
    python -m redis_mutex status KEY [--type TYPE] [--limit N] [--expire SECONDS]

Exit codes:
    0: Command completed
    1: Redis unavailable
    2: Invalid arguments or configuration
"""

import argparse
import asyncio
import json
import sys
from typing import Optional

import structlog

from redis_mutex.config import POLICY_TYPES, get_settings
from redis_mutex.exceptions import ConfigurationError, StoreUnavailable
from redis_mutex.logging_config import configure_logging
from redis_mutex.mutex import RedisMutex
from redis_mutex.store import RedisStore
from redis_mutex.sweeper import Sweeper

logger = structlog.get_logger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="redis_mutex",
        description="Maintenance commands for Redis-backed mutexes",
    )
    parser.add_argument("--redis-url", help="Redis URL (default: REDIS_MUTEX_REDIS_URL)")
    parser.add_argument("--namespace", help="Key namespace (default: REDIS_MUTEX_NAMESPACE)")
    parser.add_argument("--json", action="store_true", help="Print machine-readable output")
    parser.add_argument("--log-level", help="Log level (default: REDIS_MUTEX_LOG_LEVEL)")

    subparsers = parser.add_subparsers(dest="command", required=True)

    sweep_parser = subparsers.add_parser("sweep", help="Reclaim stale lock records")
    sweep_parser.add_argument(
        "--window",
        type=float,
        help="Lifetime in seconds of the interim value written while reclaiming a lock",
    )

    status_parser = subparsers.add_parser("status", help="Show whether a key is locked")
    status_parser.add_argument("key", help="Lock key (without namespace)")
    status_parser.add_argument("--type", default="exclusive", help=f"One of {', '.join(POLICY_TYPES)}")
    status_parser.add_argument("--limit", type=int, help="Capacity for counting policies")
    status_parser.add_argument("--expire", type=float, help="Window in seconds")

    return parser


async def run_sweep(store: RedisStore, window: Optional[float]) -> dict:
    result = await Sweeper(store=store, window=window).sweep_report()
    return result.to_dict()


async def run_status(store: RedisStore, args: argparse.Namespace) -> dict:
    options = {"type": args.type, "block": 0}
    if args.limit is not None:
        options["limit"] = args.limit
    if args.expire is not None:
        options["expire"] = args.expire
    mutex = RedisMutex(args.key, store=store, **options)
    return {
        "key": args.key,
        "type": mutex.options.type,
        "locked": await mutex.locked(),
        "count": await mutex.count(),
        "limit": mutex.options.limit,
    }


async def run(args: argparse.Namespace) -> dict:
    settings = get_settings()
    store = RedisStore.from_url(
        args.redis_url or settings.redis_url,
        namespace=args.namespace or settings.namespace,
    )
    try:
        if args.command == "sweep":
            return await run_sweep(store, args.window)
        return await run_status(store, args)
    finally:
        await store.close()


def print_result(result: dict, as_json: bool) -> None:
    if as_json:
        print(json.dumps(result, sort_keys=True))
        return
    for name, value in result.items():
        print(f"{name}: {value}")


def main(argv: Optional[list[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    settings = get_settings()
    configure_logging(args.log_level or settings.log_level, json_output=settings.log_json)

    try:
        result = asyncio.run(run(args))
    except ConfigurationError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2
    except StoreUnavailable as e:
        logger.error("redis_mutex_cli_store_unavailable", command=args.command, error=str(e))
        print(f"Redis unavailable: {e}", file=sys.stderr)
        return 1

    print_result(result, args.json)
    return 0
