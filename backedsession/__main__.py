#!/usr/bin/env python3
"""
Backed Session Store: Maintenance CLI

Opens the store configured through BACKEDSESSION_* environment variables
(materializing the backup table into the local directory, as any process
using the store would) and runs one command.

Usage:
    python -m backedsession length
    python -m backedsession list
    python -m backedsession flush
    python -m backedsession clear

    # Or with a custom directory and database host
    BACKEDSESSION_DIR=/var/lib/sessions BACKEDSESSION_PG_HOST=db python -m backedsession list
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from typing import Optional, Sequence

from backedsession.core.config import SessionStoreConfig
from backedsession.observability.logging import setup_logging, LogLevel
from backedsession.session.cache import SessionCache
from backedsession.storage.engine import PostgresEngine


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="backedsession",
        description="Inspect and maintain a backed session store.",
    )
    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("length", help="Print the number of stored sessions")
    sub.add_parser("list", help="Print every live session as JSON")
    sub.add_parser("flush", help="Replicate pending changes to the backup table")
    sub.add_parser("clear", help="Destroy every session and replicate the deletes")
    return parser


async def run_command(command: str, cache: SessionCache) -> int:
    """Run one command against an open cache; returns the exit code."""
    if command == "length":
        result = await cache.length()
        if result.is_err():
            print(f"Error: {result.error}", file=sys.stderr)
            return 1
        print(result.unwrap())
        return 0

    if command == "list":
        result = await cache.all()
        if result.is_err():
            print(f"Error: {result.error}", file=sys.stderr)
            return 1
        sessions = {key: dict(record) for key, record in result.unwrap().items()}
        print(json.dumps(sessions, indent=2, ensure_ascii=False))
        return 0

    if command == "clear":
        result = await cache.clear()
        if result.is_err():
            print(f"Error: {result.error}", file=sys.stderr)
            return 1

    # flush, and the tail of clear
    flushed = await cache.flush()
    if flushed.is_err():
        print(f"Error: {flushed.error}", file=sys.stderr)
        return 1

    report = flushed.unwrap()
    print(
        f"deleted={report.deleted} upserted={len(report.upserted)} "
        f"failed={len(report.failed)} skipped={len(report.skipped)}"
    )
    return 1 if report.failed or report.delete_failed else 0


async def main(argv: Optional[Sequence[str]] = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)

    config_result = SessionStoreConfig.from_env()
    if config_result.is_err():
        print(config_result.error, file=sys.stderr)
        return 2

    config = config_result.unwrap()
    validation = config.validate()
    if validation.is_err():
        print(f"Validation error: {validation.error}", file=sys.stderr)
        return 2

    setup_logging(
        LogLevel.parse(config.observability.log_level),
        json_output=config.observability.log_json,
    )

    engine_result = await PostgresEngine.create(config.postgres)
    if engine_result.is_err():
        print(f"Backend error: {engine_result.error}", file=sys.stderr)
        return 1

    async with engine_result.unwrap() as engine:
        cache_result = await SessionCache.create(config, engine)
        if cache_result.is_err():
            print(f"Startup error: {cache_result.error}", file=sys.stderr)
            return 1

        cache = cache_result.unwrap()
        try:
            return await run_command(args.command, cache)
        finally:
            await cache.close(flush=False)


def run() -> None:
    """Synchronous entry point."""
    try:
        sys.exit(asyncio.run(main()))
    except KeyboardInterrupt:
        print("\nInterrupted", file=sys.stderr)
        sys.exit(130)


if __name__ == "__main__":
    run()
