"""
Scan local files with MetaDefender, reusing cached verdicts when the service has one.

Usage:
  filescan path/to/file.exe [more files ...] \
    --api-key <key>            # or METADEFENDER_API_KEY in the environment / .env
    --poll-interval 10 \
    --timeout 900 \
    --json
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from typing import Sequence

from filescan.core.config import settings
from filescan.schemas.scan import ScanOutcome
from filescan.services.formatter import format_outcome_json, format_verdict
from filescan.services.metadefender import (
    MetaDefenderClient,
    MetaDefenderConfigurationError,
    MetaDefenderError,
)
from filescan.services.scanner import ScanOrchestrator

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_SCAN_FAILED = 1
EXIT_CONFIG = 2
EXIT_INTERRUPTED = 130


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="filescan", description="Cache-first malware scan via MetaDefender.")
    p.add_argument("paths", nargs="+", help="File(s) to scan")
    p.add_argument("--api-key", default=None, help="Overrides METADEFENDER_API_KEY")
    p.add_argument("--base-url", default=None, help="Overrides METADEFENDER_BASE_URL")
    p.add_argument("--poll-interval", type=float, default=None, help="Seconds between status checks")
    p.add_argument("--timeout", type=float, default=None, help="Seconds per file before giving up; 0 = no limit")
    p.add_argument("--concurrency", type=int, default=None, help="Files scanned at once")
    p.add_argument("--json", action="store_true", help="Print results as JSON")
    p.add_argument("-v", "--verbose", action="store_true", help="Debug logging on stderr")
    return p


def configure_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else getattr(logging, settings.LOG_LEVEL, logging.WARNING)
    logging.basicConfig(
        level=level,
        stream=sys.stderr,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    # httpx logs full request lines at INFO; keep them out unless debugging.
    logging.getLogger("httpx").setLevel(logging.DEBUG if verbose else logging.WARNING)


async def scan_paths(
    client: MetaDefenderClient,
    paths: Sequence[str],
    *,
    poll_interval: float,
    timeout: float | None,
    concurrency: int,
) -> list[ScanOutcome | BaseException]:
    """
    Scan every path with its own orchestrator; results come back in input order.

    Per-file failures (OSError, MetaDefenderError) are returned in place of the
    outcome so one bad file doesn't stop the rest.
    """
    gate = asyncio.Semaphore(concurrency)

    async def _scan_one(path: str) -> ScanOutcome | BaseException:
        async with gate:
            orchestrator = ScanOrchestrator(client, poll_interval=poll_interval, timeout=timeout)
            try:
                return await orchestrator.scan(path)
            except (OSError, MetaDefenderError) as exc:
                logger.debug("Scan of %s failed", path, exc_info=True)
                return exc

    return list(await asyncio.gather(*(_scan_one(p) for p in paths)))


async def _run(args: argparse.Namespace) -> int:
    api_key = args.api_key if args.api_key is not None else settings.METADEFENDER_API_KEY
    base_url = args.base_url or settings.METADEFENDER_BASE_URL
    poll_interval = settings.SCAN_POLL_INTERVAL_SECONDS if args.poll_interval is None else args.poll_interval
    if args.timeout is not None and args.timeout < 0:
        print("Error: --timeout must be >= 0", file=sys.stderr, flush=True)
        return EXIT_CONFIG
    timeout = settings.scan_timeout if args.timeout is None else (args.timeout or None)
    concurrency = settings.SCAN_CONCURRENCY if args.concurrency is None else args.concurrency

    if poll_interval < 0 or concurrency < 1:
        print("Error: --poll-interval must be >= 0, --concurrency >= 1", file=sys.stderr, flush=True)
        return EXIT_CONFIG

    try:
        client = MetaDefenderClient(
            api_key=api_key,
            base_url=base_url,
            timeout=settings.METADEFENDER_REQUEST_TIMEOUT,
        )
    except MetaDefenderConfigurationError as exc:
        print(f"Error: {exc}", file=sys.stderr, flush=True)
        return EXIT_CONFIG

    async with client:
        results = await scan_paths(
            client,
            args.paths,
            poll_interval=poll_interval,
            timeout=timeout,
            concurrency=concurrency,
        )

    exit_code = EXIT_OK
    for path, result in zip(args.paths, results):
        if isinstance(result, BaseException):
            print(f"Error: {path}: {result}", file=sys.stderr, flush=True)
            exit_code = EXIT_SCAN_FAILED
            continue
        if args.json:
            print(format_outcome_json(result), flush=True)
        else:
            print(format_verdict(result.verdict), flush=True)
    return exit_code


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.verbose)
    try:
        return asyncio.run(_run(args))
    except KeyboardInterrupt:
        print("Error: interrupted", file=sys.stderr, flush=True)
        return EXIT_INTERRUPTED


if __name__ == "__main__":
    raise SystemExit(main())
