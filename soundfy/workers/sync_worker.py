#!/usr/bin/env python
"""
Sync Worker CLI - run catalog syncs and single jobs outside the web process.

Commands:
    sync    Run the product and/or collection sync for one shop
    run     Run any registered job with JSON arguments

Jobs run inline. A job that asks to be retried is re-run after its
backoff delay until it succeeds, is discarded or reaches dead letter.
Interrupted syncs resume from their last committed page.

Usage:
    # Full sync for one shop
    python -m soundfy.workers.sync_worker sync --shop-domain mystore.myshopify.com

    # Products only
    python -m soundfy.workers.sync_worker sync --shop-domain mystore.myshopify.com --only products

    # Replay a webhook
    python -m soundfy.workers.sync_worker run ProductsUpdateJob \\
        --arguments '{"shop_domain": "mystore.myshopify.com", "webhook": {"id": 1}}'

Cron Examples:
    # Nightly resync at 3am UTC
    0 3 * * * cd /app && python -m soundfy.workers.sync_worker sync --shop-domain mystore.myshopify.com
"""

import argparse
import asyncio
import json
import logging
import sys
from typing import Any, Dict, List, Optional

from soundfy.database.session import dispose_engine, session_scope
from soundfy.jobs import JOB_REGISTRY, JobResult, JobStatus, get_job_class
from soundfy.jobs.sync_collections import SyncCollectionsJob
from soundfy.jobs.sync_products import SyncProductsJob
from soundfy.models.shop import Shop
from soundfy.platform.log_config import configure_logging

logger = logging.getLogger(__name__)

SYNC_JOBS = {
    "collections": SyncCollectionsJob,
    "products": SyncProductsJob,
}


async def run_job(
    job_name: str,
    arguments: Dict[str, Any],
    session_factory=session_scope,
    sleep=asyncio.sleep,
) -> JobResult:
    """Run a job, retrying after each backoff delay until it is terminal."""
    job_cls = get_job_class(job_name)
    retry_count = 0
    while True:
        with session_factory() as db:
            result = await job_cls.perform_now(db, arguments, retry_count=retry_count)
        if result.is_terminal:
            return result

        logger.info("sync_worker.retry_wait", extra={
            "job_name": job_name,
            "delay_seconds": result.delay_seconds,
            "retry_count": retry_count,
        })
        await sleep(result.delay_seconds)
        retry_count += 1


def _resolve_shop_id(shop_domain: str, session_factory=session_scope) -> Optional[str]:
    with session_factory() as db:
        shop = Shop.find_by_domain(db, shop_domain)
        return shop.id if shop else None


async def _sync(shop_domain: str, only: Optional[str]) -> List[JobResult]:
    shop_id = _resolve_shop_id(shop_domain)
    if shop_id is None:
        raise LookupError(f"Shop not found: {shop_domain}")

    names = [only] if only else list(SYNC_JOBS)
    results = []
    for name in names:
        results.append(await run_job(SYNC_JOBS[name].job_name, {"shop": shop_id}))
    return results


def _print_result(result: JobResult) -> None:
    line = f"{result.job_name}: {result.status.value}"
    if result.error_category:
        line += f" ({result.error_category.value})"
    if result.value is not None and hasattr(result.value, "records"):
        line += f" - {result.value.batches} batches, {result.value.records} records"
    print(line)


def cmd_sync(args) -> int:
    """Run catalog syncs for one shop."""
    logger.info(
        "sync_worker.sync.start",
        extra={"shop_domain": args.shop_domain, "only": args.only},
    )

    try:
        results = asyncio.run(_sync(args.shop_domain, args.only))
    except LookupError as e:
        print(str(e), file=sys.stderr)
        return 1
    except Exception as e:
        logger.exception("sync_worker.sync.error", extra={"error": str(e)})
        print(f"Error running sync: {e}", file=sys.stderr)
        return 1

    for result in results:
        _print_result(result)

    logger.info(
        "sync_worker.sync.complete",
        extra={"statuses": [r.status.value for r in results]},
    )
    return 0 if all(r.status == JobStatus.SUCCEEDED for r in results) else 1


def cmd_run(args) -> int:
    """Run one registered job."""
    try:
        arguments = json.loads(args.arguments) if args.arguments else {}
    except ValueError as e:
        print(f"Invalid --arguments JSON: {e}", file=sys.stderr)
        return 2

    if args.job_name not in JOB_REGISTRY:
        print(f"Unknown job: {args.job_name}", file=sys.stderr)
        print(f"Known jobs: {', '.join(sorted(JOB_REGISTRY))}", file=sys.stderr)
        return 2

    try:
        result = asyncio.run(run_job(args.job_name, arguments))
    except Exception as e:
        logger.exception("sync_worker.run.error", extra={"job_name": args.job_name, "error": str(e)})
        print(f"Error running job: {e}", file=sys.stderr)
        return 1

    _print_result(result)
    return 0 if result.status == JobStatus.SUCCEEDED else 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Sync Worker - Shopify catalog sync and job runner",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s sync --shop-domain mystore.myshopify.com              Sync collections and products
  %(prog)s sync --shop-domain mystore.myshopify.com --only products
  %(prog)s run AppUninstalledJob --arguments '{"shop_domain": "mystore.myshopify.com"}'
        """,
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    sync_parser = subparsers.add_parser("sync", help="Run catalog syncs for one shop")
    sync_parser.add_argument("--shop-domain", required=True, help="Shop myshopify.com domain")
    sync_parser.add_argument(
        "--only",
        choices=sorted(SYNC_JOBS),
        help="Run a single sync instead of all",
    )
    sync_parser.set_defaults(func=cmd_sync)

    run_parser = subparsers.add_parser("run", help="Run one registered job")
    run_parser.add_argument("job_name", help="Registered job name, e.g. ProductsUpdateJob")
    run_parser.add_argument("--arguments", help="Job arguments as a JSON object")
    run_parser.set_defaults(func=cmd_run)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for sync worker CLI."""
    configure_logging()
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    try:
        return args.func(args)
    finally:
        dispose_engine()


if __name__ == "__main__":
    sys.exit(main())
