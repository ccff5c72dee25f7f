"""
CLI client for executing the product sentiment workflow.

This script submits a run to the Temporal server and waits for the report.
The workflow must have a worker running to process it (see run_worker.py).
Re-running with the same --run-id attaches to the existing run instead of
starting a new one.

Usage:
    python -m product_sentiment.run_workflow https://www.bestbuy.com/site/x/6418599.p
    python -m product_sentiment.run_workflow --product-id 6418599 --max-reviews 50
    python -m product_sentiment.run_workflow <url> --run-id my-run --output-dir ./reports

Example output:
    ============================================================
    Product Sentiment Report
    ============================================================
    Run ID        : 0b6f3c1e-...
    Product ID    : 6418599
    Product URL   : https://www.bestbuy.com/site/x/6418599.p
    Review Count  : 100
    Avg Sentiment : 78.4 / 100
    Avg Stars     : 4.3 / 5
    ============================================================
"""

import sys
import uuid
import asyncio
import argparse
import dataclasses

from dotenv import load_dotenv

from temporalio.client import Client, WorkflowFailureError

from product_sentiment.config import Settings, configure_logging
from product_sentiment.service import RunService, failure_message
from product_sentiment.storage import ReportStore
from product_sentiment.models import DEFAULT_MAX_REVIEWS, Report, SentimentReportInput

load_dotenv()


def parse_args() -> argparse.Namespace:
    """
    Parse command-line arguments for workflow execution.

    Returns:
        Parsed arguments with url or product_id, max_reviews, run_id, output_dir

    Raises:
        SystemExit: If max_reviews is not positive
    """
    parser = argparse.ArgumentParser(
        description="Run the Product Sentiment workflow on Temporal",
        epilog="Example: python -m product_sentiment.run_workflow --product-id 6418599 --max-reviews 50"
    )
    parser.add_argument(
        "url",
        nargs="?",
        help="Product page URL to analyze",
    )
    parser.add_argument(
        "--product-id",
        help="Numeric product ID (skips URL resolution)",
    )
    parser.add_argument(
        "--max-reviews",
        type=int,
        default=DEFAULT_MAX_REVIEWS,
        help=f"Maximum number of reviews to analyze (default: {DEFAULT_MAX_REVIEWS})",
    )
    parser.add_argument(
        "--run-id",
        default=None,
        help="Run ID (idempotency key); a new UUID if omitted",
    )
    parser.add_argument(
        "--output-dir",
        default=None,
        help="Directory to export the report JSON to",
    )

    args = parser.parse_args()

    if bool(args.url) == bool(args.product_id):
        parser.error("provide exactly one of a product URL or --product-id")

    if args.product_id and not args.product_id.isdigit():
        parser.error("--product-id must be numeric")

    if args.max_reviews <= 0:
        parser.error("--max-reviews must be a positive integer")

    return args


async def main(args: argparse.Namespace) -> int:
    """
    Submit a run, wait for the report and print it.

    Returns:
        Process exit code (0 on success, 1 if the run failed)
    """
    settings = Settings.from_env()
    configure_logging(settings.log_level)

    run_id = args.run_id or str(uuid.uuid4())

    print(f"Starting workflow execution...")
    print(f"  Run ID: {run_id}")
    print(f"  Input: {args.url or args.product_id}")
    print(f"  Max reviews: {args.max_reviews}")
    print()

    client = await Client.connect(settings.temporal_address)
    service = RunService(client, task_queue=settings.task_queue)

    request = SentimentReportInput(
        run_id=run_id,
        input_url=args.url,
        product_id=args.product_id,
        max_reviews=args.max_reviews,
    )

    handle = await service.start_run(request)

    try:
        report = await handle.result()
    except WorkflowFailureError as e:
        print(f"Run {run_id} failed: {failure_message(e)}")
        return 1

    print_result(run_id, report)

    if args.output_dir:
        path = await ReportStore(args.output_dir).write_atomic(run_id, dataclasses.asdict(report))
        print(f"Report written to {path}")

    return 0


def print_result(run_id: str, report: Report) -> None:
    """
    Pretty-print the report summary.

    Args:
        run_id: Run identifier
        report: Completed report
    """
    print("=" * 60)
    print("Product Sentiment Report")
    print("=" * 60)
    print(f"Run ID        : {run_id}")
    print(f"Product ID    : {report.product_id}")
    print(f"Product URL   : {report.canonical_url}")
    print(f"Review Count  : {report.count}")
    print(f"Avg Sentiment : {report.avg_sentiment:.1f} / 100")
    print(f"Avg Stars     : {report.avg_stars:.1f} / 5")
    print("=" * 60 + "\n")


if __name__ == "__main__":
    sys.exit(asyncio.run(main(parse_args())))
