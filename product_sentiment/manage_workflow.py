"""
Management CLI for inspecting sentiment runs.

Provides commands to look up a run's status, query a running workflow's
progress, and list recent runs.

Usage:
    # Run status (running / complete / error / not_found)
    python -m product_sentiment.manage_workflow status <run_id>

    # Query stage progress of a run
    python -m product_sentiment.manage_workflow progress <run_id>

    # List recent runs
    python -m product_sentiment.manage_workflow list --limit 10

    # Show or delete a report exported by run_workflow --output-dir
    python -m product_sentiment.manage_workflow show-report <run_id> --output-dir ./reports
    python -m product_sentiment.manage_workflow delete-report <run_id> --output-dir ./reports
"""

import asyncio
import argparse

from dotenv import load_dotenv

from temporalio.client import Client
from temporalio.service import RPCError

from product_sentiment.config import Settings
from product_sentiment.service import RunService
from product_sentiment.workflows import ProductSentiment
from product_sentiment.storage import ReportStore
from product_sentiment.models import STATUS_COMPLETE

# Default directory for show-report / delete-report
DEFAULT_OUTPUT_DIR = "./reports"

load_dotenv()


async def show_status(client: Client, run_id: str) -> None:
    """
    Display the status of a run, with the report summary if complete.

    Args:
        client: Connected Temporal client
        run_id: Run identifier
    """
    status = await RunService(client).describe(run_id)

    print("=" * 60)
    print(f"Run Status: {run_id}")
    print("=" * 60)
    print(f"Status        : {status.status}")

    if status.message:
        print(f"Message       : {status.message}")

    if status.status == STATUS_COMPLETE and status.data is not None:
        report = status.data
        print(f"Product ID    : {report.product_id}")
        print(f"Product URL   : {report.canonical_url}")
        print(f"Review Count  : {report.count}")
        print(f"Avg Sentiment : {report.avg_sentiment:.1f} / 100")
        print(f"Avg Stars     : {report.avg_stars:.1f} / 5")

    print("=" * 60 + "\n")


async def query_progress(client: Client, run_id: str) -> None:
    """
    Query and display current progress of a run.

    Args:
        client: Connected Temporal client
        run_id: Run identifier
    """
    try:
        handle = client.get_workflow_handle(run_id)
        progress = await handle.query(ProductSentiment.get_progress)
    except RPCError as e:
        print(f"Error querying run: {e}")
        print(f"Run ID may be invalid or no worker is available to answer the query.")
        return

    print("=" * 60)
    print(f"Run Progress: {run_id}")
    print("=" * 60)
    print(f"Stage          : {progress['stage']}")
    print(f"Product ID     : {progress['product_id'] or 'Not yet resolved'}")
    print(f"Product URL    : {progress['canonical_url'] or 'Not yet resolved'}")
    print(f"Reviews Fetched: {progress['reviews_fetched']}")
    print(f"Reviews Scored : {progress['reviews_scored']}")
    print("=" * 60 + "\n")


async def list_runs(client: Client, limit: int = 10) -> None:
    """
    List recent runs.

    Args:
        client: Connected Temporal client
        limit: Maximum number of runs to display
    """
    try:
        workflows = client.list_workflows("WorkflowType = 'ProductSentiment'")

        print("=" * 100)
        print(f"{'Run ID':<40} {'Status':<15} {'Start Time':<25}")
        print("=" * 100)

        count = 0
        async for workflow in workflows:
            if count >= limit:
                break

            status_name = workflow.status.name if workflow.status else "UNKNOWN"
            start_time = workflow.start_time.strftime("%Y-%m-%d %H:%M:%S") if workflow.start_time else "N/A"

            print(f"{workflow.id:<40} {status_name:<15} {start_time:<25}")
            count += 1

        print("=" * 100)
        print(f"\nShowing {count} run(s)")

    except RPCError as e:
        print(f"Error listing runs: {e}")


async def show_report(store: ReportStore, run_id: str) -> None:
    """
    Display a report previously exported with ``run_workflow --output-dir``.

    Args:
        store: Report store for the export directory
        run_id: Run identifier
    """
    try:
        report = await store.read(run_id)
    except FileNotFoundError:
        print(f"No exported report for run {run_id} in {store.output_dir}")
        return

    print("=" * 60)
    print(f"Exported Report: {run_id}")
    print("=" * 60)
    print(f"Product ID    : {report['product_id']}")
    print(f"Product URL   : {report['canonical_url']}")
    print(f"Review Count  : {report['count']}")
    print(f"Avg Sentiment : {report['avg_sentiment']:.1f} / 100")
    print(f"Avg Stars     : {report['avg_stars']:.1f} / 5")
    print(f"File          : {store.get_file_path(run_id)}")
    print("=" * 60 + "\n")


async def delete_report(store: ReportStore, run_id: str) -> None:
    """Remove a run's exported report file."""
    await store.delete(run_id)
    print(f"Deleted exported report for run {run_id}")


def parse_args() -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description="Inspect product sentiment runs",
        epilog="Example: python -m product_sentiment.manage_workflow status <run_id>"
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to execute")

    status_parser = subparsers.add_parser(
        "status",
        help="Show run status and report summary"
    )
    status_parser.add_argument(
        "run_id",
        help="Run ID"
    )

    progress_parser = subparsers.add_parser(
        "progress",
        help="Query run progress"
    )
    progress_parser.add_argument(
        "run_id",
        help="Run ID"
    )

    list_parser = subparsers.add_parser(
        "list",
        help="List recent runs"
    )
    list_parser.add_argument(
        "--limit",
        type=int,
        default=10,
        help="Maximum number of runs to display (default: 10)"
    )

    for command, help_text in (
        ("show-report", "Show an exported report"),
        ("delete-report", "Delete an exported report"),
    ):
        report_parser = subparsers.add_parser(command, help=help_text)
        report_parser.add_argument(
            "run_id",
            help="Run ID"
        )
        report_parser.add_argument(
            "--output-dir",
            default=DEFAULT_OUTPUT_DIR,
            help=f"Directory the report was exported to (default: {DEFAULT_OUTPUT_DIR})"
        )

    return parser.parse_args()


async def main() -> None:
    """Main entry point for management CLI."""
    args = parse_args()

    if args.command is None:
        print("Error: No command specified")
        print("Use --help for usage information")
        return

    # Exported reports live on disk, no Temporal connection needed
    if args.command == "show-report":
        await show_report(ReportStore(args.output_dir), args.run_id)
        return
    if args.command == "delete-report":
        await delete_report(ReportStore(args.output_dir), args.run_id)
        return

    client = await Client.connect(Settings.from_env().temporal_address)

    if args.command == "status":
        await show_status(client, args.run_id)
    elif args.command == "progress":
        await query_progress(client, args.run_id)
    elif args.command == "list":
        await list_runs(client, args.limit)


if __name__ == "__main__":
    asyncio.run(main())
