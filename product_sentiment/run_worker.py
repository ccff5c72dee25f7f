"""
Temporal worker process for the product sentiment workflow.

Workers poll the Temporal server for tasks and execute workflow and activity
code. This worker handles the ProductSentiment workflow and its four stage
activities (resolve_product, fetch_reviews, score_reviews, aggregate_reviews).

To run:
    python -m product_sentiment.run_worker

Prerequisites:
    - Temporal server running (TEMPORAL_ADDRESS, default localhost:7233)
    - Environment variables configured in .env (REVIEWS_API_KEY,
      RESOLVER_API_KEY, SCORING_API_KEY, ...)
"""

import asyncio
import logging

from dotenv import load_dotenv

from temporalio.client import Client
from temporalio.worker import Worker

from product_sentiment.config import Settings, configure_logging
from product_sentiment.workflows import ProductSentiment
from product_sentiment.activities import (
    aggregate_reviews,
    fetch_reviews,
    resolve_product,
    score_reviews,
)

# Load environment variables from .env file
load_dotenv()

logger = logging.getLogger(__name__)


async def main() -> None:
    """
    Start the Temporal worker and begin polling for tasks.

    The worker will run indefinitely until interrupted (Ctrl+C) or the
    process is terminated.
    """
    settings = Settings.from_env()
    configure_logging(settings.log_level)

    client = await Client.connect(settings.temporal_address)

    worker = Worker(
        client,
        task_queue=settings.task_queue,
        workflows=[ProductSentiment],
        activities=[resolve_product, fetch_reviews, score_reviews, aggregate_reviews],
    )

    logger.info(
        "Worker polling task queue %s on %s", settings.task_queue, settings.temporal_address
    )
    await worker.run()


if __name__ == "__main__":
    asyncio.run(main())
