"""
Temporal workflow for the product review sentiment report.

Workflows are the orchestration layer in Temporal - they coordinate activities,
manage state durably, and survive worker restarts. Workflow code must be
deterministic (no random numbers, current time, or direct I/O).

The workflow ID is the run's ``run_id``, so Temporal's ID-keyed scheduling
provides the single-flight guarantee: a replay after a worker crash resumes
from the event history without re-running completed stages, and the report
is the workflow result, published exactly once.

For design rationale on:
- Stage boundaries and retry decisions: See activities.py module docstring
- Scoring policy: See scoring.py module docstring
"""

from datetime import timedelta
from typing import Optional, Tuple

from temporalio import workflow
from temporalio.common import RetryPolicy
from temporalio.exceptions import (
    ActivityError,
    ApplicationError,
    FailureError,
    RetryState,
    TimeoutError,
)

with workflow.unsafe.imports_passed_through():
    from product_sentiment.activities import (
        aggregate_reviews,
        fetch_reviews,
        resolve_product,
        score_reviews,
    )
    from product_sentiment.errors import STAGE_RETRY_EXHAUSTED, STAGE_TIMEOUT
    from product_sentiment.models import (
        AggregateReviewsInput,
        FetchReviewsInput,
        Report,
        ResolveProductInput,
        ScoreReviewsInput,
        SentimentReportInput,
    )

# Per-stage budget: each activity attempt must finish within this window
STAGE_START_TO_CLOSE_TIMEOUT = timedelta(minutes=5)

# Shared by all four stages
STAGE_RETRY_POLICY = RetryPolicy(
    initial_interval=timedelta(seconds=1),
    maximum_interval=timedelta(seconds=30),
    backoff_coefficient=2.0,
    maximum_attempts=3,
)

# Stage names reported by the progress query
STAGE_PENDING = "pending"
STAGE_RESOLVE = "resolve"
STAGE_FETCH = "fetch"
STAGE_SCORE = "score"
STAGE_AGGREGATE = "aggregate"
STAGE_COMPLETE = "complete"
STAGE_FAILED = "failed"


def describe_stage_failure(stage: str, error: ActivityError) -> Tuple[str, str]:
    """
    Classify a failed stage and pick the message to surface.

    Returns:
        Tuple of (error_type, message). The message is the last attempt's.
    """
    cause = error.cause

    if isinstance(cause, TimeoutError):
        return STAGE_TIMEOUT, f"{stage} stage timed out ({cause.type.name if cause.type else 'unknown'})"

    message = cause.message if isinstance(cause, FailureError) else str(error)

    if error.retry_state == RetryState.MAXIMUM_ATTEMPTS_REACHED:
        return STAGE_RETRY_EXHAUSTED, message

    if isinstance(cause, ApplicationError) and cause.type:
        return cause.type, message

    return STAGE_RETRY_EXHAUSTED, message


@workflow.defn
class ProductSentiment:
    """
    Builds a sentiment report for one product's reviews.

    Stages run strictly in sequence, each waiting for the previous stage's
    full output: resolve identifier -> fetch reviews -> score reviews ->
    aggregate. Every stage gets the same start-to-close timeout and retry
    policy. When a stage fails for good the workflow fails with a single
    message and the remaining stages never run, so a partial report is never
    returned as a result.
    """

    def __init__(self) -> None:
        """Initialize workflow state for query support."""
        self._stage = STAGE_PENDING
        self._product_id: Optional[str] = None
        self._canonical_url: Optional[str] = None
        self._reviews_fetched = 0
        self._reviews_scored = 0

    @workflow.query
    def get_progress(self) -> dict:
        """
        Query current workflow progress.

        Returns:
            Dictionary with current progress:
                - stage: Stage currently running (or complete/failed)
                - product_id: Resolved product ID (None until resolved)
                - canonical_url: Canonical product URL (None until resolved)
                - reviews_fetched: Reviews returned by the fetch stage
                - reviews_scored: Reviews returned by the score stage
        """
        return {
            "stage": self._stage,
            "product_id": self._product_id,
            "canonical_url": self._canonical_url,
            "reviews_fetched": self._reviews_fetched,
            "reviews_scored": self._reviews_scored,
        }

    @workflow.run
    async def run(self, input: SentimentReportInput) -> Report:
        """
        Produce the sentiment report for the requested product.

        Args:
            input: Workflow input parameters

        Returns:
            Final report with per-review scores and averages

        Raises:
            ApplicationError: Non-retryable, when any stage fails permanently
        """
        try:
            self._stage = STAGE_RESOLVE
            resolved = await workflow.execute_activity(
                resolve_product,
                ResolveProductInput(input_url=input.input_url, product_id=input.product_id),
                start_to_close_timeout=STAGE_START_TO_CLOSE_TIMEOUT,
                retry_policy=STAGE_RETRY_POLICY,
            )
            self._product_id = resolved.product_id
            self._canonical_url = resolved.canonical_url

            self._stage = STAGE_FETCH
            reviews = await workflow.execute_activity(
                fetch_reviews,
                FetchReviewsInput(product_id=resolved.product_id, limit=input.max_reviews),
                start_to_close_timeout=STAGE_START_TO_CLOSE_TIMEOUT,
                retry_policy=STAGE_RETRY_POLICY,
            )
            self._reviews_fetched = len(reviews)

            self._stage = STAGE_SCORE
            scored_reviews = await workflow.execute_activity(
                score_reviews,
                ScoreReviewsInput(reviews=reviews, policy=input.scoring_policy),
                start_to_close_timeout=STAGE_START_TO_CLOSE_TIMEOUT,
                retry_policy=STAGE_RETRY_POLICY,
            )
            self._reviews_scored = len(scored_reviews)

            self._stage = STAGE_AGGREGATE
            aggregation = await workflow.execute_activity(
                aggregate_reviews,
                AggregateReviewsInput(reviews=scored_reviews),
                start_to_close_timeout=STAGE_START_TO_CLOSE_TIMEOUT,
                retry_policy=STAGE_RETRY_POLICY,
            )
        except ActivityError as e:
            failed_stage = self._stage
            self._stage = STAGE_FAILED
            error_type, message = describe_stage_failure(failed_stage, e)
            workflow.logger.error(f"Run {input.run_id} failed in {failed_stage} stage: {message}")
            raise ApplicationError(
                f"Sentiment workflow failed: {message}",
                type=error_type,
                non_retryable=True,
            ) from e

        self._stage = STAGE_COMPLETE
        workflow.logger.info(
            f"Run {input.run_id} complete: {aggregation.count} reviews, "
            f"avg sentiment {aggregation.avg_sentiment}"
        )

        return Report(
            product_id=resolved.product_id,
            canonical_url=resolved.canonical_url,
            count=aggregation.count,
            avg_sentiment=aggregation.avg_sentiment,
            avg_stars=aggregation.avg_stars,
            reviews=scored_reviews,
        )
