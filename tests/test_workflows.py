"""
Unit tests for the Temporal workflow.

Tests cover:
- Workflow execution with mocked activities
- Report assembly and ordering
- Direct product ID input
- Scoring-service outage (report still completes with fallback scores)
- Stage failure handling (first-page fetch error, unresolvable identifier)
- Stage timeout (hung activity) and failure classification
- Query functionality (progress monitoring)
"""

import uuid
import asyncio
import pytest
from typing import List
from unittest.mock import AsyncMock, patch

import aiohttp
from temporalio import activity
from temporalio.client import WorkflowFailureError
from temporalio.exceptions import (
    ActivityError,
    ApplicationError,
    RetryState,
    TimeoutError,
    TimeoutType,
)
from temporalio.testing import WorkflowEnvironment
from temporalio.worker import Worker

from product_sentiment.activities import (
    aggregate_reviews,
    fetch_reviews,
    resolve_product,
    score_reviews,
)
from product_sentiment.workflows import ProductSentiment, describe_stage_failure
from product_sentiment.models import (
    FetchReviewsInput,
    Report,
    ResolvedProduct,
    ResolveProductInput,
    Review,
    ScoredReview,
    ScoreReviewsInput,
    SentimentReportInput,
)

TASK_QUEUE = "test-task-queue"


def make_review(n: int, stars: int, comment: str = "A perfectly ordinary review text") -> Review:
    return Review(
        id=str(n),
        product_id="6418599",
        star_rating=stars,
        title=f"Review {n}",
        comment=comment,
        submitted_at=f"2024-05-{30 - n:02d}T12:00:00",
    )


SAMPLE_REVIEWS = [make_review(1, 5), make_review(2, 3), make_review(3, 4)]


@activity.defn(name="resolve_product")
async def mock_resolve_product(input: ResolveProductInput) -> ResolvedProduct:
    return ResolvedProduct(
        product_id="6418599",
        canonical_url="https://example.com/site/x/6418599.p",
    )


@activity.defn(name="fetch_reviews")
async def mock_fetch_reviews(input: FetchReviewsInput) -> List[Review]:
    return SAMPLE_REVIEWS[: input.limit]


@activity.defn(name="score_reviews")
async def mock_score_reviews(input: ScoreReviewsInput) -> List[ScoredReview]:
    return [ScoredReview.from_review(r, r.star_rating * 20 - 10) for r in input.reviews]


class TestProductSentimentWorkflow:
    """Test the ProductSentiment workflow with mocked activities."""

    @pytest.fixture
    async def workflow_env(self):
        """Create Temporal test environment."""
        async with await WorkflowEnvironment.start_time_skipping() as env:
            yield env

    def make_input(self, **kwargs) -> SentimentReportInput:
        params = {
            "run_id": str(uuid.uuid4()),
            "input_url": "https://example.com/site/x/6418599.p?foo=1",
        }
        params.update(kwargs)
        return SentimentReportInput(**params)

    async def test_workflow_completes_successfully(self, workflow_env):
        """Test complete workflow execution through all four stages."""
        async with Worker(
            workflow_env.client,
            task_queue=TASK_QUEUE,
            workflows=[ProductSentiment],
            activities=[mock_resolve_product, mock_fetch_reviews, mock_score_reviews, aggregate_reviews],
        ):
            input_params = self.make_input()

            result = await workflow_env.client.execute_workflow(
                ProductSentiment.run,
                input_params,
                id=input_params.run_id,
                task_queue=TASK_QUEUE,
            )

            assert isinstance(result, Report)
            assert result.product_id == "6418599"
            assert result.canonical_url == "https://example.com/site/x/6418599.p"
            assert result.count == 3
            assert result.count == len(result.reviews)

            # Scores 90, 50, 70 -> 70.0; stars 5, 3, 4 -> 4.0
            assert result.avg_sentiment == 70.0
            assert result.avg_stars == 4.0

            # Fetch order (newest first) is preserved in the report
            assert [r.id for r in result.reviews] == ["1", "2", "3"]

    async def test_workflow_respects_max_reviews(self, workflow_env):
        """Test max_reviews is passed to the fetch stage."""
        async with Worker(
            workflow_env.client,
            task_queue=TASK_QUEUE,
            workflows=[ProductSentiment],
            activities=[mock_resolve_product, mock_fetch_reviews, mock_score_reviews, aggregate_reviews],
        ):
            input_params = self.make_input(max_reviews=2)

            result = await workflow_env.client.execute_workflow(
                ProductSentiment.run,
                input_params,
                id=input_params.run_id,
                task_queue=TASK_QUEUE,
            )

            assert result.count == 2
            assert [r.id for r in result.reviews] == ["1", "2"]

    async def test_workflow_with_product_id(self, workflow_env):
        """Test a run started from a numeric product ID skips URL resolution."""
        async with Worker(
            workflow_env.client,
            task_queue=TASK_QUEUE,
            workflows=[ProductSentiment],
            activities=[resolve_product, mock_fetch_reviews, mock_score_reviews, aggregate_reviews],
        ):
            with patch("product_sentiment.activities.ChatClient") as mock_chat:
                input_params = self.make_input(input_url=None, product_id="6418599")

                result = await workflow_env.client.execute_workflow(
                    ProductSentiment.run,
                    input_params,
                    id=input_params.run_id,
                    task_queue=TASK_QUEUE,
                )

            mock_chat.assert_not_called()
            assert result.product_id == "6418599"
            assert result.canonical_url.endswith("/6418599.p")

    async def test_workflow_empty_reviews(self, workflow_env):
        """Test a product with no reviews yields a zeroed report."""
        @activity.defn(name="fetch_reviews")
        async def empty_fetch_reviews(input: FetchReviewsInput) -> List[Review]:
            return []

        async with Worker(
            workflow_env.client,
            task_queue=TASK_QUEUE,
            workflows=[ProductSentiment],
            activities=[mock_resolve_product, empty_fetch_reviews, mock_score_reviews, aggregate_reviews],
        ):
            input_params = self.make_input()

            result = await workflow_env.client.execute_workflow(
                ProductSentiment.run,
                input_params,
                id=input_params.run_id,
                task_queue=TASK_QUEUE,
            )

            assert result.count == 0
            assert result.avg_sentiment == 0
            assert result.avg_stars == 0
            assert result.reviews == []

    async def test_workflow_scoring_outage_uses_fallback(self, workflow_env):
        """Test the run completes with rating-derived scores when scoring is down."""
        async with Worker(
            workflow_env.client,
            task_queue=TASK_QUEUE,
            workflows=[ProductSentiment],
            activities=[mock_resolve_product, mock_fetch_reviews, score_reviews, aggregate_reviews],
        ):
            with patch("product_sentiment.activities.ChatClient") as mock_chat:
                mock_chat.return_value.complete = AsyncMock(
                    side_effect=aiohttp.ClientError("service unavailable")
                )
                input_params = self.make_input()

                result = await workflow_env.client.execute_workflow(
                    ProductSentiment.run,
                    input_params,
                    id=input_params.run_id,
                    task_queue=TASK_QUEUE,
                )

            assert result.count == 3
            assert [r.sentiment for r in result.reviews] == [100, 60, 80]
            assert result.avg_sentiment == 80.0

    async def test_workflow_first_page_fetch_error(self, workflow_env):
        """Test a first-page fetch failure fails the run without a report."""
        score_calls = {"count": 0}

        @activity.defn(name="score_reviews")
        async def counting_score_reviews(input: ScoreReviewsInput) -> List[ScoredReview]:
            score_calls["count"] += 1
            return []

        async with Worker(
            workflow_env.client,
            task_queue=TASK_QUEUE,
            workflows=[ProductSentiment],
            activities=[mock_resolve_product, fetch_reviews, counting_score_reviews, aggregate_reviews],
        ):
            with patch("product_sentiment.activities.ReviewsAPI") as mock_api:
                mock_api.return_value.list_reviews = AsyncMock(
                    side_effect=aiohttp.ClientError("connection refused")
                )
                input_params = self.make_input()

                with pytest.raises(WorkflowFailureError) as exc_info:
                    await workflow_env.client.execute_workflow(
                        ProductSentiment.run,
                        input_params,
                        id=input_params.run_id,
                        task_queue=TASK_QUEUE,
                    )

            # Retried up to the stage's maximum attempts
            assert mock_api.return_value.list_reviews.await_count == 3

        cause = exc_info.value.cause
        assert isinstance(cause, ApplicationError)
        assert cause.type == "StageRetryExhausted"
        assert "Failed to fetch reviews for product 6418599" in cause.message
        assert score_calls["count"] == 0

    async def test_workflow_unresolvable_identifier(self, workflow_env):
        """Test a non-retryable resolution failure stops the run immediately."""
        resolve_calls = {"count": 0}

        @activity.defn(name="resolve_product")
        async def failing_resolve_product(input: ResolveProductInput) -> ResolvedProduct:
            resolve_calls["count"] += 1
            raise ApplicationError(
                "Failed to extract product ID from URL: https://example.com/x. Error: Could not extract SKU",
                type="UnresolvableIdentifier",
                non_retryable=True,
            )

        async with Worker(
            workflow_env.client,
            task_queue=TASK_QUEUE,
            workflows=[ProductSentiment],
            activities=[failing_resolve_product, mock_fetch_reviews, mock_score_reviews, aggregate_reviews],
        ):
            input_params = self.make_input(input_url="https://example.com/x")

            with pytest.raises(WorkflowFailureError) as exc_info:
                await workflow_env.client.execute_workflow(
                    ProductSentiment.run,
                    input_params,
                    id=input_params.run_id,
                    task_queue=TASK_QUEUE,
                )

        cause = exc_info.value.cause
        assert cause.type == "UnresolvableIdentifier"
        assert cause.message.startswith("Sentiment workflow failed: ")
        assert "Could not extract SKU" in cause.message
        assert resolve_calls["count"] == 1

    async def test_workflow_query_progress(self, workflow_env):
        """Test querying workflow progress."""
        async with Worker(
            workflow_env.client,
            task_queue=TASK_QUEUE,
            workflows=[ProductSentiment],
            activities=[mock_resolve_product, mock_fetch_reviews, mock_score_reviews, aggregate_reviews],
        ):
            input_params = self.make_input()

            handle = await workflow_env.client.start_workflow(
                ProductSentiment.run,
                input_params,
                id=input_params.run_id,
                task_queue=TASK_QUEUE,
            )

            progress = await handle.query(ProductSentiment.get_progress)
            assert "stage" in progress
            assert "product_id" in progress
            assert "reviews_fetched" in progress

            await handle.result()

            final_progress = await handle.query(ProductSentiment.get_progress)
            assert final_progress["stage"] == "complete"
            assert final_progress["product_id"] == "6418599"
            assert final_progress["reviews_fetched"] == 3
            assert final_progress["reviews_scored"] == 3

    async def test_workflow_hung_stage_times_out(self, workflow_env):
        """Test a stage that never finishes fails the run as a stage timeout."""
        @activity.defn(name="score_reviews")
        async def hanging_score_reviews(input: ScoreReviewsInput) -> List[ScoredReview]:
            await asyncio.Event().wait()
            return []

        async with Worker(
            workflow_env.client,
            task_queue=TASK_QUEUE,
            workflows=[ProductSentiment],
            activities=[mock_resolve_product, mock_fetch_reviews, hanging_score_reviews, aggregate_reviews],
        ):
            input_params = self.make_input()

            with pytest.raises(WorkflowFailureError) as exc_info:
                await workflow_env.client.execute_workflow(
                    ProductSentiment.run,
                    input_params,
                    id=input_params.run_id,
                    task_queue=TASK_QUEUE,
                )

        cause = exc_info.value.cause
        assert isinstance(cause, ApplicationError)
        assert cause.type == "StageTimeout"
        assert cause.message == "Sentiment workflow failed: score stage timed out (START_TO_CLOSE)"


def make_activity_error(cause: Exception, retry_state: RetryState) -> ActivityError:
    error = ActivityError(
        "Activity task failed",
        scheduled_event_id=5,
        started_event_id=6,
        identity="worker-1",
        activity_type="score_reviews",
        activity_id="3",
        retry_state=retry_state,
    )
    error.__cause__ = cause
    return error


class TestDescribeStageFailure:
    """Test classification of failed stages."""

    @pytest.mark.parametrize("retry_state", [
        RetryState.TIMEOUT,
        RetryState.MAXIMUM_ATTEMPTS_REACHED,
    ])
    def test_timeout(self, retry_state):
        cause = TimeoutError(
            "activity StartToClose timeout",
            type=TimeoutType.START_TO_CLOSE,
            last_heartbeat_details=[],
        )

        result = describe_stage_failure("score", make_activity_error(cause, retry_state))

        assert result == ("StageTimeout", "score stage timed out (START_TO_CLOSE)")

    def test_attempts_exhausted(self):
        cause = ApplicationError("Failed to fetch reviews for product 1: 503", type="FetchFailed")

        result = describe_stage_failure(
            "fetch", make_activity_error(cause, RetryState.MAXIMUM_ATTEMPTS_REACHED)
        )

        assert result == ("StageRetryExhausted", "Failed to fetch reviews for product 1: 503")

    def test_non_retryable_keeps_error_type(self):
        cause = ApplicationError(
            "Product ID must be numeric: 'abc'",
            type="UnresolvableIdentifier",
            non_retryable=True,
        )

        result = describe_stage_failure(
            "resolve", make_activity_error(cause, RetryState.NON_RETRYABLE_FAILURE)
        )

        assert result == ("UnresolvableIdentifier", "Product ID must be numeric: 'abc'")
