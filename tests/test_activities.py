"""
Unit tests for Temporal activities.

Tests cover:
- Product resolution (direct ID, canonical URL, oracle) with mocked clients
- Review fetching with mocked reviews API responses
- Sentiment scoring with a mocked scoring model, including the time budget
- Aggregation
- Conversion of domain errors to ApplicationError
"""

import json
import time
import asyncio
import dataclasses
import pytest
from datetime import timedelta
from unittest.mock import AsyncMock, patch

import aiohttp
from temporalio.exceptions import ApplicationError
from temporalio.testing import ActivityEnvironment

from product_sentiment.activities import (
    aggregate_reviews,
    fetch_reviews,
    resolve_product,
    score_reviews,
)
from product_sentiment.models import (
    AggregateReviewsInput,
    Aggregation,
    FetchReviewsInput,
    ResolvedProduct,
    ResolveProductInput,
    Review,
    ScoredReview,
    ScoreReviewsInput,
    ScoringPolicy,
)


@pytest.fixture
def activity_env():
    """Activity environment providing activity context (logger, info)."""
    return ActivityEnvironment()


class TestResolveProductActivity:
    """Test the resolve_product activity."""

    @pytest.fixture
    def mock_chat(self):
        """Mock ChatClient class."""
        with patch("product_sentiment.activities.ChatClient") as mock:
            yield mock

    async def test_direct_product_id(self, activity_env, mock_chat, monkeypatch):
        """A numeric product ID is accepted without any oracle call."""
        monkeypatch.setenv("PRODUCT_URL_TEMPLATE", "https://shop.test/p/{product_id}.p")

        result = await activity_env.run(resolve_product, ResolveProductInput(product_id="6418599"))

        assert result == ResolvedProduct(product_id="6418599", canonical_url="https://shop.test/p/6418599.p")
        mock_chat.assert_not_called()

    async def test_non_numeric_product_id(self, activity_env, mock_chat):
        """A non-numeric product ID fails without retry."""
        with pytest.raises(ApplicationError) as exc_info:
            await activity_env.run(resolve_product, ResolveProductInput(product_id="abc"))

        assert exc_info.value.type == "UnresolvableIdentifier"
        assert exc_info.value.non_retryable is True

    async def test_canonical_url(self, activity_env, mock_chat):
        """A canonical URL resolves by regex."""
        result = await activity_env.run(
            resolve_product,
            ResolveProductInput(input_url="https://example.com/site/x/6418599.p?foo=1"),
        )

        assert result.product_id == "6418599"
        assert result.canonical_url == "https://example.com/site/x/6418599.p"
        mock_chat.return_value.complete.assert_not_called()

    async def test_oracle_resolution(self, activity_env, mock_chat):
        """Non-canonical URLs are resolved by the identifier oracle."""
        mock_chat.return_value.complete = AsyncMock(return_value=json.dumps({
            "productId": "6585114",
            "canonicalUrl": "https://example.com/site/watch/6585114.p",
        }))

        result = await activity_env.run(
            resolve_product,
            ResolveProductInput(input_url="https://example.com/product/galaxy-watch7/J3ZYG2KQ89"),
        )

        assert result.product_id == "6585114"
        assert result.canonical_url == "https://example.com/site/watch/6585114.p"

    async def test_oracle_error_answer_is_not_retryable(self, activity_env, mock_chat):
        """An explicit error answer from the oracle is final."""
        mock_chat.return_value.complete = AsyncMock(return_value='{"error": "Could not extract SKU"}')

        with pytest.raises(ApplicationError) as exc_info:
            await activity_env.run(
                resolve_product,
                ResolveProductInput(input_url="https://example.com/deals"),
            )

        assert exc_info.value.type == "UnresolvableIdentifier"
        assert exc_info.value.non_retryable is True
        assert "Could not extract SKU" in exc_info.value.message

    async def test_oracle_unreachable_is_retryable(self, activity_env, mock_chat):
        """Transport failures calling the oracle are retried."""
        mock_chat.return_value.complete = AsyncMock(side_effect=aiohttp.ClientError("timeout"))

        with pytest.raises(ApplicationError) as exc_info:
            await activity_env.run(
                resolve_product,
                ResolveProductInput(input_url="https://example.com/deals"),
            )

        assert exc_info.value.type == "UnresolvableIdentifier"
        assert exc_info.value.non_retryable is False

    async def test_missing_input(self, activity_env, mock_chat):
        """Neither URL nor product ID is an unresolvable input."""
        with pytest.raises(ApplicationError) as exc_info:
            await activity_env.run(resolve_product, ResolveProductInput())

        assert exc_info.value.type == "UnresolvableIdentifier"


class TestFetchReviewsActivity:
    """Test the fetch_reviews activity with mocked API calls."""

    @pytest.fixture
    def mock_reviews_api(self):
        """Mock ReviewsAPI class."""
        with patch("product_sentiment.activities.ReviewsAPI") as mock:
            yield mock

    @pytest.fixture
    def sample_review_page(self):
        """Sample reviews API response (a short, final page)."""
        return {
            "reviews": [
                {"id": 101, "sku": 6418599, "rating": 5, "title": "Great",
                 "comment": "Great product!", "submissionTime": "2024-05-02T10:00:00"},
                {"id": 100, "sku": 6418599, "rating": 4, "title": None,
                 "submissionTime": "2024-05-01T10:00:00"},
            ],
        }

    async def test_fetch_reviews_success(self, activity_env, mock_reviews_api, sample_review_page):
        """Test successful review fetching and normalization."""
        mock_instance = mock_reviews_api.return_value
        mock_instance.list_reviews = AsyncMock(return_value=sample_review_page)

        result = await activity_env.run(fetch_reviews, FetchReviewsInput(product_id="6418599", limit=100))

        assert len(result) == 2
        assert result[0] == Review(
            id="101",
            product_id="6418599",
            star_rating=5,
            title="Great",
            comment="Great product!",
            submitted_at="2024-05-02T10:00:00",
        )
        assert result[1].title == ""
        assert result[1].comment == ""
        mock_instance.list_reviews.assert_awaited_once_with("6418599", 1, 20)

    async def test_fetch_reviews_first_page_error(self, activity_env, mock_reviews_api):
        """Test a first-page failure becomes a retryable FetchFailed."""
        mock_instance = mock_reviews_api.return_value
        mock_instance.list_reviews = AsyncMock(side_effect=aiohttp.ClientError("503"))

        with pytest.raises(ApplicationError) as exc_info:
            await activity_env.run(fetch_reviews, FetchReviewsInput(product_id="6418599", limit=100))

        assert exc_info.value.type == "FetchFailed"
        assert exc_info.value.non_retryable is False
        assert "Failed to fetch reviews for product 6418599" in exc_info.value.message


class TestScoreReviewsActivity:
    """Test the score_reviews activity with a mocked scoring model."""

    @pytest.fixture
    def mock_chat(self):
        """Mock ChatClient class."""
        with patch("product_sentiment.activities.ChatClient") as mock:
            yield mock

    async def test_score_reviews(self, activity_env, mock_chat):
        """Test scores are returned in input order with short texts short-circuited."""
        mock_chat.return_value.complete = AsyncMock(return_value='{"score": 88}')
        reviews = [
            Review(id="1", product_id="1", star_rating=5, title="Fantastic",
                   comment="Best purchase this year", submitted_at=""),
            Review(id="2", product_id="1", star_rating=2, title="Meh", comment="", submitted_at=""),
        ]

        result = await activity_env.run(score_reviews, ScoreReviewsInput(reviews=reviews))

        assert [r.id for r in result] == ["1", "2"]
        assert [r.sentiment for r in result] == [88, 40]
        assert mock_chat.return_value.complete.await_count == 1

    async def test_score_reviews_uses_policy(self, activity_env, mock_chat):
        """Test the policy passed in the input is applied."""
        mock_chat.return_value.complete = AsyncMock(return_value='{"score": 10}')
        reviews = [
            Review(id="1", product_id="1", star_rating=5, title="Fantastic",
                   comment="Best purchase this year", submitted_at=""),
        ]

        result = await activity_env.run(
            score_reviews,
            ScoreReviewsInput(reviews=reviews, policy=ScoringPolicy(max_deviation=10)),
        )

        assert result[0].sentiment == 90

    async def test_score_reviews_stops_remote_calls_before_timeout(self, activity_env, mock_chat):
        """Test a hung scoring service yields fallback scores within the attempt's timeout."""
        async def hang(*args, **kwargs):
            await asyncio.sleep(30)
            return '{"score": 10}'

        mock_chat.return_value.complete = AsyncMock(side_effect=hang)
        activity_env.info = dataclasses.replace(
            activity_env.info, start_to_close_timeout=timedelta(milliseconds=200)
        )
        reviews = [
            Review(id=str(i), product_id="1", star_rating=4, title="Decent",
                   comment="Works fine for what I need it for", submitted_at="")
            for i in range(10)
        ]

        started = time.monotonic()
        result = await activity_env.run(score_reviews, ScoreReviewsInput(reviews=reviews))

        assert time.monotonic() - started < 1
        assert [r.sentiment for r in result] == [80] * 10
        assert mock_chat.return_value.complete.await_count == 1

    async def test_score_reviews_empty(self, activity_env, mock_chat):
        """Test an empty batch scores to an empty list."""
        result = await activity_env.run(score_reviews, ScoreReviewsInput(reviews=[]))

        assert result == []


class TestAggregateReviewsActivity:
    """Test the aggregate_reviews activity."""

    async def test_aggregate_reviews(self, activity_env):
        reviews = [
            ScoredReview(id="1", product_id="1", star_rating=5, title="", comment="",
                         submitted_at="", sentiment=80),
            ScoredReview(id="2", product_id="1", star_rating=3, title="", comment="",
                         submitted_at="", sentiment=60),
        ]

        result = await activity_env.run(aggregate_reviews, AggregateReviewsInput(reviews=reviews))

        assert result == Aggregation(avg_sentiment=70.0, avg_stars=4.0, count=2)
