"""
Temporal activities for the product sentiment pipeline.

Each pipeline stage is its own activity so it gets its own timeout and retry
accounting: a flaky scoring service never causes reviews to be re-fetched,
and a slow reviews API never burns scoring quota.

Activities build their clients from ``Settings`` on every execution rather
than holding them at module level, so a worker picks up rotated keys on the
next attempt and tests can patch the client classes.

Domain errors are converted to ApplicationError with ``type`` set to the
error class name. Whether a stage is retried is decided here:

- UnresolvableIdentifier: retried only if the identifier oracle was
  unreachable; a definitive "no identifier" answer is final.
- FetchFailed: retried (first-page failures are usually transient).
"""

import time
from typing import List, Optional

from temporalio import activity
from temporalio.exceptions import ApplicationError

from product_sentiment import resolver
from product_sentiment.aggregation import aggregate
from product_sentiment.config import Settings
from product_sentiment.errors import FetchFailed, UnresolvableIdentifier
from product_sentiment.fetcher import fetch_reviews as fetch_review_pages
from product_sentiment.llm_client.chat import ChatClient
from product_sentiment.reviews_client.api import ReviewsAPI
from product_sentiment.scoring import SentimentScorer
from product_sentiment.models import (
    AggregateReviewsInput,
    Aggregation,
    FetchReviewsInput,
    ResolvedProduct,
    ResolveProductInput,
    Review,
    ScoredReview,
    ScoreReviewsInput,
)

# Share of the scoring attempt's start-to-close timeout spent on remote calls;
# the rest is headroom for fallbacks and returning the result
SCORING_BUDGET_FRACTION = 0.9


def scoring_deadline(info: activity.Info) -> Optional[float]:
    """Monotonic deadline for scoring requests in the current attempt."""
    if not info.start_to_close_timeout:
        return None
    return time.monotonic() + info.start_to_close_timeout.total_seconds() * SCORING_BUDGET_FRACTION


@activity.defn
async def resolve_product(input: ResolveProductInput) -> ResolvedProduct:
    """
    Resolve the run's input to a product identifier and canonical URL.

    A directly supplied product ID is validated without any remote call.
    Otherwise the URL goes through the regex match and, if needed, the
    identifier oracle.

    Args:
        input: Activity input parameters

    Returns:
        Resolved product identifier and canonical URL

    Raises:
        ApplicationError: type UnresolvableIdentifier
    """
    settings = Settings.from_env()

    try:
        if input.product_id:
            return resolver.resolve_product_id(input.product_id, settings.product_url_template)

        if not input.input_url:
            raise UnresolvableIdentifier("Either an input URL or a product ID is required")

        oracle = ChatClient(
            api_base=settings.resolver_api_base,
            api_key=settings.resolver_api_key,
            model=settings.resolver_model,
        )
        resolved = await resolver.resolve(input.input_url, oracle, settings.product_url_template)
    except UnresolvableIdentifier as e:
        raise ApplicationError(
            str(e),
            type=type(e).__name__,
            non_retryable=not e.retryable,
        ) from e

    activity.logger.info(f"Resolved product {resolved.product_id} ({resolved.canonical_url})")
    return resolved


@activity.defn
async def fetch_reviews(input: FetchReviewsInput) -> List[Review]:
    """
    Fetch up to ``input.limit`` reviews for a product, newest first.

    Later-page failures are absorbed by the fetcher (partial result); only a
    first-page failure fails the activity.

    Args:
        input: Activity input parameters

    Returns:
        Normalized reviews, newest first

    Raises:
        ApplicationError: Retryable, type FetchFailed
    """
    settings = Settings.from_env()
    reviews_api = ReviewsAPI(
        api_key=settings.reviews_api_key,
        api_base=settings.reviews_api_base,
    )

    try:
        reviews = await fetch_review_pages(reviews_api, input.product_id, input.limit)
    except FetchFailed as e:
        # Retryable: network issues, throttling, provider hiccups
        raise ApplicationError(str(e), type=type(e).__name__, non_retryable=False) from e

    activity.logger.info(f"Fetched {len(reviews)} reviews for product {input.product_id}")
    return reviews


@activity.defn
async def score_reviews(input: ScoreReviewsInput) -> List[ScoredReview]:
    """
    Score each review's sentiment (0-100) with the scoring model.

    Never fails because of the scoring service: per-review failures are
    replaced with the rating-derived fallback score inside the scorer. Remote
    calls stop short of the attempt's start-to-close timeout, and reviews
    left at that point get the fallback score too.

    Args:
        input: Activity input parameters

    Returns:
        Scored reviews in input order
    """
    settings = Settings.from_env()
    client = ChatClient(
        api_base=settings.scoring_api_base,
        api_key=settings.scoring_api_key,
        model=settings.scoring_model,
    )
    scorer = SentimentScorer(client, input.policy, deadline=scoring_deadline(activity.info()))

    scored = await scorer.score(input.reviews)

    activity.logger.info(f"Scored {len(scored)} reviews")
    return scored


@activity.defn
async def aggregate_reviews(input: AggregateReviewsInput) -> Aggregation:
    """
    Compute average sentiment, average stars and count.

    Args:
        input: Activity input parameters

    Returns:
        Aggregated statistics
    """
    result = aggregate(input.reviews)
    activity.logger.info(
        f"Aggregated {result.count} reviews: sentiment={result.avg_sentiment}, stars={result.avg_stars}"
    )
    return result
