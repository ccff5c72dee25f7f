"""
Data models for workflow execution and activity parameters.

Following Temporal best practices, activities and workflows use single
dataclass parameters for better versioning and backward compatibility.
This allows adding optional fields in the future without breaking existing
workflow executions.
"""

from dataclasses import dataclass, field, fields
from typing import List, Optional


# Run status values reported to callers
STATUS_RUNNING = "running"
STATUS_COMPLETE = "complete"
STATUS_ERROR = "error"
STATUS_NOT_FOUND = "not_found"

DEFAULT_MAX_REVIEWS = 100


# Domain Types
# ------------

@dataclass(frozen=True)
class Review:
    """
    A single product review, normalized from the reviews provider.

    Attributes:
        id: Provider review identifier
        product_id: Numeric product identifier (as string)
        star_rating: Rating 1-5, or None if the provider omitted it
        title: Review title (empty string if missing)
        comment: Review body (empty string if missing)
        submitted_at: ISO-8601 submission timestamp from the provider
    """
    id: str
    product_id: str
    star_rating: Optional[int]
    title: str
    comment: str
    submitted_at: str


@dataclass(frozen=True)
class ScoredReview:
    """
    A review with its 0-100 sentiment score attached.

    Attributes:
        id: Provider review identifier
        product_id: Numeric product identifier (as string)
        star_rating: Rating 1-5, or None if the provider omitted it
        title: Review title
        comment: Review body
        submitted_at: ISO-8601 submission timestamp
        sentiment: Sentiment score (0-100)
    """
    id: str
    product_id: str
    star_rating: Optional[int]
    title: str
    comment: str
    submitted_at: str
    sentiment: int

    @classmethod
    def from_review(cls, review: Review, sentiment: int) -> "ScoredReview":
        """Attach a sentiment score to a fetched review."""
        values = {f.name: getattr(review, f.name) for f in fields(review)}
        return cls(sentiment=sentiment, **values)


@dataclass(frozen=True)
class ResolvedProduct:
    """Product identifier and canonical product page URL."""
    product_id: str
    canonical_url: str


@dataclass(frozen=True)
class ScoringPolicy:
    """
    Tunable parameters of the sentiment scoring policy.

    Attributes:
        min_text_length: Reviews with less collapsed text than this are scored
            from the star rating alone
        star_weight: Weight of the star-rating baseline in the blended prompt
        text_weight: Weight of text sentiment in the blended prompt
        max_deviation: Largest allowed distance from the star baseline
        neutral_score: Fallback score for unrated reviews
        max_parse_attempts: Replies requested per review before giving up on
            parsing (the first with the normal prompt, the rest stricter)
        temperature: Sampling temperature for the scoring model
    """
    min_text_length: int = 10
    star_weight: float = 0.7
    text_weight: float = 0.3
    max_deviation: int = 30
    neutral_score: int = 50
    max_parse_attempts: int = 2
    temperature: float = 0.0


@dataclass(frozen=True)
class Aggregation:
    """Summary statistics over a batch of scored reviews."""
    avg_sentiment: float
    avg_stars: float
    count: int


@dataclass(frozen=True)
class Report:
    """
    Final sentiment report for one run.

    Attributes:
        product_id: Resolved product identifier
        canonical_url: Canonical product page URL
        count: Number of reviews analyzed
        avg_sentiment: Mean sentiment (0-100, one decimal)
        avg_stars: Mean star rating (1-5, one decimal; 0 when empty)
        reviews: Scored reviews, newest first
    """
    product_id: str
    canonical_url: str
    count: int
    avg_sentiment: float
    avg_stars: float
    reviews: List[ScoredReview]


# Activity Parameters
# -------------------

@dataclass(frozen=True)
class ResolveProductInput:
    """
    Input parameters for the resolve_product activity.

    Exactly one of input_url or product_id is expected.
    """
    input_url: Optional[str] = None
    product_id: Optional[str] = None


@dataclass(frozen=True)
class FetchReviewsInput:
    """
    Input parameters for the fetch_reviews activity.

    Attributes:
        product_id: Numeric product identifier
        limit: Maximum number of reviews to return
    """
    product_id: str
    limit: int


@dataclass(frozen=True)
class ScoreReviewsInput:
    """Input parameters for the score_reviews activity."""
    reviews: List[Review]
    policy: ScoringPolicy = field(default_factory=ScoringPolicy)


@dataclass(frozen=True)
class AggregateReviewsInput:
    """Input parameters for the aggregate_reviews activity."""
    reviews: List[ScoredReview]


# Workflow Parameters
# -------------------

@dataclass(frozen=True)
class SentimentReportInput:
    """
    Input parameters for the ProductSentiment workflow.

    Attributes:
        run_id: Idempotency key for the run (also the workflow ID)
        input_url: Product page URL to resolve (if product_id not given)
        product_id: Numeric product identifier (skips URL resolution)
        max_reviews: Maximum number of reviews to analyze
        scoring_policy: Sentiment scoring parameters
    """
    run_id: str
    input_url: Optional[str] = None
    product_id: Optional[str] = None
    max_reviews: int = DEFAULT_MAX_REVIEWS
    scoring_policy: ScoringPolicy = field(default_factory=ScoringPolicy)


# Run Status
# ----------

@dataclass(frozen=True)
class RunStatus:
    """
    Externally visible state of a run.

    Attributes:
        status: One of running, complete, error, not_found
        message: Human-readable detail (error text for failed runs)
        data: Final report (only when complete)
    """
    status: str
    message: Optional[str] = None
    data: Optional[Report] = None
