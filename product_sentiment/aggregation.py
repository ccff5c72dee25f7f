"""Summary statistics over scored reviews."""

from typing import List

from product_sentiment.models import Aggregation, ScoredReview
from product_sentiment.scoring import round_half_up


def aggregate(scored_reviews: List[ScoredReview]) -> Aggregation:
    """
    Reduce scored reviews to average sentiment, average stars and count.

    Averages are rounded to one decimal. Star ratings are averaged over the
    reviews that have one; an empty batch (or one with no ratings) reports 0.

    Example:
        >>> aggregate([])
        Aggregation(avg_sentiment=0.0, avg_stars=0.0, count=0)
    """
    count = len(scored_reviews)
    if count == 0:
        return Aggregation(avg_sentiment=0.0, avg_stars=0.0, count=0)

    avg_sentiment = sum(r.sentiment for r in scored_reviews) / count

    ratings = [r.star_rating for r in scored_reviews if r.star_rating]
    avg_stars = sum(ratings) / len(ratings) if ratings else 0.0

    return Aggregation(
        avg_sentiment=round_half_up(avg_sentiment, 1),
        avg_stars=round_half_up(avg_stars, 1),
        count=count,
    )
