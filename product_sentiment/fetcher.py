"""
Paginated review fetching under a total-item budget.

Pages are requested one at a time, newest first, so the run never has more
than one request outstanding against the rate-limited provider. Only a
failure on the first page is fatal; a later page failing ends pagination
with whatever was already collected.
"""

import logging
from typing import Any, Dict, List, Optional, Protocol

from product_sentiment.errors import FetchFailed
from product_sentiment.models import Review

logger = logging.getLogger(__name__)

# Reviews requested per page
DEFAULT_PAGE_SIZE = 20

# Ratings outside this range are treated as missing
MIN_RATING = 1
MAX_RATING = 5


class ReviewsProvider(Protocol):
    async def list_reviews(
        self, product_id: str, page: int, page_size: int
    ) -> Dict[str, Any]:
        ...


def _coerce_rating(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        rating = int(float(value))
    except (TypeError, ValueError):
        return None
    return rating if MIN_RATING <= rating <= MAX_RATING else None


def normalize_review(raw: Dict[str, Any], product_id: str) -> Review:
    """
    Convert a raw provider record into a Review.

    Identifiers are coerced to strings and missing title/comment default to
    the empty string. The product ID falls back to the requested one when the
    record does not carry its own ``sku``.
    """
    sku = raw.get("sku")
    return Review(
        id=str(raw.get("id", "")),
        product_id=str(sku) if sku is not None else product_id,
        star_rating=_coerce_rating(raw.get("rating")),
        title=raw.get("title") or "",
        comment=raw.get("comment") or "",
        submitted_at=str(raw.get("submissionTime") or ""),
    )


async def fetch_reviews(
    api: ReviewsProvider,
    product_id: str,
    limit: int,
    page_size: int = DEFAULT_PAGE_SIZE,
) -> List[Review]:
    """
    Fetch up to ``limit`` reviews for a product, newest first.

    Args:
        api: Reviews provider client
        product_id: Numeric product identifier
        limit: Maximum number of reviews to return
        page_size: Reviews requested per page

    Returns:
        Normalized reviews, truncated to exactly ``limit`` items at most

    Raises:
        FetchFailed: If the first page cannot be retrieved
    """
    reviews: List[Review] = []
    page = 1

    while len(reviews) < limit:
        try:
            response = await api.list_reviews(product_id, page, page_size)
            page_reviews = response.get("reviews") or []
            normalized = [normalize_review(raw, product_id) for raw in page_reviews]
        except Exception as e:
            if page == 1:
                raise FetchFailed(
                    f"Failed to fetch reviews for product {product_id}: {e}"
                ) from e
            logger.warning(
                "Error fetching reviews page %d for product %s, keeping %d reviews: %s",
                page, product_id, len(reviews), e,
            )
            break

        if not page_reviews:
            break

        reviews.extend(normalized)
        logger.info("Fetched page %d for product %s (%d reviews)", page, product_id, len(page_reviews))

        # Short page means this was the last one
        if len(page_reviews) < page_size:
            break

        page += 1

    return reviews[:limit]
