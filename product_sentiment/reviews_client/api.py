"""
Reviews API client for fetching product reviews page by page.

The provider exposes ``/reviews(sku=<id>)`` with page-number pagination and
server-side sorting. Requests are authenticated with an ``apiKey`` query
parameter.
"""

from typing import Any, Dict

import aiohttp

# API timeout for review fetching (seconds)
REQUEST_TIMEOUT_SECONDS = 10

# Fields requested for each review record
REVIEW_FIELDS = "id,sku,rating,submissionTime,title,comment"


class ReviewsAPI:
    """
    Client for the product reviews endpoint.

    Returns raw pages; normalization into Review objects happens in the
    fetcher so the client stays a thin transport.
    """

    def __init__(self, api_key: str, api_base: str) -> None:
        """
        Args:
            api_key: Reviews provider API key
            api_base: Base URL for the API (e.g., https://api.bestbuy.com/v1)
        """
        self.api_key = api_key
        self.api_base = api_base.rstrip("/")

    async def list_reviews(
        self,
        product_id: str,
        page: int,
        page_size: int,
    ) -> Dict[str, Any]:
        """
        Fetch one page of reviews for a product, newest first.

        Args:
            product_id: Numeric product identifier
            page: Page number (1-indexed)
            page_size: Number of reviews per page

        Returns:
            Dictionary containing at least:
                - reviews: List of raw review records

        Raises:
            aiohttp.ClientError: On network or HTTP errors
            asyncio.TimeoutError: If request exceeds timeout

        Example:
            >>> api = ReviewsAPI(api_key, "https://api.bestbuy.com/v1")
            >>> page1 = await api.list_reviews("6418599", page=1, page_size=20)
        """
        url = f"{self.api_base}/reviews(sku={product_id})"
        params = {
            "apiKey": self.api_key,
            "format": "json",
            "show": REVIEW_FIELDS,
            "sort": "submissionTime.desc",
            "pageSize": str(page_size),
            "page": str(page),
        }
        timeout = aiohttp.ClientTimeout(total=REQUEST_TIMEOUT_SECONDS)

        async with aiohttp.ClientSession(timeout=timeout) as session:
            async with session.get(url, params=params) as resp:
                resp.raise_for_status()
                data = await resp.json()

        return data
