"""
Temporal workflow for product review sentiment reports.

Resolves a product from its URL, fetches its most recent reviews, scores each
review's sentiment with an LLM anchored to the star rating, and aggregates
the scores into a report, with per-stage timeouts and retries provided by
Temporal's durable execution.
"""

__version__ = "0.1.0"
