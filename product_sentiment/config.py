"""
Process configuration loaded from environment variables.

Entry points call ``load_dotenv()`` first, so values may also come from a
``.env`` file in the working directory. API keys are optional at load time:
a missing key only fails the remote call that needs it, and that failure is
handled by the calling stage's error policy.
"""

import os
import logging
from dataclasses import dataclass

# Temporal server connection (default local development setup)
DEFAULT_TEMPORAL_ADDRESS = "localhost:7233"

# Task queue name shared between worker and workflow execution
DEFAULT_TASK_QUEUE = "product-sentiment-analysis"

DEFAULT_REVIEWS_API_BASE = "https://api.bestbuy.com/v1"
DEFAULT_RESOLVER_API_BASE = "https://api.openai.com"
DEFAULT_RESOLVER_MODEL = "gpt-4o"
DEFAULT_SCORING_API_BASE = "https://api.together.xyz"
DEFAULT_SCORING_MODEL = "OpenAI/gpt-oss-20B"
DEFAULT_PRODUCT_URL_TEMPLATE = "https://www.bestbuy.com/site/product/{product_id}.p"

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


@dataclass(frozen=True)
class Settings:
    """
    Runtime settings for the worker, activities and CLI clients.

    Attributes:
        temporal_address: Temporal frontend host:port
        task_queue: Task queue polled by the worker
        reviews_api_base: Base URL of the reviews provider
        reviews_api_key: Reviews provider API key
        resolver_api_base: Base URL of the identifier-resolution LLM
        resolver_api_key: API key for the identifier-resolution LLM
        resolver_model: Model name for identifier resolution
        scoring_api_base: Base URL of the sentiment-scoring LLM
        scoring_api_key: API key for the sentiment-scoring LLM
        scoring_model: Model name for sentiment scoring
        product_url_template: Canonical URL template with a {product_id} field
        log_level: Logging level name
    """
    temporal_address: str = DEFAULT_TEMPORAL_ADDRESS
    task_queue: str = DEFAULT_TASK_QUEUE
    reviews_api_base: str = DEFAULT_REVIEWS_API_BASE
    reviews_api_key: str = ""
    resolver_api_base: str = DEFAULT_RESOLVER_API_BASE
    resolver_api_key: str = ""
    resolver_model: str = DEFAULT_RESOLVER_MODEL
    scoring_api_base: str = DEFAULT_SCORING_API_BASE
    scoring_api_key: str = ""
    scoring_model: str = DEFAULT_SCORING_MODEL
    product_url_template: str = DEFAULT_PRODUCT_URL_TEMPLATE
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        """Build settings from the current process environment."""
        env = os.environ
        return cls(
            temporal_address=env.get("TEMPORAL_ADDRESS", DEFAULT_TEMPORAL_ADDRESS),
            task_queue=env.get("TASK_QUEUE", DEFAULT_TASK_QUEUE),
            reviews_api_base=env.get("REVIEWS_API_BASE", DEFAULT_REVIEWS_API_BASE),
            reviews_api_key=env.get("REVIEWS_API_KEY", ""),
            resolver_api_base=env.get("RESOLVER_API_BASE", DEFAULT_RESOLVER_API_BASE),
            resolver_api_key=env.get("RESOLVER_API_KEY") or env.get("OPENAI_API_KEY", ""),
            resolver_model=env.get("RESOLVER_MODEL", DEFAULT_RESOLVER_MODEL),
            scoring_api_base=env.get("SCORING_API_BASE", DEFAULT_SCORING_API_BASE),
            scoring_api_key=env.get("SCORING_API_KEY") or env.get("TOGETHER_API_KEY", ""),
            scoring_model=env.get("SCORING_MODEL", DEFAULT_SCORING_MODEL),
            product_url_template=env.get("PRODUCT_URL_TEMPLATE", DEFAULT_PRODUCT_URL_TEMPLATE),
            log_level=env.get("LOG_LEVEL", "INFO"),
        )


def configure_logging(level: str) -> None:
    """Configure root logging for an entry point process."""
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT)
