"""
Sentiment scoring for product reviews.

Each review gets a 0-100 score. The star rating is the ground truth and the
review text is only allowed to move the score within a bounded envelope
around it, because free-text models are noisy and occasionally return scores
that have nothing to do with what the reviewer said.

Per review, in order:

1. Near-empty text with a star rating is scored from the rating alone
   (no remote call).
2. Otherwise the scoring model is asked for ``{"score": X}`` using a blended
   star/text policy with per-rating target ranges.
3. The reply is parsed as strict JSON, then by extracting the first integer.
   If neither works the model is re-prompted with a stricter instruction,
   up to ``ScoringPolicy.max_parse_attempts`` replies.
4. The parsed score is clamped to ``baseline +/- max_deviation``.
5. Any remote failure falls back to the rating-derived baseline, or to the
   neutral score for unrated reviews.

Scoring a batch never fails as a whole. Reviews are scored one at a time so
the output order matches the input order and the scoring service never sees
more than one request from a run at once. When the scorer is given a
deadline, requests are cut off at it and every review left after it gets the
fallback score, so a slow scoring service degrades the batch instead of
timing out the stage.
"""

import re
import json
import math
import time
import asyncio
import logging
from typing import Dict, List, Optional, Tuple

from product_sentiment.errors import ScoringDegraded
from product_sentiment.llm_client.chat import ChatClient
from product_sentiment.models import Review, ScoredReview, ScoringPolicy

logger = logging.getLogger(__name__)

MIN_SCORE = 0
MAX_SCORE = 100

INTEGER_PATTERN = re.compile(r"\d+")
WHITESPACE_PATTERN = re.compile(r"\s+")

# Target score range the model is asked to stay in, per star rating
STAR_RANGES: Dict[int, Tuple[int, int]] = {
    5: (70, 100),
    4: (56, 95),
    3: (42, 75),
    2: (28, 55),
    1: (0, 35),
}

STAR_RANGE_HINTS: Dict[int, str] = {
    5: "adjust down for negative text",
    4: "adjust down for negative text",
    3: "adjust up/down based on text",
    2: "adjust up for positive text",
    1: "adjust up for positive text",
}

SCORING_SYSTEM_PROMPT = (
    "You are a sentiment analyzer for product reviews. Your job is to analyze "
    "the sentiment expressed in review text and provide a score from 0-100 that "
    "aligns with the star rating context. Return only a JSON object."
)

STRICT_FOLLOW_UP_PROMPT = (
    "Your previous reply could not be read. Respond with ONLY a JSON object of "
    'the form {"score": X} where X is a single integer from 0 to 100. '
    "No explanation, no code fences, no other keys."
)


def round_half_up(value: float, digits: int = 0) -> float:
    """Round halves away from zero for non-negative values (0.5 -> 1)."""
    factor = 10 ** digits
    return math.floor(value * factor + 0.5) / factor


def star_baseline(star_rating: int) -> int:
    """Convert a 1-5 star rating to its 0-100 baseline (1 star = 20)."""
    return bound_score(int(round_half_up(star_rating / 5 * 100)))


def review_text(review: Review) -> str:
    """Combine title and comment into the text sent for scoring."""
    return f"{review.title or ''}\n\n{review.comment or ''}".strip()


def has_minimal_text(text: str, min_length: int) -> bool:
    """True if the text, collapsed to single spaces, is shorter than min_length."""
    return len(WHITESPACE_PATTERN.sub(" ", text).strip()) < min_length


def bound_score(value: int) -> int:
    return max(MIN_SCORE, min(MAX_SCORE, value))


def parse_score(reply: str) -> Optional[int]:
    """
    Extract a 0-100 score from a model reply.

    Strict JSON ``{"score": X}`` is tried first, then the first integer in
    the text. Values outside 0-100 are bounded.

    Returns:
        The parsed score, or None if no score can be read

    Example:
        >>> parse_score('{"score": 73}')
        73
        >>> parse_score('Score: 64 out of 100')
        64
    """
    text = reply.strip()
    if text.startswith("```"):
        text = text.strip("`").strip()
        if text.lower().startswith("json"):
            text = text[4:].strip()

    try:
        parsed = json.loads(text)
    except json.JSONDecodeError:
        parsed = None

    if isinstance(parsed, dict):
        value = parsed.get("score")
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            # json accepts NaN, Infinity and overflowing exponents
            if not math.isfinite(value):
                return None
            return bound_score(int(value))
        if isinstance(value, str) and INTEGER_PATTERN.match(value.strip()):
            return bound_score(int(INTEGER_PATTERN.match(value.strip()).group(0)))

    match = INTEGER_PATTERN.search(reply)
    if match:
        return bound_score(int(match.group(0)))

    return None


def clamp_to_baseline(score: int, star_rating: Optional[int], max_deviation: int) -> int:
    """
    Keep a model score within ``max_deviation`` of the star baseline.

    Unrated reviews have no baseline and are only bounded to 0-100.
    """
    score = bound_score(score)
    if not star_rating:
        return score

    baseline = star_baseline(star_rating)
    if abs(score - baseline) <= max_deviation:
        return score

    if score < baseline - max_deviation:
        return bound_score(baseline - max_deviation)
    return bound_score(baseline + max_deviation)


def build_scoring_prompt(text: str, star_rating: Optional[int], policy: ScoringPolicy) -> str:
    """Build the blended star/text scoring instruction for one review."""
    star_pct = int(round_half_up(policy.star_weight * 100))
    text_pct = int(round_half_up(policy.text_weight * 100))

    range_lines = []
    for stars in sorted(STAR_RANGES, reverse=True):
        low, high = STAR_RANGES[stars]
        label = "star" if stars == 1 else "stars"
        range_lines.append(
            f"- {stars} {label} = {star_baseline(stars)} baseline -> "
            f"Final range: {low}-{high} ({STAR_RANGE_HINTS[stars]})"
        )

    rating_line = (
        f"Star Rating: {star_rating}/5 stars" if star_rating else "Star Rating: not provided"
    )

    return (
        'Analyze this product review and return JSON: {"score": X} where X is a '
        "specific number 0-100.\n\n"
        f"SCORING FORMULA: Use {star_pct}% weight on star rating + {text_pct}% "
        "weight on text sentiment.\n\n"
        "STAR RATING BASELINES:\n"
        + "\n".join(range_lines)
        + "\n\nReturn a SPECIFIC number (like 73, 45, 91) not a range. Heavily "
        "weight the star rating but let negative text sentiment pull high-rated "
        "reviews down within their range.\n\n"
        f"{rating_line}\n"
        f"Review Text: {text}"
    )


class SentimentScorer:
    """
    Scores reviews with a remote chat model under a ScoringPolicy.

    The scorer holds no state between reviews, so one instance can score any
    number of batches.
    """

    def __init__(
        self,
        client: ChatClient,
        policy: Optional[ScoringPolicy] = None,
        deadline: Optional[float] = None,
    ) -> None:
        """
        Args:
            client: Chat client for the sentiment-scoring model
            policy: Scoring parameters (defaults to ScoringPolicy())
            deadline: Optional ``time.monotonic()`` value after which no
                more remote calls are made
        """
        self.client = client
        self.policy = policy or ScoringPolicy()
        self.deadline = deadline

    def remaining_time(self) -> Optional[float]:
        """Seconds left before the deadline, or None without one."""
        if self.deadline is None:
            return None
        return self.deadline - time.monotonic()

    def fallback_score(self, star_rating: Optional[int]) -> int:
        """Score used when the model cannot be asked or understood."""
        if star_rating:
            return star_baseline(star_rating)
        return self.policy.neutral_score

    async def score(self, reviews: List[Review]) -> List[ScoredReview]:
        """
        Score a batch of reviews, preserving order and length.

        Args:
            reviews: Reviews to score

        Returns:
            One ScoredReview per input review, in input order
        """
        logger.info("Starting sentiment analysis for %d reviews", len(reviews))

        scored: List[ScoredReview] = []
        for index, review in enumerate(reviews, start=1):
            sentiment = await self.score_review(review)
            logger.debug("Review %d/%d (id=%s) scored %d", index, len(reviews), review.id, sentiment)
            scored.append(ScoredReview.from_review(review, sentiment))

        return scored

    async def score_review(self, review: Review) -> int:
        """Score one review. Never raises for remote or parsing failures."""
        text = review_text(review)
        rating = review.star_rating

        if rating and has_minimal_text(text, self.policy.min_text_length):
            score = star_baseline(rating)
            logger.debug("Minimal text for review %s, using star rating score %d", review.id, score)
            return score

        try:
            raw_score = await self._request_score(text, rating)
        except ScoringDegraded as e:
            fallback = self.fallback_score(rating)
            logger.warning(
                "Scoring degraded for review %s, using fallback %d: %s", review.id, fallback, e
            )
            return fallback

        score = clamp_to_baseline(raw_score, rating, self.policy.max_deviation)
        if score != raw_score:
            logger.info(
                "Score %d for review %s deviates too far from %s-star baseline, adjusted to %d",
                raw_score, review.id, rating, score,
            )
        return score

    async def _request_score(self, text: str, star_rating: Optional[int]) -> int:
        """
        Ask the model for a score, re-prompting on unreadable replies.

        Raises:
            ScoringDegraded: If the model call fails or no reply can be parsed
        """
        messages = [
            {"role": "system", "content": SCORING_SYSTEM_PROMPT},
            {"role": "user", "content": build_scoring_prompt(text, star_rating, self.policy)},
        ]

        reply = ""
        for attempt in range(max(1, self.policy.max_parse_attempts)):
            if attempt > 0:
                messages = messages + [
                    {"role": "assistant", "content": reply},
                    {"role": "user", "content": STRICT_FOLLOW_UP_PROMPT},
                ]

            remaining = self.remaining_time()
            if remaining is not None and remaining <= 0:
                raise ScoringDegraded("Scoring time budget exhausted")

            try:
                reply = await asyncio.wait_for(
                    self.client.complete(messages, temperature=self.policy.temperature),
                    timeout=remaining,
                )
            except Exception as e:
                raise ScoringDegraded(f"Scoring request failed: {e}") from e

            score = parse_score(reply)
            if score is not None:
                return score

            logger.debug("Unreadable scoring reply (attempt %d): %s", attempt + 1, reply)

        raise ScoringDegraded(f"Could not extract sentiment score from: {reply}")
