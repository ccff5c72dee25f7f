"""
Product identifier resolution.

Canonical product URLs carry the numeric identifier in the path
(``.../<digits>.p``), so most inputs resolve locally with a regex. Anything
else (short links, tracking redirects, marketing URLs) is handed to an LLM
with browsing access, whose answer is validated before use. Resolution fails
loudly rather than guessing an identifier.
"""

import re
import json
import logging
from typing import Optional

from product_sentiment.errors import UnresolvableIdentifier
from product_sentiment.llm_client.chat import ChatClient
from product_sentiment.models import ResolvedProduct

logger = logging.getLogger(__name__)

CANONICAL_PATH_PATTERN = re.compile(r"/(\d+)\.p(?:\?|$)")
PRODUCT_ID_PATTERN = re.compile(r"^\d+$")

RESOLVER_SYSTEM_PROMPT = (
    "You are a web scraper specialist. Extract product identifiers (SKUs) from "
    "retailer product URLs by browsing the page. Return only JSON with the "
    "product identifier and canonical URL."
)

RESOLVER_USER_PROMPT = """Please browse this product URL and extract the product SKU: {url}

Look for:
1. The SKU in the URL path (like /site/.../123456.p)
2. The skuId in JSON data on the page
3. Any redirect that reveals the canonical URL

Return only JSON in this exact format:
{{"productId": "123456", "canonicalUrl": "https://www.bestbuy.com/site/.../123456.p"}}

If you cannot find a SKU, return:
{{"error": "Could not extract SKU"}}"""

# Completion length for the resolver reply (a short JSON object)
RESOLVER_MAX_TOKENS = 200


def strip_code_fences(text: str) -> str:
    """Remove a surrounding Markdown code fence from a model reply."""
    text = text.strip()
    if text.startswith("```"):
        text = text.split("\n", 1)[1] if "\n" in text else ""
        if text.rstrip().endswith("```"):
            text = text.rstrip()[:-3]
    return text.strip()


def match_canonical_url(input_url: str) -> Optional[ResolvedProduct]:
    """
    Resolve a canonical product URL without any remote call.

    Returns:
        ResolvedProduct, or None if the URL is not in canonical form

    Example:
        >>> match_canonical_url("https://example.com/site/x/6418599.p?foo=1")
        ResolvedProduct(product_id='6418599', canonical_url='https://example.com/site/x/6418599.p')
    """
    match = CANONICAL_PATH_PATTERN.search(input_url)
    if not match:
        return None
    return ResolvedProduct(
        product_id=match.group(1),
        canonical_url=input_url.split("?", 1)[0],
    )


def resolve_product_id(product_id: str, url_template: str) -> ResolvedProduct:
    """
    Validate a directly supplied product identifier.

    Raises:
        UnresolvableIdentifier: If the identifier is not numeric
    """
    product_id = str(product_id).strip()
    if not PRODUCT_ID_PATTERN.match(product_id):
        raise UnresolvableIdentifier(f"Product ID must be numeric: {product_id!r}")
    return ResolvedProduct(
        product_id=product_id,
        canonical_url=url_template.format(product_id=product_id),
    )


def parse_oracle_reply(reply: str, url_template: str) -> ResolvedProduct:
    """
    Validate the identifier oracle's JSON answer.

    Raises:
        UnresolvableIdentifier: On invalid JSON, an error answer, or a
            non-numeric identifier (never retryable)
    """
    try:
        parsed = json.loads(strip_code_fences(reply))
    except json.JSONDecodeError as e:
        raise UnresolvableIdentifier(f"Failed to parse resolver response: {reply}") from e

    if not isinstance(parsed, dict):
        raise UnresolvableIdentifier(f"Failed to parse resolver response: {reply}")

    if parsed.get("error"):
        raise UnresolvableIdentifier(str(parsed["error"]))

    product_id = parsed.get("productId")
    if product_id is None or not PRODUCT_ID_PATTERN.match(str(product_id)):
        raise UnresolvableIdentifier(f"Invalid product ID format in resolver response: {reply}")

    product_id = str(product_id)
    canonical_url = parsed.get("canonicalUrl") or url_template.format(product_id=product_id)
    return ResolvedProduct(product_id=product_id, canonical_url=canonical_url)


async def resolve(
    input_url: str,
    oracle: ChatClient,
    url_template: str,
) -> ResolvedProduct:
    """
    Resolve any product URL to its identifier and canonical URL.

    Args:
        input_url: Arbitrary product URL
        oracle: Chat client for the identifier-resolution model
        url_template: Canonical URL template used when the oracle omits one

    Returns:
        Resolved product identifier and canonical URL

    Raises:
        UnresolvableIdentifier: If no identifier can be determined. The
            ``retryable`` flag is set when the oracle could not be reached.
    """
    resolved = match_canonical_url(input_url)
    if resolved is not None:
        logger.info("Found product ID %s in canonical URL", resolved.product_id)
        return resolved

    logger.info("Asking identifier oracle to resolve %s", input_url)
    messages = [
        {"role": "system", "content": RESOLVER_SYSTEM_PROMPT},
        {"role": "user", "content": RESOLVER_USER_PROMPT.format(url=input_url)},
    ]

    try:
        reply = await oracle.complete(messages, temperature=0.0, max_tokens=RESOLVER_MAX_TOKENS)
    except Exception as e:
        raise UnresolvableIdentifier(
            f"Failed to extract product ID from URL: {input_url}. Error: {e}",
            retryable=True,
        ) from e

    logger.debug("Identifier oracle reply: %s", reply)

    try:
        resolved = parse_oracle_reply(reply, url_template)
    except UnresolvableIdentifier as e:
        raise UnresolvableIdentifier(
            f"Failed to extract product ID from URL: {input_url}. Error: {e}"
        ) from e

    logger.info("Identifier oracle resolved product ID %s", resolved.product_id)
    return resolved
