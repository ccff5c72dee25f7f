"""
Chat-completions client for LLM-backed oracles.

Speaks the OpenAI-compatible ``/v1/chat/completions`` protocol, which both
the identifier-resolution model (OpenAI) and the sentiment-scoring model
(Together AI) accept. Only the first choice's message content is used.
"""

from typing import Any, Dict, List, Optional

import aiohttp

# Timeout for a single completion request (seconds)
REQUEST_TIMEOUT_SECONDS = 60


class ChatClient:
    """
    Client for an OpenAI-compatible chat-completions endpoint.

    One instance is bound to a single base URL, key and model.
    """

    def __init__(self, api_base: str, api_key: str, model: str) -> None:
        """
        Args:
            api_base: Service root (e.g., https://api.together.xyz)
            api_key: Bearer token for the service
            model: Model name sent with every request
        """
        self.api_base = api_base.rstrip("/")
        self.api_key = api_key
        self.model = model

    async def complete(
        self,
        messages: List[Dict[str, str]],
        temperature: float = 0.0,
        max_tokens: Optional[int] = None,
    ) -> str:
        """
        Request a completion and return the reply text.

        Args:
            messages: Chat messages ({"role": ..., "content": ...})
            temperature: Sampling temperature
            max_tokens: Optional completion length limit

        Returns:
            Trimmed content of the first choice

        Raises:
            ValueError: If no API key is configured or the reply has no content
            aiohttp.ClientError: On network or HTTP errors
            asyncio.TimeoutError: If the request exceeds the timeout
        """
        if not self.api_key:
            raise ValueError(f"API key not configured for {self.api_base}")

        body: Dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            "temperature": temperature,
        }
        if max_tokens is not None:
            body["max_tokens"] = max_tokens

        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        timeout = aiohttp.ClientTimeout(total=REQUEST_TIMEOUT_SECONDS)

        async with aiohttp.ClientSession(timeout=timeout) as session:
            async with session.post(
                f"{self.api_base}/v1/chat/completions",
                json=body,
                headers=headers,
            ) as resp:
                resp.raise_for_status()
                data = await resp.json()

        choices = data.get("choices") or []
        content = choices[0].get("message", {}).get("content") if choices else None
        if not content:
            raise ValueError("No content in chat completion response")

        return content.strip()
