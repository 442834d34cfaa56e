"""
Gemini provider for the remote generative-language REST API.

Fallback provider: available whenever an API key is configured and the
models endpoint answers. It serves all six operations.
"""

from typing import Any, Dict, List, Optional

import httpx

from src.core.config import GeminiConfig, RetryConfig
from src.core.logging import get_logger
from src.memory.models import Capabilities
from src.services.ai_provider import LLMProvider

logger = get_logger(__name__)


class GeminiAPIError(Exception):
    """The API answered without usable content."""


class GeminiProvider(LLMProvider):
    """Remote provider backed by the Gemini REST API."""

    name = "gemini"

    def __init__(
        self,
        config: Optional[GeminiConfig] = None,
        retry_config: Optional[RetryConfig] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        """Initialize Gemini provider.

        Args:
            config: API key, models and endpoint
            retry_config: Backoff policy for backend calls
            http_client: Shared HTTP client; one is opened per request when omitted
        """
        super().__init__(retry_config)
        self.config = config or GeminiConfig()
        self._http_client = http_client

    def is_configured(self) -> bool:
        return bool(self.config.api_key)

    async def _request(self, method: str, path: str, json: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        url = f"{self.config.base_url}/{path}"
        # The key travels in a header, never in the URL
        headers = {"x-goog-api-key": self.config.api_key}

        if self._http_client is not None:
            response = await self._http_client.request(method, url, headers=headers, json=json)
        else:
            async with httpx.AsyncClient(timeout=self.config.timeout) as client:
                response = await client.request(method, url, headers=headers, json=json)

        response.raise_for_status()
        return response.json()

    async def initialize(self) -> Capabilities:
        """Test the API key; success grants every capability."""
        if not self.is_configured():
            logger.warning("gemini_api_key_missing")
            self.capabilities = Capabilities()
            return self.get_capabilities()

        try:
            await self._request("GET", "models")
        except httpx.HTTPError as e:
            logger.error("gemini_initialization_failed", error=str(e))
            self.capabilities = Capabilities()
            return self.get_capabilities()

        self.capabilities = Capabilities.all_enabled()
        logger.info("gemini_initialized", model=self.config.model)
        return self.get_capabilities()

    async def _generate(self, prompt: str) -> str:
        data = await self._request(
            "POST",
            f"models/{self.config.model}:generateContent",
            json={
                "contents": [{"parts": [{"text": prompt}]}],
                "generationConfig": {
                    "temperature": self.config.temperature,
                    "maxOutputTokens": self.config.max_output_tokens,
                },
            },
        )

        candidates = data.get("candidates") or []
        if not candidates:
            raise GeminiAPIError("No response from Gemini API")

        parts = candidates[0].get("content", {}).get("parts") or []
        if not parts:
            raise GeminiAPIError("Gemini response has no content parts")

        return parts[0].get("text", "").strip()

    async def _embed(self, text: str) -> List[float]:
        model = self.config.embedding_model
        data = await self._request(
            "POST",
            f"models/{model}:embedContent",
            json={
                "model": f"models/{model}",
                "content": {"parts": [{"text": text}]},
            },
        )

        values = data.get("embedding", {}).get("values")
        if not values:
            raise GeminiAPIError("Gemini response has no embedding values")
        return [float(v) for v in values]
