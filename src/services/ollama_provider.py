"""
Ollama provider for local model inference.

Primary provider: runs generation and embeddings on the user's machine.
Capabilities depend on which configured models are installed.
"""

from typing import List, Optional

import httpx
from ollama import AsyncClient

from src.core.config import OllamaConfig, RetryConfig
from src.core.logging import get_logger
from src.memory.models import Capabilities
from src.services.ai_provider import LLMProvider

logger = get_logger(__name__)


def _model_installed(model: str, installed: List[str]) -> bool:
    # "nomic-embed-text" matches "nomic-embed-text:latest"
    return any(name == model or name.split(":")[0] == model for name in installed)


class OllamaProvider(LLMProvider):
    """Local model provider backed by an Ollama server."""

    name = "ollama"

    def __init__(
        self,
        config: Optional[OllamaConfig] = None,
        retry_config: Optional[RetryConfig] = None,
        client: Optional[AsyncClient] = None,
    ):
        """Initialize Ollama provider.

        Args:
            config: Host and model settings
            retry_config: Backoff policy for backend calls
            client: Injected Ollama client (tests)
        """
        super().__init__(retry_config)
        self.config = config or OllamaConfig()
        self.client = client or AsyncClient(host=self.config.host, timeout=self.config.timeout)
        self._available_models: List[str] = []

    async def list_models(self) -> List[str]:
        """Fetch installed model names from the server."""
        async with httpx.AsyncClient(timeout=self.config.timeout) as http:
            response = await http.get(f"{self.config.host}/api/tags")
            response.raise_for_status()
            data = response.json()
        return [m["name"] for m in data.get("models", [])]

    async def initialize(self) -> Capabilities:
        """Check the server; unreachable means no capabilities."""
        try:
            self._available_models = await self.list_models()
        except (httpx.HTTPError, ValueError, KeyError) as e:
            logger.warning("ollama_not_available", host=self.config.host, error=str(e))
            self._available_models = []
            self.capabilities = Capabilities()
            return self.get_capabilities()

        can_generate = _model_installed(self.config.model, self._available_models)
        can_embed = _model_installed(self.config.embedding_model, self._available_models)

        self.capabilities = Capabilities(
            summarizer=can_generate,
            embedder=can_embed,
            writer=can_generate,
            translator=can_generate,
            proofreader=can_generate,
            rewriter=can_generate,
        )

        logger.info(
            "ollama_available",
            models_count=len(self._available_models),
            generation_model=self.config.model if can_generate else None,
            embedding_model=self.config.embedding_model if can_embed else None,
        )
        return self.get_capabilities()

    async def _generate(self, prompt: str) -> str:
        response = await self.client.generate(
            model=self.config.model,
            prompt=prompt,
            options={"temperature": self.config.temperature},
            stream=False,
        )
        content = response["response"].strip()

        logger.debug(
            "generation_complete",
            model=self.config.model,
            prompt_length=len(prompt),
            response_length=len(content),
        )
        return content

    async def _embed(self, text: str) -> List[float]:
        response = await self.client.embeddings(
            model=self.config.embedding_model,
            prompt=text,
        )
        return list(response["embedding"])
