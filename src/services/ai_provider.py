"""AI provider contract.

An ``AIProvider`` declares which of the six operations it can serve
(embed, summarize, write, translate, proofread, rewrite) after
``initialize()``. Calling an operation whose flag is false raises
``ProviderUnavailable``. Backend calls are retried with exponential backoff;
once retries are exhausted the failure surfaces as ``ProviderUnavailable``.
"""

from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, List, Optional, TypeVar

from src.core.config import RetryConfig
from src.core.exceptions import ProviderUnavailable
from src.core.logging import get_logger
from src.core.retry import call_with_retry
from src.memory.models import Capabilities, Capability

logger = get_logger(__name__)

T = TypeVar("T")


class AIProvider(ABC):
    """Base class for AI backends."""

    name: str = "provider"

    def __init__(self, retry_config: Optional[RetryConfig] = None):
        self.retry_config = retry_config or RetryConfig()
        self.capabilities = Capabilities()

    @abstractmethod
    async def initialize(self) -> Capabilities:
        """Check the backend and record what it can do.

        Returns:
            The discovered capability set (all false when unreachable)
        """

    def is_configured(self) -> bool:
        """Whether the provider has what it needs (credentials, host) to be tried."""
        return True

    def get_capabilities(self) -> Capabilities:
        return self.capabilities.model_copy()

    async def _run(
        self,
        capability: Capability,
        func: Callable[..., Awaitable[T]],
        *args: Any,
        **kwargs: Any,
    ) -> T:
        """Gate on ``capability``, then call the backend under the retry policy."""
        if not self.capabilities.supports(capability):
            raise ProviderUnavailable(self.name, capability.value)

        try:
            return await call_with_retry(func, *args, config=self.retry_config, **kwargs)
        except ProviderUnavailable:
            raise
        except Exception as e:
            logger.error(
                "provider_call_failed",
                provider=self.name,
                capability=capability.value,
                error=str(e),
            )
            raise ProviderUnavailable(self.name, capability.value, details=str(e)) from e

    @abstractmethod
    async def embed(self, text: str) -> List[float]:
        """Embed text into a fixed-dimension vector."""

    @abstractmethod
    async def summarize(self, text: str, max_length: int = 500) -> str:
        """Summarize text."""

    @abstractmethod
    async def write(
        self,
        prompt: str,
        tone: Optional[str] = None,
        length: Optional[str] = None,
    ) -> str:
        """Generate text for a prompt."""

    @abstractmethod
    async def translate(
        self,
        text: str,
        target_language: str,
        source_language: Optional[str] = None,
    ) -> str:
        """Translate text."""

    @abstractmethod
    async def proofread(self, text: str) -> str:
        """Correct grammar, spelling and punctuation."""

    @abstractmethod
    async def rewrite(
        self,
        text: str,
        tone: Optional[str] = None,
        length: Optional[str] = None,
        format: Optional[str] = None,
    ) -> str:
        """Rewrite text with a different tone, length or format."""


def summarize_prompt(text: str, max_length: int) -> str:
    return (
        f"Summarize the following text in 2-3 sentences (at most {max_length} characters). "
        f"Focus on the main points and key information:\n\n{text}"
    )


def write_prompt(prompt: str, tone: Optional[str] = None, length: Optional[str] = None) -> str:
    full_prompt = prompt
    if tone:
        full_prompt = f"Write in a {tone} tone. {full_prompt}"
    if length:
        full_prompt = f"{full_prompt} Keep it {length}."
    return full_prompt


def translate_prompt(text: str, target_language: str, source_language: Optional[str] = None) -> str:
    if source_language:
        return f"Translate this text from {source_language} to {target_language}:\n\n{text}"
    return f"Translate this text to {target_language}:\n\n{text}"


def proofread_prompt(text: str) -> str:
    return (
        "Proofread and correct any grammar, spelling, or punctuation errors in this text. "
        f"Return ONLY the corrected text, no explanations:\n\n{text}"
    )


def rewrite_prompt(
    text: str,
    tone: Optional[str] = None,
    length: Optional[str] = None,
    format: Optional[str] = None,
) -> str:
    prompt = "Rewrite the following text"
    if tone:
        prompt += f" in a {tone} tone"
    if length:
        prompt += f" making it {length}"
    if format:
        prompt += f" in {format} format"
    return f"{prompt}:\n\n{text}"


class LLMProvider(AIProvider):
    """Provider whose text operations are prompts to one generation model.

    Subclasses implement ``_generate`` and ``_embed``.
    """

    @abstractmethod
    async def _generate(self, prompt: str) -> str:
        """Single completion call against the backend."""

    @abstractmethod
    async def _embed(self, text: str) -> List[float]:
        """Single embedding call against the backend."""

    async def embed(self, text: str) -> List[float]:
        embedding = await self._run(Capability.EMBEDDER, self._embed, text)
        logger.debug("embedding_generated", provider=self.name, dimensions=len(embedding))
        return embedding

    async def summarize(self, text: str, max_length: int = 500) -> str:
        return await self._run(
            Capability.SUMMARIZER, self._generate, summarize_prompt(text, max_length)
        )

    async def write(
        self,
        prompt: str,
        tone: Optional[str] = None,
        length: Optional[str] = None,
    ) -> str:
        return await self._run(Capability.WRITER, self._generate, write_prompt(prompt, tone, length))

    async def translate(
        self,
        text: str,
        target_language: str,
        source_language: Optional[str] = None,
    ) -> str:
        return await self._run(
            Capability.TRANSLATOR,
            self._generate,
            translate_prompt(text, target_language, source_language),
        )

    async def proofread(self, text: str) -> str:
        return await self._run(Capability.PROOFREADER, self._generate, proofread_prompt(text))

    async def rewrite(
        self,
        text: str,
        tone: Optional[str] = None,
        length: Optional[str] = None,
        format: Optional[str] = None,
    ) -> str:
        return await self._run(
            Capability.REWRITER, self._generate, rewrite_prompt(text, tone, length, format)
        )
