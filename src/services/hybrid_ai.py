"""
Hybrid AI Service

Routes each AI operation to a primary provider (local model) or a secondary
provider (remote API), with a one-shot fallback to the secondary when the
primary fails. Tier selection happens once in ``initialize()``; capability
flags are not re-checked afterwards.
"""

from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, TypeVar

from src.core.exceptions import NoProviderAvailable
from src.core.logging import get_logger
from src.memory.models import Capabilities, Capability
from src.services.ai_provider import AIProvider

logger = get_logger(__name__)

T = TypeVar("T")


class ProviderTier(str, Enum):
    """Which provider is active."""

    PRIMARY = "primary"
    SECONDARY = "secondary"


class RouteDecision(str, Enum):
    """Where a single operation goes."""

    PRIMARY_WITH_FALLBACK = "primary_with_fallback"
    PRIMARY_ONLY = "primary_only"
    SECONDARY = "secondary"
    NONE = "none"


def route(
    tier: ProviderTier,
    capabilities: Capabilities,
    capability: Capability,
    secondary_available: bool,
) -> RouteDecision:
    """Decide which provider serves an operation.

    Args:
        tier: Active tier chosen at initialization
        capabilities: Advertised capability set
        capability: Operation being dispatched
        secondary_available: Whether the secondary is registered

    Returns:
        The routing decision; at most one fallback hop is ever allowed
    """
    if tier == ProviderTier.PRIMARY and capabilities.supports(capability):
        if secondary_available:
            return RouteDecision.PRIMARY_WITH_FALLBACK
        return RouteDecision.PRIMARY_ONLY
    if secondary_available:
        return RouteDecision.SECONDARY
    return RouteDecision.NONE


class HybridAIService:
    """Two-tier AI orchestrator.

    Examples:
        >>> ai = HybridAIService(OllamaProvider(), GeminiProvider())
        >>> await ai.initialize()
        >>> vector = await ai.embed("rust borrow checker article")
    """

    def __init__(self, primary: AIProvider, secondary: Optional[AIProvider] = None):
        """Initialize the orchestrator.

        Args:
            primary: Preferred provider (usually local)
            secondary: Fallback provider (usually remote)
        """
        self.primary = primary
        self.secondary = secondary
        self.tier = ProviderTier.PRIMARY
        self.capabilities = Capabilities()
        self._secondary_ready = False
        self._initialized = False

    async def initialize(self) -> Capabilities:
        """Check providers and fix the active tier.

        Returns:
            The advertised capability set
        """
        logger.info("hybrid_ai_initializing", primary=self.primary.name,
                    secondary=self.secondary.name if self.secondary else None)

        try:
            primary_caps = await self.primary.initialize()
        except Exception as e:
            logger.warning("primary_provider_check_failed", provider=self.primary.name, error=str(e))
            primary_caps = Capabilities()

        if primary_caps.any_enabled():
            self.tier = ProviderTier.PRIMARY
            self.capabilities = primary_caps
            logger.info("primary_provider_active", provider=self.primary.name)
        else:
            self.tier = ProviderTier.SECONDARY
            self.capabilities = Capabilities()
            logger.warning("primary_provider_unavailable", provider=self.primary.name)

        self._secondary_ready = False
        if self.secondary is not None and self.secondary.is_configured():
            try:
                secondary_caps = await self.secondary.initialize()
            except Exception as e:
                logger.error("secondary_provider_init_failed", provider=self.secondary.name, error=str(e))
                secondary_caps = Capabilities()

            if secondary_caps.any_enabled():
                self._secondary_ready = True
                logger.info("secondary_provider_registered", provider=self.secondary.name)
                if self.tier == ProviderTier.SECONDARY:
                    self.capabilities = Capabilities.all_enabled()
        else:
            logger.warning("secondary_provider_not_configured")

        self._initialized = True
        logger.info(
            "hybrid_ai_initialized",
            active_tier=self.tier.value,
            capabilities=self.capabilities.as_dict(),
            fallback=self._secondary_ready,
        )
        return self.get_capabilities()

    def _decide(self, capability: Capability) -> RouteDecision:
        if not self._initialized:
            return RouteDecision.NONE
        return route(self.tier, self.capabilities, capability, self._secondary_ready)

    async def _dispatch(
        self,
        capability: Capability,
        operation: Callable[[AIProvider], Awaitable[T]],
    ) -> T:
        decision = self._decide(capability)

        if decision in (RouteDecision.PRIMARY_WITH_FALLBACK, RouteDecision.PRIMARY_ONLY):
            try:
                return await operation(self.primary)
            except Exception as e:
                if decision == RouteDecision.PRIMARY_ONLY:
                    raise
                logger.warning(
                    "primary_provider_failed_using_fallback",
                    capability=capability.value,
                    provider=self.primary.name,
                    fallback=self.secondary.name,
                    error=str(e),
                )
                return await operation(self.secondary)

        if decision == RouteDecision.SECONDARY:
            return await operation(self.secondary)

        raise NoProviderAvailable(capability.value)

    async def embed(self, text: str) -> List[float]:
        """Generate an embedding vector."""
        return await self._dispatch(Capability.EMBEDDER, lambda p: p.embed(text))

    async def summarize(self, text: str, max_length: int = 500) -> str:
        """Summarize text."""
        return await self._dispatch(
            Capability.SUMMARIZER, lambda p: p.summarize(text, max_length)
        )

    async def write(
        self,
        prompt: str,
        tone: Optional[str] = None,
        length: Optional[str] = None,
    ) -> str:
        """Generate text from a prompt."""
        return await self._dispatch(
            Capability.WRITER, lambda p: p.write(prompt, tone=tone, length=length)
        )

    async def translate(
        self,
        text: str,
        target_language: str,
        source_language: Optional[str] = None,
    ) -> str:
        """Translate text."""
        return await self._dispatch(
            Capability.TRANSLATOR,
            lambda p: p.translate(text, target_language, source_language),
        )

    async def proofread(self, text: str) -> str:
        """Proofread text."""
        return await self._dispatch(Capability.PROOFREADER, lambda p: p.proofread(text))

    async def rewrite(
        self,
        text: str,
        tone: Optional[str] = None,
        length: Optional[str] = None,
        format: Optional[str] = None,
    ) -> str:
        """Rewrite text."""
        return await self._dispatch(
            Capability.REWRITER,
            lambda p: p.rewrite(text, tone=tone, length=length, format=format),
        )

    def get_capabilities(self) -> Capabilities:
        return self.capabilities.model_copy()

    def get_current_provider(self) -> ProviderTier:
        return self.tier

    def is_secondary_configured(self) -> bool:
        return self._secondary_ready

    def get_status(self) -> Dict[str, Any]:
        """Snapshot of routing state for diagnostics."""
        return {
            "initialized": self._initialized,
            "active_tier": self.tier.value,
            "primary": self.primary.name,
            "secondary": self.secondary.name if self.secondary else None,
            "secondary_ready": self._secondary_ready,
            "capabilities": self.capabilities.as_dict(),
        }
