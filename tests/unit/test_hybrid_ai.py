"""Unit tests for the two-tier AI orchestrator."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from src.core.exceptions import NoProviderAvailable, ProviderUnavailable
from src.memory.models import Capabilities, Capability
from src.services.hybrid_ai import (
    HybridAIService,
    ProviderTier,
    RouteDecision,
    route,
)


def make_provider(name, capabilities, configured=True):
    """Provider double with every operation as an AsyncMock."""
    provider = MagicMock()
    provider.name = name
    provider.initialize = AsyncMock(return_value=capabilities)
    provider.is_configured = MagicMock(return_value=configured)
    provider.embed = AsyncMock(return_value=[0.1, 0.2, 0.3])
    provider.summarize = AsyncMock(return_value=f"{name} summary")
    provider.write = AsyncMock(return_value=f"{name} answer")
    provider.translate = AsyncMock(return_value=f"{name} translation")
    provider.proofread = AsyncMock(return_value=f"{name} proofread")
    provider.rewrite = AsyncMock(return_value=f"{name} rewrite")
    return provider


class TestRoute:
    """Tests for the pure routing decision."""

    def test_primary_capable_with_secondary(self):
        decision = route(ProviderTier.PRIMARY, Capabilities.all_enabled(), Capability.WRITER, True)
        assert decision == RouteDecision.PRIMARY_WITH_FALLBACK

    def test_primary_capable_without_secondary(self):
        decision = route(ProviderTier.PRIMARY, Capabilities.all_enabled(), Capability.WRITER, False)
        assert decision == RouteDecision.PRIMARY_ONLY

    def test_primary_lacks_capability_uses_secondary(self):
        caps = Capabilities(writer=True)
        assert route(ProviderTier.PRIMARY, caps, Capability.EMBEDDER, True) == RouteDecision.SECONDARY

    def test_primary_lacks_capability_no_secondary(self):
        caps = Capabilities(writer=True)
        assert route(ProviderTier.PRIMARY, caps, Capability.EMBEDDER, False) == RouteDecision.NONE

    def test_secondary_tier(self):
        caps = Capabilities.all_enabled()
        assert route(ProviderTier.SECONDARY, caps, Capability.EMBEDDER, True) == RouteDecision.SECONDARY
        assert route(ProviderTier.SECONDARY, caps, Capability.EMBEDDER, False) == RouteDecision.NONE


class TestInitialize:
    """Tests for tier selection."""

    @pytest.mark.asyncio
    async def test_primary_active_when_capable(self):
        primary = make_provider("local", Capabilities(writer=True, embedder=True))
        secondary = make_provider("remote", Capabilities.all_enabled())
        service = HybridAIService(primary, secondary)

        caps = await service.initialize()

        assert service.get_current_provider() == ProviderTier.PRIMARY
        assert caps.writer and caps.embedder
        assert not caps.translator
        assert service.is_secondary_configured()

    @pytest.mark.asyncio
    async def test_secondary_active_when_primary_has_nothing(self):
        primary = make_provider("local", Capabilities())
        secondary = make_provider("remote", Capabilities.all_enabled())
        service = HybridAIService(primary, secondary)

        caps = await service.initialize()

        assert service.get_current_provider() == ProviderTier.SECONDARY
        assert caps == Capabilities.all_enabled()

    @pytest.mark.asyncio
    async def test_primary_check_exception_treated_as_unavailable(self):
        primary = make_provider("local", Capabilities())
        primary.initialize.side_effect = ConnectionError("refused")
        secondary = make_provider("remote", Capabilities.all_enabled())
        service = HybridAIService(primary, secondary)

        await service.initialize()

        assert service.get_current_provider() == ProviderTier.SECONDARY

    @pytest.mark.asyncio
    async def test_unconfigured_secondary_not_initialized(self):
        primary = make_provider("local", Capabilities.all_enabled())
        secondary = make_provider("remote", Capabilities.all_enabled(), configured=False)
        service = HybridAIService(primary, secondary)

        await service.initialize()

        secondary.initialize.assert_not_awaited()
        assert not service.is_secondary_configured()

    @pytest.mark.asyncio
    async def test_status_snapshot(self):
        service = HybridAIService(make_provider("local", Capabilities.all_enabled()))
        await service.initialize()

        status = service.get_status()

        assert status["initialized"] is True
        assert status["active_tier"] == "primary"
        assert status["secondary"] is None
        assert status["capabilities"]["embedder"] is True


class TestDispatch:
    """Tests for per-call routing and fallback."""

    @pytest.mark.asyncio
    async def test_missing_capability_served_by_secondary(self):
        """Primary cannot embed, secondary can: embed succeeds via secondary."""
        primary = make_provider("local", Capabilities(writer=True, summarizer=True))
        secondary = make_provider("remote", Capabilities.all_enabled())
        service = HybridAIService(primary, secondary)
        await service.initialize()

        vector = await service.embed("hello")

        assert vector == [0.1, 0.2, 0.3]
        secondary.embed.assert_awaited_once_with("hello")
        primary.embed.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_primary_serves_when_capable(self):
        primary = make_provider("local", Capabilities.all_enabled())
        secondary = make_provider("remote", Capabilities.all_enabled())
        service = HybridAIService(primary, secondary)
        await service.initialize()

        assert await service.summarize("text", 100) == "local summary"
        primary.summarize.assert_awaited_once_with("text", 100)
        secondary.summarize.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_fallback_called_exactly_once(self):
        primary = make_provider("local", Capabilities.all_enabled())
        primary.write.side_effect = ProviderUnavailable("local", "writer")
        secondary = make_provider("remote", Capabilities.all_enabled())
        service = HybridAIService(primary, secondary)
        await service.initialize()

        answer = await service.write("prompt", tone="helpful", length="medium")

        assert answer == "remote answer"
        primary.write.assert_awaited_once()
        secondary.write.assert_awaited_once_with("prompt", tone="helpful", length="medium")

    @pytest.mark.asyncio
    async def test_fallback_failure_propagates(self):
        primary = make_provider("local", Capabilities.all_enabled())
        primary.proofread.side_effect = ProviderUnavailable("local", "proofreader")
        secondary = make_provider("remote", Capabilities.all_enabled())
        secondary.proofread.side_effect = ProviderUnavailable("remote", "proofreader")
        service = HybridAIService(primary, secondary)
        await service.initialize()

        with pytest.raises(ProviderUnavailable) as exc_info:
            await service.proofread("text")

        assert exc_info.value.provider == "remote"
        assert secondary.proofread.await_count == 1

    @pytest.mark.asyncio
    async def test_primary_only_failure_reraises(self):
        primary = make_provider("local", Capabilities.all_enabled())
        primary.translate.side_effect = ProviderUnavailable("local", "translator")
        service = HybridAIService(primary)
        await service.initialize()

        with pytest.raises(ProviderUnavailable):
            await service.translate("hola", "en")

    @pytest.mark.asyncio
    async def test_no_provider_available(self):
        primary = make_provider("local", Capabilities(writer=True))
        service = HybridAIService(primary)
        await service.initialize()

        with pytest.raises(NoProviderAvailable) as exc_info:
            await service.embed("text")

        assert "embedder" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_uninitialized_service_has_no_provider(self):
        primary = make_provider("local", Capabilities.all_enabled())
        service = HybridAIService(primary)

        with pytest.raises(NoProviderAvailable):
            await service.rewrite("text")

        primary.rewrite.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_rewrite_passes_options(self):
        primary = make_provider("local", Capabilities.all_enabled())
        service = HybridAIService(primary)
        await service.initialize()

        await service.rewrite("text", tone="formal", length="shorter", format="bullet")

        primary.rewrite.assert_awaited_once_with(
            "text", tone="formal", length="shorter", format="bullet"
        )
