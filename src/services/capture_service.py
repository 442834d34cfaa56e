"""
Capture Service

Turns extracted page text into a memory record: summarize, embed, encrypt
the summary, store. Revisits of a known URL only bump its visit counter.
"""

from typing import List, Optional

from src.core.config import BrainConfig
from src.core.logging import get_logger
from src.core.text import chunk_text, is_valid_text, sanitize_text, should_ignore_url
from src.database.memory_repository import MemoryRepository
from src.memory.models import MemoryRecord
from src.security.crypto_service import CryptoService
from src.services.hybrid_ai import HybridAIService

logger = get_logger(__name__)


class CaptureService:
    """Ingest web pages into the memory corpus."""

    def __init__(
        self,
        ai: HybridAIService,
        repository: MemoryRepository,
        crypto: Optional[CryptoService] = None,
        config: Optional[BrainConfig] = None,
    ):
        self.ai = ai
        self.repository = repository
        self.crypto = crypto
        self.config = config or BrainConfig()

    def _should_encrypt(self) -> bool:
        return (
            self.config.encryption_enabled
            and self.crypto is not None
            and self.crypto.is_initialized()
        )

    async def capture(
        self,
        url: str,
        title: str,
        text: str,
        tags: Optional[List[str]] = None,
    ) -> Optional[MemoryRecord]:
        """Capture a page.

        Args:
            url: Page URL
            title: Page title
            text: Extracted page text
            tags: Optional tags

        Returns:
            The new or already-known record; None when the page was skipped
        """
        if should_ignore_url(url):
            logger.debug("capture_ignored_url", url=url)
            return None

        existing = await self.repository.get_by_url(url)
        if existing is not None:
            await self.repository.increment_visit_count(existing.id)
            logger.debug("capture_known_url", url=url, memory_id=existing.id)
            return existing

        text = sanitize_text(text)
        if not is_valid_text(text, self.config.min_text_length):
            logger.debug("capture_text_too_short", url=url, length=len(text))
            return None

        # Only the leading chunk of long pages reaches the model
        chunks = chunk_text(text, self.config.max_input_length)
        if len(chunks) > 1:
            logger.debug("capture_text_bounded", url=url, chunks=len(chunks), length=len(text))
        source_text = chunks[0]

        summary = await self.ai.summarize(source_text, self.config.summary_max_length)
        embedding = await self.ai.embed(source_text)

        if self._should_encrypt():
            summary = await self.crypto.encrypt(summary)

        record = await self.repository.create(
            url=url,
            title=title,
            summary=summary,
            embedding=embedding,
            tags=tags,
        )
        logger.info("memory_captured", url=url, title=title, dimensions=len(embedding))
        return record
