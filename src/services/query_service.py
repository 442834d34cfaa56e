"""
Query Service

Answers a natural-language question from the memory corpus:
embed query -> vector search -> decrypt sources -> compose context ->
generate answer -> proofread.

Only per-source decryption failures are recovered here; every other
failure propagates to the caller.
"""

import asyncio
import time
from enum import Enum
from typing import List, Optional

from src.core.config import SearchConfig
from src.core.exceptions import DecryptionFailure
from src.core.logging import get_logger, log_exception
from src.memory.models import QueryRequest, QueryResponse, SearchResult
from src.memory.vector_search import VectorSearchService
from src.security.crypto_service import CryptoService
from src.services.hybrid_ai import HybridAIService

logger = get_logger(__name__)

NO_RESULTS_ANSWER = "I couldn't find any relevant memories for your query."

ANSWER_PROMPT = """You are a helpful assistant with access to the user's browsing history.

Question: {query}

Based on these memories from the user's browsing history:
{context}

Provide a concise, helpful answer. Reference the sources by number [1], [2], etc."""


class QueryStage(str, Enum):
    """Pipeline stages, in execution order."""

    START = "start"
    EMBED_QUERY = "embed_query"
    RETRIEVE = "retrieve"
    DECRYPT_SOURCES = "decrypt_sources"
    COMPOSE_CONTEXT = "compose_context"
    GENERATE_ANSWER = "generate_answer"
    PROOFREAD = "proofread"
    DONE = "done"


def compose_context(sources: List[SearchResult]) -> str:
    """Enumerate ranked sources as ``[n] title / summary / Source: url`` blocks."""
    return "\n".join(
        f"[{idx}] {result.memory.title}\n{result.memory.summary}\nSource: {result.memory.url}\n"
        for idx, result in enumerate(sources, start=1)
    )


class QueryService:
    """Retrieval-augmented question answering over memories."""

    def __init__(
        self,
        ai: HybridAIService,
        search: VectorSearchService,
        crypto: Optional[CryptoService] = None,
        config: Optional[SearchConfig] = None,
    ):
        """Initialize query service.

        Args:
            ai: Orchestrator for embed/write/proofread
            search: Similarity search over the corpus
            crypto: Decrypts stored summaries; skipped when absent or uninitialized
            config: Search defaults (result limit)
        """
        self.ai = ai
        self.search = search
        self.crypto = crypto
        self.config = config or SearchConfig()

    @staticmethod
    def _elapsed_ms(start: float) -> float:
        return (time.perf_counter() - start) * 1000

    async def _decrypt_source(self, result: SearchResult) -> SearchResult:
        try:
            summary = await self.crypto.decrypt(result.memory.summary)
        except DecryptionFailure as e:
            log_exception(
                logger, "source_decryption_failed", e,
                level="warning", memory_id=result.memory.id, url=result.memory.url,
            )
            return result

        return result.model_copy(
            update={"memory": result.memory.model_copy(update={"summary": summary})}
        )

    async def decrypt_sources(self, results: List[SearchResult]) -> List[SearchResult]:
        """Decrypt every summary concurrently, preserving rank order.

        A source that fails to decrypt keeps its ciphertext.
        """
        if self.crypto is None or not self.crypto.is_initialized():
            return list(results)
        # gather() returns in argument order regardless of completion order
        return list(await asyncio.gather(*(self._decrypt_source(r) for r in results)))

    async def process_query(self, request: QueryRequest) -> QueryResponse:
        """Answer a query.

        Args:
            request: Query text plus optional limit, date range and tags

        Returns:
            Answer, decrypted sources, and elapsed milliseconds

        Raises:
            NoProviderAvailable, ProviderUnavailable: If an AI stage fails
            StorageError: If the corpus cannot be read
        """
        start = time.perf_counter()
        stage = QueryStage.START
        log = logger.bind(query=request.query)
        log.info("query_started", stage=stage.value)

        try:
            stage = QueryStage.EMBED_QUERY
            query_embedding = await self.ai.embed(request.query)
            log.debug("query_stage_complete", stage=stage.value, dimensions=len(query_embedding))

            stage = QueryStage.RETRIEVE
            results = await self.search.find_similar(
                query_embedding,
                limit=request.limit or self.config.default_limit,
                date_range=request.date_range,
                tags=request.tags,
            )
            log.debug("query_stage_complete", stage=stage.value, results=len(results))

            if not results:
                elapsed = self._elapsed_ms(start)
                log.info("query_no_results", stage=QueryStage.DONE.value, time_ms=elapsed)
                return QueryResponse(answer=NO_RESULTS_ANSWER, sources=[], processing_time=elapsed)

            stage = QueryStage.DECRYPT_SOURCES
            sources = await self.decrypt_sources(results)

            stage = QueryStage.COMPOSE_CONTEXT
            context = compose_context(sources)

            stage = QueryStage.GENERATE_ANSWER
            answer = await self.ai.write(
                ANSWER_PROMPT.format(query=request.query, context=context),
                tone="helpful",
                length="medium",
            )
            log.debug("query_stage_complete", stage=stage.value, answer_length=len(answer))

            stage = QueryStage.PROOFREAD
            final_answer = await self.ai.proofread(answer)
        except Exception as e:
            log_exception(log, "query_failed", e, stage=stage.value)
            raise

        elapsed = self._elapsed_ms(start)
        log.info(
            "query_processed",
            stage=QueryStage.DONE.value,
            sources=len(sources),
            time_ms=round(elapsed, 2),
        )
        return QueryResponse(answer=final_answer, sources=sources, processing_time=elapsed)
