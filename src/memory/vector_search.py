"""Vector similarity search over a memory corpus snapshot.

The ranking, clustering and diversification functions are pure and
synchronous. ``VectorSearchService`` fetches one corpus snapshot from the
repository per call and delegates to them; nothing is cached between calls.

Records compared in one call must come from the same embedding space. No
cross-provider check is made beyond the per-pair length check.
"""

from typing import TYPE_CHECKING, List, Optional, Sequence

import numpy as np

from src.core.config import SearchConfig
from src.core.exceptions import DimensionMismatch
from src.core.logging import get_logger
from src.memory.models import DateRange, MemoryRecord, SearchResult

if TYPE_CHECKING:
    from src.database.memory_repository import MemoryRepository

logger = get_logger(__name__)

# Candidate cap for each cluster seed
CLUSTER_SEED_LIMIT = 100
DUPLICATE_LIMIT = 10
# Diversification over-fetches this many candidates per requested result
DIVERSITY_POOL_FACTOR = 3


def cosine_similarity(vec_a: Sequence[float], vec_b: Sequence[float]) -> float:
    """Cosine of the angle between two vectors.

    Args:
        vec_a: First vector
        vec_b: Second vector

    Returns:
        Similarity in [-1, 1]; 0.0 when either vector has zero norm

    Raises:
        DimensionMismatch: If the vectors differ in length
    """
    a = np.asarray(vec_a, dtype=np.float64)
    b = np.asarray(vec_b, dtype=np.float64)
    if a.shape != b.shape:
        raise DimensionMismatch(a.size, b.size)

    magnitude = np.linalg.norm(a) * np.linalg.norm(b)
    if magnitude == 0:
        return 0.0
    return float(np.dot(a, b) / magnitude)


def filter_records(
    records: Sequence[MemoryRecord],
    date_range: Optional[DateRange] = None,
    tags: Optional[Sequence[str]] = None,
) -> List[MemoryRecord]:
    """Apply the inclusive date window and any-of tag filter, keeping order."""
    filtered = list(records)
    if date_range is not None:
        filtered = [r for r in filtered if date_range.contains(r.created_at)]
    if tags:
        wanted = set(tags)
        filtered = [r for r in filtered if wanted.intersection(r.tags)]
    return filtered


def rank_similar(
    query: Sequence[float],
    records: Sequence[MemoryRecord],
    limit: int = 5,
    threshold: float = 0.5,
    date_range: Optional[DateRange] = None,
    tags: Optional[Sequence[str]] = None,
) -> List[SearchResult]:
    """Thresholded top-k over a record sequence.

    Output is sorted by descending score, ties keep corpus order, has at most
    ``limit`` entries, and every score is >= ``threshold``.
    """
    candidates = filter_records(records, date_range=date_range, tags=tags)

    scored = [
        SearchResult(memory=record, score=cosine_similarity(query, record.embedding))
        for record in candidates
    ]
    kept = [result for result in scored if result.score >= threshold]
    # sorted() is stable, so equal scores stay in corpus order
    kept = sorted(kept, key=lambda result: result.score, reverse=True)
    return kept[:max(limit, 0)]


def cluster_records(
    records: Sequence[MemoryRecord],
    threshold: float = 0.7,
) -> List[List[MemoryRecord]]:
    """Greedy single-pass grouping in storage order.

    Each unvisited record seeds a cluster and pulls in every unvisited record
    among its top ``CLUSTER_SEED_LIMIT`` matches above ``threshold``. Membership
    depends on iteration order: two records similar to each other can land in
    different clusters if an earlier seed claimed one of them. The result is a
    partition of ``records``, not a transitive closure.
    """
    clusters: List[List[MemoryRecord]] = []
    visited: set[str] = set()

    for seed in records:
        if seed.id in visited:
            continue

        cluster = [seed]
        visited.add(seed.id)

        for result in rank_similar(
            seed.embedding, records, limit=CLUSTER_SEED_LIMIT, threshold=threshold
        ):
            if result.memory.id not in visited:
                cluster.append(result.memory)
                visited.add(result.memory.id)

        clusters.append(cluster)

    return clusters


def diversify(
    candidates: Sequence[SearchResult],
    limit: int = 5,
    diversity_threshold: float = 0.85,
) -> List[SearchResult]:
    """Greedy redundancy filter over score-ordered candidates.

    A candidate is accepted only if its similarity to every accepted result is
    at most ``diversity_threshold``.
    """
    accepted: List[SearchResult] = []
    for candidate in candidates:
        if len(accepted) >= limit:
            break
        too_similar = any(
            cosine_similarity(candidate.memory.embedding, chosen.memory.embedding)
            > diversity_threshold
            for chosen in accepted
        )
        if not too_similar:
            accepted.append(candidate)
    return accepted


def average_similarity(query: Sequence[float], records: Sequence[MemoryRecord]) -> float:
    """Mean cosine similarity of ``query`` to every record; 0.0 when empty."""
    if not records:
        return 0.0
    total = sum(cosine_similarity(query, record.embedding) for record in records)
    return total / len(records)


class VectorSearchService:
    """Similarity search over the repository's current corpus.

    Features:
    - Thresholded top-k retrieval with date and tag filters
    - Near-duplicate detection
    - Greedy clustering
    - Diversity-aware retrieval
    - Corpus health diagnostics
    """

    def __init__(
        self,
        repository: "MemoryRepository",
        config: Optional[SearchConfig] = None,
    ):
        """Initialize the search service.

        Args:
            repository: Storage collaborator providing corpus snapshots
            config: Search defaults
        """
        self.repository = repository
        self.config = config or SearchConfig()

    async def _snapshot(self) -> List[MemoryRecord]:
        return await self.repository.get_all()

    async def find_similar(
        self,
        query: Sequence[float],
        limit: Optional[int] = None,
        threshold: Optional[float] = None,
        date_range: Optional[DateRange] = None,
        tags: Optional[Sequence[str]] = None,
    ) -> List[SearchResult]:
        """Find the memories most similar to a query vector.

        Args:
            query: Query embedding
            limit: Maximum results (default from config, 5)
            threshold: Minimum score (default from config, 0.5)
            date_range: Optional inclusive creation window
            tags: Optional tags, any-of semantics

        Returns:
            Results sorted by descending score
        """
        limit = self.config.default_limit if limit is None else limit
        threshold = self.config.similarity_threshold if threshold is None else threshold

        records = await self._snapshot()
        results = rank_similar(
            query,
            records,
            limit=limit,
            threshold=threshold,
            date_range=date_range,
            tags=tags,
        )

        logger.debug(
            "vector_search_complete",
            corpus_size=len(records),
            results=len(results),
            threshold=threshold,
            limit=limit,
        )
        return results

    async def find_most_similar(self, query: Sequence[float]) -> Optional[SearchResult]:
        """Return the single best match above the default threshold, if any."""
        results = await self.find_similar(query, limit=1)
        return results[0] if results else None

    async def find_duplicates(
        self,
        query: Sequence[float],
        threshold: Optional[float] = None,
    ) -> List[SearchResult]:
        """Find near-duplicates of a vector (high threshold, up to 10 hits)."""
        if threshold is None:
            threshold = self.config.duplicate_threshold
        return await self.find_similar(query, limit=DUPLICATE_LIMIT, threshold=threshold)

    async def cluster_memories(self, threshold: Optional[float] = None) -> List[List[MemoryRecord]]:
        """Group the corpus into greedy similarity clusters.

        See ``cluster_records`` for the order-dependence caveat.
        """
        if threshold is None:
            threshold = self.config.cluster_threshold
        records = await self._snapshot()
        clusters = cluster_records(records, threshold=threshold)

        logger.info(
            "memories_clustered",
            corpus_size=len(records),
            clusters=len(clusters),
            threshold=threshold,
        )
        return clusters

    async def find_diverse_similar(
        self,
        query: Sequence[float],
        limit: Optional[int] = None,
        threshold: Optional[float] = None,
        diversity_threshold: Optional[float] = None,
    ) -> List[SearchResult]:
        """Top matches with near-redundant results filtered out."""
        limit = self.config.default_limit if limit is None else limit
        if diversity_threshold is None:
            diversity_threshold = self.config.diversity_threshold

        candidates = await self.find_similar(
            query, limit=limit * DIVERSITY_POOL_FACTOR, threshold=threshold
        )
        return diversify(candidates, limit=limit, diversity_threshold=diversity_threshold)

    async def calculate_average_similarity(self, query: Sequence[float]) -> float:
        """Mean similarity of a vector to the whole corpus (no threshold)."""
        return average_similarity(query, await self._snapshot())
