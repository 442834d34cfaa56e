"""Memory corpus models and similarity search.

This package provides:
- Memory record and query API models
- Cosine similarity, thresholded top-k, clustering and diversification
"""

from src.memory.models import (
    Capabilities,
    Capability,
    DateRange,
    MemoryRecord,
    QueryRequest,
    QueryResponse,
    SearchResult,
)
from src.memory.vector_search import VectorSearchService, cosine_similarity

__all__ = [
    "Capabilities",
    "Capability",
    "DateRange",
    "MemoryRecord",
    "QueryRequest",
    "QueryResponse",
    "SearchResult",
    "VectorSearchService",
    "cosine_similarity",
]
