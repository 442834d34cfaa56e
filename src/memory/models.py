"""Data models for the memory corpus and the query API.

This module defines:
- MemoryRecord: one captured web page (summary + embedding)
- SearchResult: a record paired with its cosine score
- Capability / Capabilities: what an AI provider can do
- QueryRequest / QueryResponse: the query API surface
"""

from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator


class MemoryRecord(BaseModel):
    """A stored memory of a visited web page.

    ``summary`` may hold ciphertext. Records are owned by the storage layer;
    the engine only hands out modified copies.
    """

    id: str = Field(..., min_length=1, description="Unique, stable identifier")
    url: str = Field(..., description="Source URL")
    title: str = Field(default="", description="Page title")
    summary: str = Field(default="", description="AI summary, possibly encrypted")
    embedding: List[float] = Field(default_factory=list, description="Embedding vector")
    created_at: datetime = Field(default_factory=datetime.now)
    tags: List[str] = Field(default_factory=list)
    visit_count: int = Field(default=1, ge=0)
    last_accessed: datetime = Field(default_factory=datetime.now)

    @property
    def dimensions(self) -> int:
        """Embedding length."""
        return len(self.embedding)


class SearchResult(BaseModel):
    """A memory paired with its raw cosine similarity to a query."""

    memory: MemoryRecord
    score: float


class DateRange(BaseModel):
    """Inclusive creation-time window."""

    start: datetime
    end: datetime

    @model_validator(mode="after")
    def check_order(self) -> "DateRange":
        if self.start > self.end:
            raise ValueError("date range start must not be after end")
        return self

    def contains(self, moment: datetime) -> bool:
        return self.start <= moment <= self.end


class Capability(str, Enum):
    """Operations a provider may support."""

    SUMMARIZER = "summarizer"
    EMBEDDER = "embedder"
    WRITER = "writer"
    TRANSLATOR = "translator"
    PROOFREADER = "proofreader"
    REWRITER = "rewriter"


class Capabilities(BaseModel):
    """Capability flags advertised by a provider."""

    summarizer: bool = False
    embedder: bool = False
    writer: bool = False
    translator: bool = False
    proofreader: bool = False
    rewriter: bool = False

    @classmethod
    def all_enabled(cls) -> "Capabilities":
        return cls(**{capability.value: True for capability in Capability})

    def supports(self, capability: Capability) -> bool:
        return bool(getattr(self, capability.value))

    def any_enabled(self) -> bool:
        return any(self.supports(capability) for capability in Capability)

    def as_dict(self) -> Dict[str, bool]:
        return self.model_dump()


class QueryRequest(BaseModel):
    """Natural-language query against the memory corpus."""

    query: str = Field(..., description="User question")
    limit: Optional[int] = Field(default=None, ge=1, description="Maximum sources")
    date_range: Optional[DateRange] = None
    tags: Optional[List[str]] = None

    @field_validator("query")
    @classmethod
    def validate_query(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("query cannot be empty")
        return v.strip()


class QueryResponse(BaseModel):
    """Answer plus the decrypted sources it was generated from."""

    answer: str
    sources: List[SearchResult] = Field(default_factory=list)
    processing_time: float = Field(..., ge=0.0, description="Elapsed milliseconds")
