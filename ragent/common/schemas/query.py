"""
Query Schemas

A Query is the user-facing request record: free text, optional structural
filters, and option flags selecting traditional or agentic retrieval.
"""

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from ..cache import stable_hash
from .document import DocumentMetadata, ensure_aware


class QueryMode(str, Enum):
    """Retrieval mode"""
    TRADITIONAL = "traditional"
    AGENTIC = "agentic"


class DateRange(BaseModel):
    """Inclusive published-at window"""
    start: datetime
    end: datetime

    @field_validator("start", "end")
    @classmethod
    def normalize_bounds(cls, value: datetime) -> datetime:
        return ensure_aware(value)

    def contains(self, moment: datetime) -> bool:
        return self.start <= ensure_aware(moment) <= self.end


class QueryFilters(BaseModel):
    """
    Structural filters. A field left as None is inactive; an active field
    excludes every document that fails it.
    """
    category: Optional[List[str]] = None
    source: Optional[List[str]] = None
    difficulty: Optional[List[str]] = None
    tags: Optional[List[str]] = None
    date_range: Optional[DateRange] = None

    @property
    def is_active(self) -> bool:
        return any(
            v is not None
            for v in (self.category, self.source, self.difficulty, self.tags, self.date_range)
        )

    def matches(self, metadata: DocumentMetadata) -> bool:
        """True when the document passes every active filter"""
        if self.category is not None and metadata.category not in self.category:
            return False
        if self.source is not None and metadata.source not in self.source:
            return False
        if self.difficulty is not None and (metadata.difficulty or "") not in self.difficulty:
            return False
        if self.tags is not None and not set(self.tags) & set(metadata.tags):
            return False
        if self.date_range is not None and not self.date_range.contains(metadata.published_at):
            return False
        return True


class QueryContext(BaseModel):
    """Conversation context forwarded to expansion and planning prompts"""
    history: List[str] = Field(default_factory=list)
    intent: Optional[str] = None  # research | learning | problem_solving | exploration
    complexity: Optional[str] = None  # simple | medium | complex
    domain: Optional[str] = None


class AgenticConfig(BaseModel):
    """Constraints for an agentic run"""
    intent: str = "research"
    complexity: str = "medium"
    max_steps: int = Field(default=5, ge=1)
    time_limit: float = Field(default=30.0, gt=0)  # seconds
    max_expansion_rounds: int = Field(default=1, ge=0)
    enable_reasoning: bool = True
    language: Optional[str] = None


class QueryOptions(BaseModel):
    """Option flags"""
    top_k: int = Field(default=10, ge=1, le=100)
    threshold: float = Field(default=0.0, ge=0.0, le=1.0)  # minimum combined score
    rerank: bool = False
    include_metadata: bool = True
    mode: QueryMode = QueryMode.TRADITIONAL
    agentic: AgenticConfig = Field(default_factory=AgenticConfig)


class Query(BaseModel):
    """A retrieval request"""
    query: str = Field(..., min_length=1)
    user_id: Optional[str] = None
    context: QueryContext = Field(default_factory=QueryContext)
    filters: QueryFilters = Field(default_factory=QueryFilters)
    options: QueryOptions = Field(default_factory=QueryOptions)

    def cache_key(self) -> str:
        """Stable hash of (query text, filters, options)"""
        return stable_hash(
            self.model_dump(mode="json", include={"query", "filters", "options"})
        )

    def with_mode(self, mode: QueryMode) -> "Query":
        options = self.options.model_copy(update={"mode": mode})
        return self.model_copy(update={"options": options})
