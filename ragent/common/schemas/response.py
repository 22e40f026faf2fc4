"""
Response Schemas

Traditional mode returns ranked Documents; agentic mode additionally carries
the synthesized answer with its full provenance (retrieval steps, agent
decisions, citations).
"""

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from ..llm_utils import clamp
from .document import Document
from .query import QueryMode


class StepType(str, Enum):
    """Kind of agentic retrieval step"""
    INITIAL_SEARCH = "initial_search"
    REFINEMENT = "refinement"
    VERIFICATION = "verification"
    EXPANSION = "expansion"
    SYNTHESIS = "synthesis"


class NextAction(str, Enum):
    """Hint recorded with each step about what follows"""
    CONTINUE = "continue"
    REFINE = "refine"
    EXPAND = "expand"
    CONCLUDE = "conclude"


class RetrievedChunk(BaseModel):
    """A chunk-level hit produced by the agentic Retriever role"""
    id: str
    document_id: str
    title: str
    source: str
    category: str
    content: str
    relevance_score: float
    url: Optional[str] = None
    author: Optional[str] = None
    published_at: Optional[datetime] = None


class RetrievalStep(BaseModel):
    """One recorded iteration of an agentic run"""
    step_id: str
    step_type: StepType
    query: str
    reasoning: str
    results: List[RetrievedChunk] = Field(default_factory=list)
    confidence: float
    next_action: NextAction

    @field_validator("confidence")
    @classmethod
    def clamp_confidence(cls, value: float) -> float:
        return clamp(value)


class AgentDecision(BaseModel):
    """Which alternative the orchestrator chose at a given step"""
    step: int
    decision: str
    reasoning: str
    alternatives: List[str] = Field(default_factory=list)
    confidence: float

    @field_validator("confidence")
    @classmethod
    def clamp_confidence(cls, value: float) -> float:
        return clamp(value)


class SourceCitation(BaseModel):
    """A contributing document, cited as ``[n] title``"""
    id: str
    title: str
    url: Optional[str] = None
    author: Optional[str] = None
    published_at: Optional[datetime] = None
    relevance_score: float = 0.0
    citation_text: str


class AgenticData(BaseModel):
    """Agentic-mode provenance"""
    final_answer: str
    retrieval_steps: List[RetrievalStep] = Field(default_factory=list)
    agent_decisions: List[AgentDecision] = Field(default_factory=list)
    citations: List[SourceCitation] = Field(default_factory=list)
    quality_score: float = 0.0
    total_steps: int = 0
    truncated: bool = False


class Response(BaseModel):
    """Result of a search in either mode"""
    results: List[Document] = Field(default_factory=list)
    query: str
    total_results: int = 0
    processing_time: float = 0.0  # seconds
    confidence: float = 0.0
    explanation: str = ""
    related_queries: List[str] = Field(default_factory=list)
    sources: List[str] = Field(default_factory=list)
    mode: QueryMode = QueryMode.TRADITIONAL
    degraded: bool = False
    agentic: Optional[AgenticData] = None

    @field_validator("confidence")
    @classmethod
    def clamp_confidence(cls, value: float) -> float:
        return clamp(value)
