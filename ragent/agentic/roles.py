"""
Agent Roles

Planner, Retriever and Reasoner: prompt-driven strategy objects behind one
AgentRole interface. Each role talks to the Language Model Service through
the shared client and treats every response as untrusted text, so each
operation has a deterministic fallback value instead of an error path.

The only failure a role lets escape is RetrievalUnavailable from the
Retriever, since a search over a fallback query vector would be noise.
"""

import logging
from abc import ABC
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from ..common.embedding_gateway import EmbeddingGateway
from ..common.errors import RetrievalUnavailable, ServiceUnavailable
from ..common.language import LanguageInfo, language_instruction
from ..common.llm_utils import clamp, coerce_float, coerce_str_list, parse_llm_json, parse_llm_list
from ..common.schemas import Query, QueryFilters, RetrievedChunk, SourceCitation
from ..store.vector_store import VectorStore

logger = logging.getLogger("ragent.agentic.roles")

# Characters of each result shown to the Reasoner
RESULT_PREVIEW_CHARS = 800

_ENGLISH = LanguageInfo(code="en", confidence=1.0)


# ============================================================================
# Role outputs
# ============================================================================

@dataclass
class Plan:
    """Planner output"""
    strategy: str = "standard retrieval"
    steps: List[str] = field(
        default_factory=lambda: ["initial search", "verification", "answer generation"]
    )
    complexity: int = 5
    estimated_steps: int = 3
    key_terms: List[str] = field(default_factory=list)
    fallback: bool = False


@dataclass
class Analysis:
    """Reasoner sufficiency analysis"""
    relevance_analysis: str = "Results look relevant"
    gaps: List[str] = field(default_factory=list)
    confidence: float = 0.7
    needs_more_retrieval: bool = False
    suggested_refinements: List[str] = field(default_factory=list)
    fallback: bool = False


@dataclass
class Synthesis:
    """Reasoner final answer"""
    answer: str
    confidence: float
    reasoning: str
    citations: List[SourceCitation] = field(default_factory=list)
    fallback: bool = False


# ============================================================================
# Interface
# ============================================================================

class AgentRole(ABC):
    """
    Capability interface shared by every role.

    A role implements the operations it is responsible for; calling any
    other operation is a wiring error.
    """

    name = "agent"

    async def plan(self, query: Query) -> Plan:
        raise NotImplementedError(f"{self.name} does not plan")

    async def retrieve(
        self,
        text: str,
        top_k: int,
        threshold: float,
        filters: Optional[QueryFilters] = None,
    ) -> List[RetrievedChunk]:
        raise NotImplementedError(f"{self.name} does not retrieve")

    async def expand(self, query: str, results: Sequence[RetrievedChunk]) -> List[str]:
        raise NotImplementedError(f"{self.name} does not expand queries")

    async def analyze(
        self,
        query: str,
        results: Sequence[RetrievedChunk],
        language: Optional[LanguageInfo] = None,
    ) -> Analysis:
        raise NotImplementedError(f"{self.name} does not analyze")

    async def synthesize(
        self,
        query: str,
        results: Sequence[RetrievedChunk],
        language: Optional[LanguageInfo] = None,
    ) -> Synthesis:
        raise NotImplementedError(f"{self.name} does not synthesize")


# ============================================================================
# Planner
# ============================================================================

PLAN_PROMPT = """You are a query planning expert. Design a retrieval strategy for the query below.

Query: {query}
User intent: {intent}
Complexity: {complexity}
Domain: {domain}
Conversation so far: {history}

Analyze the query:
1. Identify the query type (fact lookup, concept explanation, comparison, problem solving, ...)
2. Plan the retrieval steps (initial search, refinement, verification, expansion, ...)
3. Rate its complexity from 1 to 10
4. Estimate the number of steps needed

Respond with a JSON object only:
{{
    "strategy": "strategy description",
    "steps": ["step 1", "step 2", "step 3"],
    "expected_complexity": 7,
    "estimated_steps": 3,
    "key_terms": ["term1", "term2"]
}}

JSON:"""


class Planner(AgentRole):
    """Proposes a retrieval strategy; always returns a plan."""

    name = "planner"

    def __init__(self, llm_client):
        self._llm = llm_client

    async def plan(self, query: Query) -> Plan:
        agentic = query.options.agentic
        context = query.context
        prompt = PLAN_PROMPT.format(
            query=query.query,
            intent=context.intent or agentic.intent,
            complexity=context.complexity or agentic.complexity,
            domain=context.domain or "general",
            history=" | ".join(context.history[-5:]) or "none",
        )
        try:
            raw = await self._llm.acomplete(prompt, temperature=0.3)
        except ServiceUnavailable as e:
            logger.warning("Planning failed, using default plan: %s", e)
            return Plan(fallback=True)

        data = parse_llm_json(raw)
        if not data:
            logger.warning("Planner returned no usable plan, using default plan")
            return Plan(fallback=True)

        default = Plan()
        strategy = data.get("strategy")
        complexity = coerce_float(data.get("expected_complexity", data.get("expectedComplexity")), 5)
        estimated = coerce_float(data.get("estimated_steps", data.get("estimatedSteps")), 3)
        return Plan(
            strategy=strategy.strip() if isinstance(strategy, str) and strategy.strip() else default.strategy,
            steps=coerce_str_list(data.get("steps"), limit=10) or default.steps,
            complexity=int(max(1, min(10, round(complexity)))),
            estimated_steps=int(max(1, round(estimated))),
            key_terms=coerce_str_list(data.get("key_terms", data.get("keyTerms")), limit=10),
        )


# ============================================================================
# Retriever
# ============================================================================

EXPANSION_PROMPT = """Based on the retrieved content below, generate follow-up search queries that would gather more complete information.

Original query: {query}

Retrieved content:
{content}

Generate 2-3 queries covering:
1. Deeper technical detail
2. Related applications and examples
3. Recent developments

Respond with a JSON array of strings only, e.g. ["query 1", "query 2"]

JSON:"""


class Retriever(AgentRole):
    """Chunk-level similarity search plus expansion-query generation."""

    name = "retriever"

    def __init__(self, llm_client, gateway: EmbeddingGateway, store: VectorStore):
        self._llm = llm_client
        self._gateway = gateway
        self._store = store

    async def retrieve(
        self,
        text: str,
        top_k: int,
        threshold: float,
        filters: Optional[QueryFilters] = None,
    ) -> List[RetrievedChunk]:
        """
        Raises:
            RetrievalUnavailable: the query text could not be embedded
        """
        embedding = await self._gateway.embed(text)
        if embedding.degraded:
            raise RetrievalUnavailable()
        active = filters if filters is not None and filters.is_active else None
        return self._store.search_chunks(
            embedding.vector, top_k=top_k, threshold=threshold, filters=active,
        )

    async def expand(self, query: str, results: Sequence[RetrievedChunk]) -> List[str]:
        """Up to three follow-up queries; [] on any failure."""
        content = "\n\n".join(r.content for r in list(results)[:3]) or "(no results)"
        try:
            raw = await self._llm.acomplete(
                EXPANSION_PROMPT.format(query=query, content=content),
                temperature=0.4,
            )
        except ServiceUnavailable as e:
            logger.warning("Expansion query generation failed: %s", e)
            return []

        queries = [q for q in coerce_str_list(parse_llm_list(raw)) if q.lower() != query.lower()]
        return list(dict.fromkeys(queries))[:3]


# ============================================================================
# Reasoner
# ============================================================================

ANALYSIS_PROMPT = """You are a reasoning analyst. Assess the quality and completeness of these retrieval results.

Query: {query}

Results:
{results}

Assess:
1. Relevance and quality of the results
2. Information gaps
3. Confidence that the results answer the query (0-1)
4. Whether more retrieval is needed
5. Suggested refinements

Respond with a JSON object only:
{{
    "relevance_analysis": "analysis",
    "gaps_identified": ["gap 1"],
    "confidence_score": 0.85,
    "needs_more_retrieval": false,
    "suggested_refinements": ["refinement 1"]
}}

JSON:"""


SYNTHESIS_PROMPT = """Answer the user's query using only the retrieved information below.

{language_instruction}

Query: {query}

Retrieved information:
{results}

Requirements:
1. Be accurate and complete; do not invent facts
2. Cite sources by their bracketed number, e.g. [1]
3. Explain your reasoning
4. Rate your confidence in the answer (0-1)

Respond with a JSON object only:
{{
    "answer": "detailed answer",
    "confidence": 0.9,
    "reasoning": "how the answer was derived",
    "limitations": "known limitations"
}}

JSON:"""


NO_RESULTS_ANSWER = "No relevant documents were found for this query."


def build_citations(results: Sequence[RetrievedChunk]) -> List[SourceCitation]:
    """One citation per contributing document, numbered in retrieval order."""
    citations = []
    seen = set()
    for result in results:
        if result.document_id in seen:
            continue
        seen.add(result.document_id)
        n = len(citations) + 1
        citations.append(SourceCitation(
            id=result.document_id,
            title=result.title,
            url=result.url,
            author=result.author,
            published_at=result.published_at,
            relevance_score=result.relevance_score,
            citation_text=f"[{n}] {result.title}",
        ))
    return citations


def _format_results(results: Sequence[RetrievedChunk], numbered_by_document: bool = False) -> str:
    numbers = {}
    lines = []
    for i, r in enumerate(results):
        if numbered_by_document:
            n = numbers.setdefault(r.document_id, len(numbers) + 1)
        else:
            n = i + 1
        lines.append(
            f"[{n}] {r.title} (relevance: {r.relevance_score:.2f})\n{r.content[:RESULT_PREVIEW_CHARS]}"
        )
    return "\n\n".join(lines)


class Reasoner(AgentRole):
    """Judges sufficiency of gathered results and writes the final answer."""

    name = "reasoner"

    def __init__(self, llm_client):
        self._llm = llm_client

    async def analyze(
        self,
        query: str,
        results: Sequence[RetrievedChunk],
        language: Optional[LanguageInfo] = None,
    ) -> Analysis:
        if not results:
            return Analysis(
                relevance_analysis="No results were retrieved",
                gaps=["no matching documents"],
                confidence=0.2,
                needs_more_retrieval=True,
            )

        try:
            raw = await self._llm.acomplete(
                ANALYSIS_PROMPT.format(query=query, results=_format_results(results)),
                temperature=0.3,
            )
        except ServiceUnavailable as e:
            logger.warning("Result analysis failed: %s", e)
            return Analysis(relevance_analysis="Analysis unavailable", confidence=0.5, fallback=True)

        data = parse_llm_json(raw)
        analysis_text = data.get("relevance_analysis", data.get("relevanceAnalysis"))
        needs_more = data.get("needs_more_retrieval", data.get("needsMoreRetrieval"))
        return Analysis(
            relevance_analysis=(
                analysis_text if isinstance(analysis_text, str) and analysis_text.strip()
                else Analysis.relevance_analysis
            ),
            gaps=coerce_str_list(data.get("gaps_identified", data.get("gapsIdentified")), limit=10),
            confidence=clamp(coerce_float(
                data.get("confidence_score", data.get("confidenceScore")), 0.7
            )),
            needs_more_retrieval=needs_more if isinstance(needs_more, bool) else False,
            suggested_refinements=coerce_str_list(
                data.get("suggested_refinements", data.get("suggestedRefinements")), limit=5
            ),
            fallback=not data,
        )

    async def synthesize(
        self,
        query: str,
        results: Sequence[RetrievedChunk],
        language: Optional[LanguageInfo] = None,
    ) -> Synthesis:
        citations = build_citations(results)
        if not results:
            return Synthesis(
                answer=NO_RESULTS_ANSWER,
                confidence=0.3,
                reasoning="Nothing was retrieved, so there is no material to answer from",
            )

        prompt = SYNTHESIS_PROMPT.format(
            language_instruction=language_instruction(language or _ENGLISH),
            query=query,
            results=_format_results(results, numbered_by_document=True),
        )
        try:
            raw = await self._llm.acomplete(prompt, temperature=0.4, max_tokens=2048)
        except ServiceUnavailable as e:
            logger.warning("Answer synthesis failed, listing sources instead: %s", e)
            return self._listing(query, results, citations)

        data = parse_llm_json(raw)
        answer = data.get("answer")
        if not isinstance(answer, str) or not answer.strip():
            logger.warning("Synthesis returned no answer, listing sources instead")
            return self._listing(query, results, citations)

        reasoning = data.get("reasoning")
        return Synthesis(
            answer=answer.strip(),
            confidence=clamp(coerce_float(data.get("confidence"), 0.5)),
            reasoning=(
                reasoning.strip() if isinstance(reasoning, str) and reasoning.strip()
                else "Combined analysis of the retrieved results"
            ),
            citations=citations,
        )

    @staticmethod
    def _listing(
        query: str,
        results: Sequence[RetrievedChunk],
        citations: List[SourceCitation],
    ) -> Synthesis:
        """Direct listing of what was found, for when the model cannot answer."""
        lines = [f'Found {len(citations)} relevant document(s) for "{query}":', ""]
        for citation in citations:
            lines.append(f"- {citation.citation_text}")
        return Synthesis(
            answer="\n".join(lines),
            confidence=0.3,
            reasoning="Answer synthesis unavailable; listing retrieved sources without synthesis",
            citations=citations,
            fallback=True,
        )
