"""
Agentic Orchestrator

Drives the Planner, Retriever and Reasoner roles through

    PLAN -> INITIAL_SEARCH -> ANALYZE -> (EXPAND -> [ANALYZE])* -> SYNTHESIZE -> DONE

recording a RetrievalStep per search/synthesis and an AgentDecision per
judgement. The run always terminates: the number of recorded steps never
exceeds ``max_steps`` (a slot is always kept for synthesis) and the time
limit is checked between steps. Hitting either budget truncates the run and
synthesizes from what was gathered.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import List, Optional

from ..common.errors import OrchestratorAborted, RetrievalUnavailable
from ..common.language import LanguageInfo, resolve_language
from ..common.llm_utils import clamp
from ..common.schemas import (
    AgentDecision,
    AgenticData,
    NextAction,
    Query,
    RetrievalStep,
    RetrievedChunk,
    StepType,
)
from .roles import AgentRole, Analysis, Synthesis

logger = logging.getLogger("ragent.agentic.orchestrator")

INITIAL_TOP_K = 5
INITIAL_THRESHOLD = 0.3
INITIAL_CONFIDENCE = 0.8

EXPANSION_TOP_K = 3
EXPANSION_THRESHOLD = 0.4
EXPANSION_CONFIDENCE = 0.7
MAX_EXPANSIONS_PER_ROUND = 2

# Analysis confidence at or above this ends retrieval
SUFFICIENT_CONFIDENCE = 0.8

PLAN_ALTERNATIVES = ["simple retrieval", "multi-step retrieval", "verification retrieval"]
ANALYSIS_ALTERNATIVES = ["continue retrieval", "expand query", "end retrieval"]

FAILURE_ANSWER = "Sorry, an error occurred while processing the query."
FAILURE_CONFIDENCE = 0.1


@dataclass
class AgenticResult:
    """Outcome of one agentic run"""
    data: AgenticData
    confidence: float
    reasoning: str
    related_queries: List[str] = field(default_factory=list)
    processing_time: float = 0.0
    degraded: bool = False
    failed: bool = False  # unrecoverable fault; data holds only partial provenance

    @property
    def document_ids(self) -> List[str]:
        return [c.id for c in self.data.citations]


def quality_score(steps: List[RetrievalStep], final_confidence: float) -> float:
    """Mean step confidence averaged with the synthesis confidence."""
    if not steps:
        return clamp(final_confidence)
    mean = sum(s.confidence for s in steps) / len(steps)
    return clamp((mean + final_confidence) / 2)


class _Run:
    """Mutable state of a single orchestrated run"""

    def __init__(self, query: Query, max_steps: int, time_limit: float, clock):
        self.query = query
        self.max_steps = max_steps
        self.clock = clock
        self.deadline = clock() + time_limit
        self.steps: List[RetrievalStep] = []
        self.decisions: List[AgentDecision] = []
        self.results: List[RetrievedChunk] = []
        self.truncated = False
        self.degraded = False
        self.last_analysis: Optional[Analysis] = None

    @property
    def search_slots(self) -> int:
        """Search steps still allowed; one slot is reserved for synthesis."""
        return max(0, self.max_steps - 1 - len(self.steps))

    def check_deadline(self, next_state: str) -> None:
        if self.clock() > self.deadline:
            raise OrchestratorAborted(f"time limit reached before {next_state}")

    def gather(self, chunks: List[RetrievedChunk]) -> None:
        seen = {c.id for c in self.results}
        self.results.extend(c for c in chunks if c.id not in seen)


class AgenticOrchestrator:
    """State machine over Planner / Retriever / Reasoner roles."""

    def __init__(
        self,
        planner: AgentRole,
        retriever: AgentRole,
        reasoner: AgentRole,
        max_steps: int = 5,
        time_limit: float = 30.0,
        max_expansion_rounds: int = 1,
        clock=time.monotonic,
    ):
        """
        Args:
            planner / retriever / reasoner: Role implementations
            max_steps: Default cap on recorded retrieval steps
            time_limit: Default wall-clock budget in seconds
            max_expansion_rounds: Default number of EXPAND rounds
            clock: Monotonic time source (tests)
        """
        self._planner = planner
        self._retriever = retriever
        self._reasoner = reasoner
        self._max_steps = max_steps
        self._time_limit = time_limit
        self._max_expansion_rounds = max_expansion_rounds
        self._clock = clock

    async def run(self, query: Query) -> AgenticResult:
        """Run the state machine; never raises for role or service failures."""
        start = self._clock()
        agentic = query.options.agentic
        fields_set = agentic.model_fields_set
        max_steps = agentic.max_steps if "max_steps" in fields_set else self._max_steps
        time_limit = agentic.time_limit if "time_limit" in fields_set else self._time_limit
        rounds = (
            agentic.max_expansion_rounds if "max_expansion_rounds" in fields_set
            else self._max_expansion_rounds
        )
        run = _Run(query, max(2, max_steps), time_limit, self._clock)
        language = resolve_language(query.query, agentic.language)

        logger.info("Agentic run started: %r (max_steps=%d, time_limit=%.1fs)",
                    query.query, run.max_steps, time_limit)

        try:
            try:
                await self._plan(run)
                await self._initial_search(run)
                await self._analyze(run, language, decision_step=2)
                await self._expand_rounds(run, language, rounds)
            except OrchestratorAborted as e:
                logger.warning("Agentic run truncated: %s", e.reason)
                run.truncated = True
            synthesis = await self._synthesize(run, language)
        except Exception as e:
            logger.error("Agentic run failed: %s", e, exc_info=not isinstance(e, RetrievalUnavailable))
            return self._failure(run, e, self._clock() - start)

        data = AgenticData(
            final_answer=synthesis.answer,
            retrieval_steps=run.steps,
            agent_decisions=run.decisions,
            citations=synthesis.citations,
            quality_score=quality_score(run.steps, synthesis.confidence),
            total_steps=len(run.steps),
            truncated=run.truncated,
        )
        refinements = run.last_analysis.suggested_refinements if run.last_analysis else []
        logger.info("Agentic run finished: %d steps, quality %.2f", data.total_steps, data.quality_score)
        return AgenticResult(
            data=data,
            confidence=clamp(synthesis.confidence),
            reasoning=synthesis.reasoning,
            related_queries=list(refinements),
            processing_time=self._clock() - start,
            degraded=run.degraded or run.truncated or synthesis.fallback,
        )

    # ------------------------------------------------------------------
    # States
    # ------------------------------------------------------------------

    async def _plan(self, run: _Run) -> None:
        plan = await self._planner.plan(run.query)
        reasoning = (
            f"Based on query complexity {plan.complexity} "
            f"and an estimated {plan.estimated_steps} steps"
        )
        if plan.steps:
            reasoning += f"; plan: {' -> '.join(plan.steps)}"
        if plan.key_terms:
            reasoning += f"; key terms: {', '.join(plan.key_terms)}"
        run.decisions.append(AgentDecision(
            step=1,
            decision=f"Use {plan.strategy}",
            reasoning=reasoning,
            alternatives=list(PLAN_ALTERNATIVES),
            confidence=0.9,
        ))

    async def _initial_search(self, run: _Run) -> None:
        run.check_deadline("initial search")
        results = await self._retriever.retrieve(
            run.query.query, INITIAL_TOP_K, INITIAL_THRESHOLD, run.query.filters,
        )
        run.steps.append(RetrievalStep(
            step_id="initial_search",
            step_type=StepType.INITIAL_SEARCH,
            query=run.query.query,
            reasoning="Initial semantic search with the original query",
            results=results,
            confidence=INITIAL_CONFIDENCE,
            next_action=NextAction.CONTINUE,
        ))
        run.gather(results)

    async def _analyze(self, run: _Run, language: LanguageInfo, decision_step: int) -> Analysis:
        run.check_deadline("analysis")
        analysis = await self._reasoner.analyze(run.query.query, run.results, language)
        run.last_analysis = analysis
        run.degraded = run.degraded or analysis.fallback
        run.decisions.append(AgentDecision(
            step=decision_step,
            decision="More retrieval needed" if analysis.needs_more_retrieval else "Results sufficient",
            reasoning=analysis.relevance_analysis,
            alternatives=list(ANALYSIS_ALTERNATIVES),
            confidence=analysis.confidence,
        ))
        return analysis

    async def _expand_rounds(self, run: _Run, language: LanguageInfo, rounds: int) -> None:
        expansion_index = 0
        for round_no in range(rounds):
            analysis = run.last_analysis
            if not (analysis.needs_more_retrieval and analysis.confidence < SUFFICIENT_CONFIDENCE):
                return

            if run.search_slots == 0:
                raise OrchestratorAborted("step budget exhausted before expansion")

            run.check_deadline("expansion")
            queries = await self._retriever.expand(run.query.query, run.results)
            queries = queries[:min(MAX_EXPANSIONS_PER_ROUND, run.search_slots)]
            if not queries:
                logger.info("No expansion queries produced, moving to synthesis")
                return

            # Independent searches; the analysis above has already completed
            outcomes = await asyncio.gather(
                *(self._expansion_search(run, q) for q in queries)
            )
            for q, results in zip(queries, outcomes):
                run.steps.append(RetrievalStep(
                    step_id=f"expansion_{expansion_index}",
                    step_type=StepType.EXPANSION,
                    query=q,
                    reasoning=(
                        "Expanded search to fill information gaps" if results is not None
                        else "Expanded search skipped: query embedding unavailable"
                    ),
                    results=results or [],
                    confidence=EXPANSION_CONFIDENCE,
                    next_action=NextAction.CONTINUE,
                ))
                run.gather(results or [])
                expansion_index += 1

            if round_no + 1 < rounds:
                await self._analyze(run, language, decision_step=len(run.decisions) + 1)

    async def _expansion_search(self, run: _Run, text: str) -> Optional[List[RetrievedChunk]]:
        try:
            return await self._retriever.retrieve(
                text, EXPANSION_TOP_K, EXPANSION_THRESHOLD, run.query.filters,
            )
        except RetrievalUnavailable:
            logger.warning("Expansion search unavailable for %r", text)
            run.degraded = True
            return None

    async def _synthesize(self, run: _Run, language: LanguageInfo) -> Synthesis:
        synthesis = await self._reasoner.synthesize(run.query.query, run.results, language)
        run.steps.append(RetrievalStep(
            step_id="synthesis",
            step_type=StepType.SYNTHESIS,
            query=run.query.query,
            reasoning="Synthesized the final answer from all retrieved results",
            results=[],
            confidence=synthesis.confidence,
            next_action=NextAction.CONCLUDE,
        ))
        return synthesis

    def _failure(self, run: _Run, error: Exception, elapsed: float) -> AgenticResult:
        data = AgenticData(
            final_answer=FAILURE_ANSWER,
            retrieval_steps=run.steps,
            agent_decisions=run.decisions,
            citations=[],
            quality_score=FAILURE_CONFIDENCE,
            total_steps=len(run.steps),
            truncated=True,
        )
        return AgenticResult(
            data=data,
            confidence=FAILURE_CONFIDENCE,
            reasoning=f"The query could not be completed: {error}",
            processing_time=elapsed,
            degraded=True,
            failed=True,
        )
