"""Tests for the agentic state machine, driven by stub roles."""

import pytest

from ragent.agentic.orchestrator import (
    FAILURE_ANSWER,
    AgenticOrchestrator,
    quality_score,
)
from ragent.agentic.roles import AgentRole, Analysis, Plan, Synthesis, build_citations
from ragent.common.errors import RetrievalUnavailable
from ragent.common.schemas import (
    AgenticConfig,
    NextAction,
    Query,
    QueryMode,
    QueryOptions,
    RetrievedChunk,
    StepType,
)


def hit(chunk_id, document_id=None, score=0.8):
    document_id = document_id or chunk_id.split("#")[0]
    return RetrievedChunk(
        id=chunk_id,
        document_id=document_id,
        title=document_id.title(),
        source="stub",
        category="general",
        content=f"content of {chunk_id}",
        relevance_score=score,
    )


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


class StubPlanner(AgentRole):
    name = "stub-planner"

    def __init__(self, plan=None):
        self._plan = plan or Plan(strategy="multi-step retrieval", complexity=6)

    async def plan(self, query):
        return self._plan


class StubRetriever(AgentRole):
    name = "stub-retriever"

    def __init__(self, expansions=None, unavailable=(), clock=None, cost=0.0):
        self.expansions = expansions or []
        self.unavailable = set(unavailable)
        self.clock = clock
        self.cost = cost
        self.searches = []

    async def retrieve(self, text, top_k, threshold, filters=None):
        self.searches.append((text, top_k, threshold))
        if self.clock is not None:
            self.clock.now += self.cost
        if text in self.unavailable:
            raise RetrievalUnavailable()
        return [hit(f"{text}#0", document_id=text)]

    async def expand(self, query, results):
        return list(self.expansions)


class StubReasoner(AgentRole):
    name = "stub-reasoner"

    def __init__(self, analyses=None, error=None):
        self.analyses = list(analyses or [Analysis()])
        self.error = error
        self.analyzed = []
        self.synthesized = []

    async def analyze(self, query, results, language=None):
        if self.error is not None:
            raise self.error
        self.analyzed.append(list(results))
        return self.analyses.pop(0) if len(self.analyses) > 1 else self.analyses[0]

    async def synthesize(self, query, results, language=None):
        self.synthesized.append(list(results))
        return Synthesis(
            answer="stub answer [1]",
            confidence=0.9,
            reasoning="stub reasoning",
            citations=build_citations(results),
        )


NEEDS_MORE = Analysis(
    relevance_analysis="Missing details",
    confidence=0.5,
    needs_more_retrieval=True,
    suggested_refinements=["rag evaluation"],
)


def agentic_query(text="What is RAG?", **agentic):
    return Query(
        query=text,
        options=QueryOptions(mode=QueryMode.AGENTIC, agentic=AgenticConfig(**agentic)),
    )


def orchestrator(retriever=None, reasoner=None, planner=None, **kwargs):
    return AgenticOrchestrator(
        planner or StubPlanner(),
        retriever or StubRetriever(),
        reasoner or StubReasoner(),
        **kwargs,
    )


class TestHappyPath:
    @pytest.mark.asyncio
    async def test_sufficient_results_skip_expansion(self):
        retriever = StubRetriever(expansions=["unused"])
        result = await orchestrator(retriever=retriever).run(agentic_query())
        data = result.data

        assert [s.step_type for s in data.retrieval_steps] == [StepType.INITIAL_SEARCH, StepType.SYNTHESIS]
        assert data.retrieval_steps[-1].next_action == NextAction.CONCLUDE
        assert [d.decision for d in data.agent_decisions] == [
            "Use multi-step retrieval", "Results sufficient",
        ]
        assert data.agent_decisions[0].confidence == 0.9
        assert "plan: initial search -> verification -> answer generation" in data.agent_decisions[0].reasoning
        assert data.final_answer == "stub answer [1]"
        assert data.total_steps == 2
        assert not data.truncated
        assert retriever.searches == [("What is RAG?", 5, 0.3)]
        assert result.document_ids == ["What is RAG?"]
        assert not result.failed
        assert not result.degraded

    @pytest.mark.asyncio
    async def test_quality_score(self):
        result = await orchestrator().run(agentic_query())
        # initial 0.8 and synthesis 0.9 -> mean 0.85, averaged with 0.9
        assert result.data.quality_score == pytest.approx(0.875)

    def test_quality_score_without_steps(self):
        assert quality_score([], 0.4) == 0.4


class TestExpansion:
    @pytest.mark.asyncio
    async def test_one_expansion_round(self):
        """needs_more at 0.5 confidence runs exactly one expansion of at most two searches."""
        retriever = StubRetriever(expansions=["rag metrics", "rag pitfalls", "rag history"])
        reasoner = StubReasoner([NEEDS_MORE])

        result = await orchestrator(retriever, reasoner).run(agentic_query())
        steps = result.data.retrieval_steps

        assert [s.step_id for s in steps] == ["initial_search", "expansion_0", "expansion_1", "synthesis"]
        assert [s.query for s in steps[1:3]] == ["rag metrics", "rag pitfalls"]
        assert all(s.confidence == 0.7 for s in steps[1:3])
        assert retriever.searches[1:] == [("rag metrics", 3, 0.4), ("rag pitfalls", 3, 0.4)]
        assert len(reasoner.analyzed) == 1
        assert result.data.agent_decisions[1].decision == "More retrieval needed"
        assert result.related_queries == ["rag evaluation"]
        assert set(result.document_ids) == {"What is RAG?", "rag metrics", "rag pitfalls"}

    @pytest.mark.asyncio
    async def test_confident_analysis_does_not_expand(self):
        retriever = StubRetriever(expansions=["more"])
        analysis = Analysis(confidence=0.85, needs_more_retrieval=True)
        result = await orchestrator(retriever, StubReasoner([analysis])).run(agentic_query())
        assert result.data.total_steps == 2

    @pytest.mark.asyncio
    async def test_no_expansion_queries(self):
        result = await orchestrator(StubRetriever(), StubReasoner([NEEDS_MORE])).run(agentic_query())
        assert result.data.total_steps == 2
        assert not result.data.truncated

    @pytest.mark.asyncio
    async def test_multiple_rounds_reanalyze_between_rounds(self):
        retriever = StubRetriever(expansions=["a", "b"])
        reasoner = StubReasoner([NEEDS_MORE, NEEDS_MORE])

        result = await orchestrator(retriever, reasoner).run(
            agentic_query(max_expansion_rounds=2, max_steps=10)
        )

        assert [s.step_id for s in result.data.retrieval_steps] == [
            "initial_search", "expansion_0", "expansion_1", "expansion_2", "expansion_3", "synthesis",
        ]
        assert len(reasoner.analyzed) == 2
        assert len(result.data.agent_decisions) == 3

    @pytest.mark.asyncio
    async def test_expansion_results_deduplicated(self):
        retriever = StubRetriever(expansions=["What is RAG?", "other"])
        reasoner = StubReasoner([NEEDS_MORE])
        await orchestrator(retriever, reasoner).run(agentic_query())
        [gathered] = reasoner.synthesized
        assert [c.id for c in gathered] == ["What is RAG?#0", "other#0"]

    @pytest.mark.asyncio
    async def test_unavailable_expansion_records_empty_step(self):
        retriever = StubRetriever(expansions=["broken", "fine"], unavailable={"broken"})
        result = await orchestrator(retriever, StubReasoner([NEEDS_MORE])).run(agentic_query())
        broken = result.data.retrieval_steps[1]

        assert broken.query == "broken"
        assert broken.results == []
        assert result.degraded
        assert not result.failed


class TestBudgets:
    @pytest.mark.asyncio
    async def test_max_steps_limits_expansion(self):
        retriever = StubRetriever(expansions=["a", "b"])
        result = await orchestrator(retriever, StubReasoner([NEEDS_MORE])).run(agentic_query(max_steps=3))

        assert [s.step_id for s in result.data.retrieval_steps] == ["initial_search", "expansion_0", "synthesis"]

    @pytest.mark.asyncio
    async def test_no_slot_left_truncates(self):
        retriever = StubRetriever(expansions=["a", "b"])
        result = await orchestrator(retriever, StubReasoner([NEEDS_MORE])).run(agentic_query(max_steps=2))

        assert result.data.total_steps == 2
        assert result.data.truncated
        assert result.degraded
        assert result.data.final_answer == "stub answer [1]"

    @pytest.mark.asyncio
    async def test_max_steps_of_one_is_clamped_not_rejected(self):
        retriever = StubRetriever(expansions=["a"])
        result = await orchestrator(retriever, StubReasoner([NEEDS_MORE])).run(agentic_query(max_steps=1))

        assert [s.step_id for s in result.data.retrieval_steps] == ["initial_search", "synthesis"]
        assert result.data.truncated
        assert not result.failed

    @pytest.mark.asyncio
    async def test_constructor_default_max_steps(self):
        retriever = StubRetriever(expansions=["a", "b"])
        orch = orchestrator(retriever, StubReasoner([NEEDS_MORE]), max_steps=3)
        result = await orch.run(agentic_query())
        assert result.data.total_steps == 3

    @pytest.mark.asyncio
    async def test_time_limit_truncates_before_analysis(self):
        clock = FakeClock()
        retriever = StubRetriever(expansions=["a"], clock=clock, cost=10.0)
        reasoner = StubReasoner([NEEDS_MORE])
        orch = orchestrator(retriever, reasoner, clock=clock)

        result = await orch.run(agentic_query(time_limit=5.0))

        assert [s.step_type for s in result.data.retrieval_steps] == [StepType.INITIAL_SEARCH, StepType.SYNTHESIS]
        assert result.data.truncated
        assert reasoner.analyzed == []
        assert len(result.data.agent_decisions) == 1


class TestFailures:
    @pytest.mark.asyncio
    async def test_initial_search_unavailable_fails_run(self):
        retriever = StubRetriever(unavailable={"What is RAG?"})
        result = await orchestrator(retriever).run(agentic_query())

        assert result.failed
        assert result.confidence == 0.1
        assert result.data.final_answer == FAILURE_ANSWER
        assert result.data.quality_score == 0.1
        assert result.data.citations == []

    @pytest.mark.asyncio
    async def test_unexpected_role_error_fails_run(self):
        reasoner = StubReasoner(error=ValueError("bad state"))
        result = await orchestrator(reasoner=reasoner).run(agentic_query())

        assert result.failed
        assert "bad state" in result.reasoning
        # the initial search that did complete is kept as provenance
        assert result.data.retrieval_steps[0].step_type == StepType.INITIAL_SEARCH


class TestPlanDecision:
    @pytest.mark.asyncio
    async def test_plan_steps_and_key_terms_recorded(self):
        plan = Plan(
            strategy="comparative retrieval",
            steps=["find definitions", "compare approaches"],
            complexity=8,
            estimated_steps=4,
            key_terms=["RAG", "fine-tuning"],
        )
        result = await orchestrator(planner=StubPlanner(plan)).run(agentic_query())
        decision = result.data.agent_decisions[0]

        assert decision.decision == "Use comparative retrieval"
        assert decision.reasoning == (
            "Based on query complexity 8 and an estimated 4 steps"
            "; plan: find definitions -> compare approaches"
            "; key terms: RAG, fine-tuning"
        )

    @pytest.mark.asyncio
    async def test_empty_plan_details_omitted(self):
        plan = Plan(steps=[], key_terms=[])
        result = await orchestrator(planner=StubPlanner(plan)).run(agentic_query())
        assert result.data.agent_decisions[0].reasoning == (
            "Based on query complexity 5 and an estimated 3 steps"
        )
