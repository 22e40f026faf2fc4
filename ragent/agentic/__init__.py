"""
Agentic - Planner / Retriever / Reasoner orchestration

The orchestrator runs PLAN -> INITIAL_SEARCH -> ANALYZE -> (EXPAND)* ->
SYNTHESIZE and records every step and decision for provenance.
"""

from .orchestrator import AgenticOrchestrator, AgenticResult
from .roles import AgentRole, Analysis, Plan, Planner, Reasoner, Retriever, Synthesis

__all__ = [
    "AgenticOrchestrator",
    "AgenticResult",
    "AgentRole",
    "Analysis",
    "Plan",
    "Planner",
    "Reasoner",
    "Retriever",
    "Synthesis",
]
