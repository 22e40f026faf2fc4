"""
Reranker

Reorders search candidates by asking the Language Model Service for a
relevance ranking against the original query. A rerank is a permutation: it
never drops or duplicates a candidate, whatever the model returns.
"""

import logging
from typing import List

from ..common.errors import ServiceUnavailable
from ..common.llm_utils import parse_llm_list
from ..store.vector_store import ScoredDocument

logger = logging.getLogger("ragent.retriever.reranker")

# Characters of each candidate shown to the model
PREVIEW_CHARS = 200


RERANK_PROMPT = """You are a content relevance expert. Rank the documents below by relevance to the query.

Query: {query}

Documents:
{documents}

Respond with a JSON array of document ids ordered from most to least relevant, e.g. ["id1", "id2"]

JSON:"""


def apply_ranking(candidates: List[ScoredDocument], ranked_ids: List) -> List[ScoredDocument]:
    """
    Reorder ``candidates`` by ``ranked_ids``.

    Unknown and repeated ids are ignored; candidates the ranking omits are
    appended in their original relative order.
    """
    by_id = {c.document.id: c for c in candidates}
    reordered = []
    seen = set()
    for doc_id in ranked_ids:
        if not isinstance(doc_id, str) or doc_id in seen or doc_id not in by_id:
            continue
        seen.add(doc_id)
        reordered.append(by_id[doc_id])

    reordered.extend(c for c in candidates if c.document.id not in seen)
    return reordered


class Reranker:
    """LLM relevance reranking with pass-through on failure."""

    def __init__(self, llm_client):
        self._llm = llm_client

    async def rerank(self, query: str, candidates: List[ScoredDocument]) -> List[ScoredDocument]:
        if len(candidates) < 2:
            return list(candidates)

        documents = "\n\n".join(
            f"{i + 1}. [id: {c.document.id}] {c.document.metadata.title}\n"
            f"Preview: {c.document.content[:PREVIEW_CHARS]}..."
            for i, c in enumerate(candidates)
        )
        try:
            raw = await self._llm.acomplete(
                RERANK_PROMPT.format(query=query, documents=documents),
                temperature=0.2,
            )
        except ServiceUnavailable as e:
            logger.warning("Rerank failed, keeping similarity order: %s", e)
            return list(candidates)

        return apply_ranking(candidates, parse_llm_list(raw))
