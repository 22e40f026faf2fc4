"""
Explainer

Best-effort natural-language extras for a traditional search response:
a one-sentence explanation of why the results match, and 3-5 related
queries. Neither ever fails a search; generic defaults stand in when the
Language Model Service does not answer.
"""

import logging
from typing import List, Optional

from ..common.errors import ServiceUnavailable
from ..common.language import LanguageInfo, language_instruction
from ..common.llm_utils import coerce_str_list, parse_llm_list
from ..common.schemas import Document

logger = logging.getLogger("ragent.retriever.explainer")

MAX_RELATED_QUERIES = 5


EXPLANATION_PROMPT = """Write a one-sentence explanation of why these search results match the query.

{language_instruction}

Query: {query}
Result count: {count}
Main sources: {sources}

Explanation:"""


RELATED_PROMPT = """Suggest 3-5 related search queries for "{query}".

{language_instruction}

Requirements:
1. Related to the original query but from a different angle
2. Plausible follow-up questions from the user
3. Cover neighbouring topics

Respond with a JSON array of strings only, e.g. ["query 1", "query 2"]

JSON:"""


# Fallback explanations per language
DEFAULT_EXPLANATIONS = {
    "en": "Results ranked by semantic similarity to the query.",
    "zh": "基于语义相似度匹配的相关内容。",
    "ko": "쿼리와의 의미적 유사도에 따라 정렬된 결과입니다.",
    "ja": "クエリとの意味的類似度で並べた結果です。",
}

NO_RESULTS_EXPLANATION = "No documents matched the query."


def default_explanation(language: Optional[LanguageInfo] = None) -> str:
    code = language.code.split("-")[0] if language else "en"
    return DEFAULT_EXPLANATIONS.get(code, DEFAULT_EXPLANATIONS["en"])


class Explainer:
    """Generates explanations and related-query suggestions."""

    def __init__(self, llm_client):
        self._llm = llm_client

    async def explain(
        self,
        query: str,
        results: List[Document],
        language: Optional[LanguageInfo] = None,
    ) -> str:
        if not results:
            return NO_RESULTS_EXPLANATION

        sources = list(dict.fromkeys(d.metadata.source for d in results[:3]))
        prompt = EXPLANATION_PROMPT.format(
            language_instruction=language_instruction(language or LanguageInfo("en", 1.0)),
            query=query,
            count=len(results),
            sources=", ".join(sources),
        )
        try:
            text = await self._llm.acomplete(prompt, temperature=0.3)
        except ServiceUnavailable as e:
            logger.warning("Explanation generation failed: %s", e)
            return default_explanation(language)

        return text.strip() or default_explanation(language)

    async def related_queries(
        self,
        query: str,
        language: Optional[LanguageInfo] = None,
    ) -> Optional[List[str]]:
        """Model suggestions, or None when the model gave nothing usable."""
        prompt = RELATED_PROMPT.format(
            language_instruction=language_instruction(language or LanguageInfo("en", 1.0)),
            query=query,
        )
        try:
            raw = await self._llm.acomplete(prompt, temperature=0.5)
        except ServiceUnavailable as e:
            logger.warning("Related query generation failed: %s", e)
            return None

        related = [q for q in coerce_str_list(parse_llm_list(raw)) if q.lower() != query.lower()]
        return list(dict.fromkeys(related))[:MAX_RELATED_QUERIES] or None
