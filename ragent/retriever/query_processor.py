"""
Query Processor

Normalizes user queries and rewrites them for semantic search.
The rewrite keeps the original meaning, adds synonyms and domain terms, and
takes conversation context into account. When the Language Model Service is
unavailable the original text is searched as-is.
"""

import json
import logging
import re
from dataclasses import dataclass, field
from typing import List, Optional

from ..common.errors import ServiceUnavailable
from ..common.language import LanguageInfo, resolve_language
from ..common.schemas import Query, QueryContext

logger = logging.getLogger("ragent.retriever.query_processor")

# Expansions longer than this are treated as a model misfire
MAX_EXPANSION_CHARS = 1000


@dataclass
class ParsedQuery:
    """Parsed representation of a user query"""
    original: str
    cleaned: str
    expanded: str
    keywords: List[str] = field(default_factory=list)
    entities: List[str] = field(default_factory=list)
    language: Optional[LanguageInfo] = None
    rewritten: bool = False  # expanded text came from the model


class QueryProcessor:
    """
    Processes user queries for semantic search.

    Responsibilities:
    1. Clean and normalize query text
    2. Extract entities and keywords
    3. Detect the response language
    4. Rewrite the query for vector retrieval
    """

    # Stop words to filter from keywords
    STOP_WORDS = {
        "the", "a", "an", "is", "are", "was", "were", "be", "been", "being",
        "have", "has", "had", "do", "does", "did", "will", "would", "could",
        "should", "may", "might", "must", "shall", "can", "need",
        "to", "of", "in", "for", "on", "with", "at", "by",
        "from", "up", "about", "into", "over", "after", "we", "our", "us",
        "i", "me", "my", "you", "your", "it", "its", "they", "them", "their",
        "this", "that", "these", "those", "what", "which", "who", "whom",
        "when", "where", "why", "how", "and", "or", "but", "if", "because",
        "as", "until", "while", "although", "though", "even", "just", "also",
        "tell", "explain", "show", "give", "find", "some", "any", "more",
    }

    EXPANSION_PROMPT = """You are a search query optimization expert. Rewrite the query below so it works better for semantic vector search.

Original query: {query}
Context: {context}

Requirements:
1. Preserve the original meaning
2. Add relevant synonyms
3. Include domain terminology
4. Keep it suitable for vector retrieval

Return only the rewritten query text, nothing else."""

    def __init__(self, llm_client=None):
        """
        Args:
            llm_client: LLMClient used for rewriting; None disables rewriting
        """
        self._llm = llm_client

    async def process(self, query: Query) -> ParsedQuery:
        """Parse a query and rewrite it for search."""
        parsed = self.parse(query.query, language=query.options.agentic.language)
        expanded = await self._expand(query.query, query.context)
        if expanded:
            parsed.expanded = expanded
            parsed.rewritten = True
        return parsed

    def parse(self, text: str, language: Optional[str] = None) -> ParsedQuery:
        """Local parsing only; ``expanded`` is the original text."""
        cleaned = self._clean_query(text)
        return ParsedQuery(
            original=text,
            cleaned=cleaned,
            expanded=text,
            keywords=self._extract_keywords(cleaned),
            entities=self._extract_entities(text),
            language=resolve_language(text, language),
        )

    def suggest_related(self, parsed: ParsedQuery, limit: int = 5) -> List[str]:
        """Keyword-derived related queries for when the model is unavailable."""
        terms = list(dict.fromkeys(parsed.entities + parsed.keywords))
        suggestions = []
        for term in terms[:limit]:
            suggestions.append(f"What is {term}?")
        if len(terms) >= 2:
            suggestions.append(f"{terms[0]} and {terms[1]}")
        if terms:
            suggestions.append(f"{terms[0]} best practices")
        return list(dict.fromkeys(suggestions))[:limit]

    async def _expand(self, text: str, context: QueryContext) -> Optional[str]:
        if self._llm is None:
            return None

        prompt = self.EXPANSION_PROMPT.format(query=text, context=self._format_context(context))
        try:
            response = await self._llm.acomplete(prompt, temperature=0.3)
        except ServiceUnavailable as e:
            logger.warning("Query expansion failed, searching original text: %s", e)
            return None

        expanded = response.strip().strip('"').strip()
        if not expanded or len(expanded) > MAX_EXPANSION_CHARS:
            return None
        return expanded

    @staticmethod
    def _format_context(context: QueryContext) -> str:
        data = context.model_dump(exclude_none=True)
        if not data.get("history"):
            data.pop("history", None)
        return json.dumps(data, ensure_ascii=False) if data else "none"

    def _clean_query(self, query: str) -> str:
        """Clean and normalize query text"""
        cleaned = query.lower().strip()

        # Collapse whitespace
        cleaned = re.sub(r'\s+', ' ', cleaned)

        # Remove trailing punctuation (but keep question marks)
        cleaned = re.sub(r'[.!,;:]+$', '', cleaned)

        return cleaned

    def _extract_entities(self, query: str) -> List[str]:
        """Extract quoted phrases and mid-sentence capitalized phrases"""
        entities = []

        quoted = re.findall(r'"([^"]+)"|\'([^\']+)\'', query)
        for q in quoted:
            entity = q[0] or q[1]
            if entity and len(entity) > 1:
                entities.append(entity)

        # Capitalized words not at the start of the query
        words = query.split()
        i = 1
        while i < len(words):
            word = words[i].strip("?,.!;:")
            if len(word) > 1 and word[0].isupper():
                phrase = [word]
                j = i + 1
                while j < len(words) and words[j][:1].isupper():
                    phrase.append(words[j].strip("?,.!;:"))
                    j += 1
                entity = ' '.join(phrase)
                if entity not in entities:
                    entities.append(entity)
                i = j
            else:
                i += 1

        return list(dict.fromkeys(entities))[:10]

    def _extract_keywords(self, query: str) -> List[str]:
        """Extract important keywords from query"""
        words = re.findall(r'\b\w+\b', query.lower())

        keywords = [
            w for w in words
            if w not in self.STOP_WORDS and len(w) > 2
        ]

        return list(dict.fromkeys(keywords))[:15]
