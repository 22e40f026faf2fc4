"""
Chunker

Splits document content into semantically coherent chunks.

Semantic pass: the Language Model Service proposes 200-500 character units,
each tagged with a type and an importance score. Any service failure or
malformed response falls back to deterministic fixed-size windows, so
chunking itself never fails on non-empty content. Long content is chunked
in prompt-sized sections.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Tuple

from ..common.errors import ChunkingError, ServiceUnavailable
from ..common.llm_utils import coerce_float, parse_llm_list
from ..common.schemas import ChunkType

logger = logging.getLogger("ragent.ingest.chunker")

# Fixed-size fallback window
FALLBACK_WINDOW = 400
FALLBACK_OVERLAP = 50

# Longest content sent in one chunking prompt
MAX_PROMPT_CONTENT = 12000


CHUNKING_PROMPT = """You are a document analysis expert. Split the content below into semantically complete chunks.

Title: {title}
Content:
{content}

Rules:
1. Each chunk should be 200-500 characters and semantically self-contained
2. Copy chunk text from the content; do not paraphrase
3. Tag each chunk with a type: "title", "summary", "content" or "conclusion"
4. Score each chunk's importance from 1 (peripheral) to 10 (essential)

Respond with a JSON array only:
[{{"content": "...", "type": "content", "importance": 7}}]

JSON:"""


@dataclass(frozen=True)
class ChunkDraft:
    """A chunk before embedding"""
    content: str
    chunk_type: ChunkType = ChunkType.CONTENT
    importance: int = 5


def fixed_size_chunks(
    content: str,
    window: int = FALLBACK_WINDOW,
    overlap: int = FALLBACK_OVERLAP,
) -> List[ChunkDraft]:
    """
    Deterministic sliding-window chunking.

    Windows start every ``window - overlap`` characters; the last window ends
    at the end of the content. Dropping the first ``overlap`` characters of
    every chunk after the first and concatenating reconstructs the content.
    """
    if not content:
        raise ChunkingError("Cannot chunk empty content")
    if overlap < 0 or overlap >= window:
        raise ValueError("overlap must be in [0, window)")

    step = window - overlap
    chunks = []
    start = 0
    while True:
        chunks.append(ChunkDraft(content=content[start:start + window]))
        if start + window >= len(content):
            break
        start += step
    return chunks


def split_sections(content: str, size: int = MAX_PROMPT_CONTENT) -> List[str]:
    """
    Split content into consecutive sections of at most ``size`` characters.

    A section ends at the last whitespace in its second half when there is
    one, otherwise at ``size``. Concatenating the sections gives the content.
    """
    sections = []
    start = 0
    while len(content) - start > size:
        end = start + size
        cut = max(content.rfind("\n", start + size // 2, end), content.rfind(" ", start + size // 2, end))
        if cut > start:
            end = cut + 1
        sections.append(content[start:end])
        start = end
    sections.append(content[start:])
    return sections


def _to_draft(item) -> Optional[ChunkDraft]:
    if not isinstance(item, dict):
        return None
    text = item.get("content")
    if not isinstance(text, str) or not text.strip():
        return None

    type_map = {t.value: t for t in ChunkType}
    chunk_type = type_map.get(str(item.get("type", "")).lower(), ChunkType.CONTENT)

    importance = int(round(coerce_float(item.get("importance"), 5.0)))
    importance = max(1, min(10, importance))

    return ChunkDraft(content=text.strip(), chunk_type=chunk_type, importance=importance)


class SemanticChunker:
    """LLM-driven chunking with a fixed-size fallback."""

    def __init__(self, llm_client, window: int = FALLBACK_WINDOW, overlap: int = FALLBACK_OVERLAP):
        self._llm = llm_client
        self._window = window
        self._overlap = overlap

    async def chunk(self, content: str, title: str = "") -> Tuple[List[ChunkDraft], bool]:
        """
        Chunk content.

        Content longer than one prompt is chunked section by section, so every
        part of the document lands in some chunk.

        Returns:
            (chunks, used_fallback) where used_fallback is True if any section
            was chunked by fixed-size windows

        Raises:
            ChunkingError: content is empty or whitespace only
        """
        if not content or not content.strip():
            raise ChunkingError(f"Document '{title}' has empty content")

        sections = [s for s in split_sections(content) if s.strip()]
        if len(sections) > 1:
            logger.info("Chunking '%s' in %d sections", title, len(sections))

        drafts: List[ChunkDraft] = []
        used_fallback = False
        for section in sections:
            section_drafts, fell_back = await self._chunk_section(section, title)
            drafts.extend(section_drafts)
            used_fallback = used_fallback or fell_back
        return drafts, used_fallback

    async def _chunk_section(self, section: str, title: str) -> Tuple[List[ChunkDraft], bool]:
        try:
            raw = await self._llm.acomplete(
                CHUNKING_PROMPT.format(title=title, content=section),
                temperature=0.3,
            )
        except ServiceUnavailable as e:
            logger.warning("Semantic chunking unavailable (%s), using fixed-size chunks", e)
            return fixed_size_chunks(section, self._window, self._overlap), True

        drafts = [d for d in (_to_draft(item) for item in parse_llm_list(raw)) if d]
        if not drafts:
            logger.warning("Semantic chunking returned no usable chunks, using fixed-size chunks")
            return fixed_size_chunks(section, self._window, self._overlap), True

        return drafts, False
